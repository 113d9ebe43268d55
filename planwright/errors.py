"""
Exception hierarchy shared by the pipeline stages.

Classification, scoping and change application never raise for bad input:
the first two are total functions and the engine collects per-change
failures. Everything below is for the stages that can fail as a whole.
"""

from __future__ import annotations


class PlanwrightError(Exception):
    pass


class ConfigError(PlanwrightError):
    """Raised when an assistant configuration cannot be used."""

    def __init__(self, message: str, errors: list[str] | None = None):
        super().__init__(message)
        self.errors = errors or []


class ProviderError(PlanwrightError):
    """A chat-completion backend failed. Carries the provider name and HTTP status when known."""

    def __init__(self, message: str, provider: str, status_code: int | None = None):
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code

    @property
    def is_auth_error(self) -> bool:
        return self.status_code in (401, 403)


class ResponseValidationError(PlanwrightError):
    """The provider reply does not match the expected result shape. Never retried."""

    def __init__(self, message: str, code: str, details: dict | None = None):
        super().__init__(message)
        self.code = code
        self.details = details or {}


class ActionNotFoundError(PlanwrightError):
    pass


class AssistantBusyError(PlanwrightError):
    """A request is already in flight on this assistant."""


class VaultError(PlanwrightError):
    """Stored data exists but cannot be decrypted or parsed."""
