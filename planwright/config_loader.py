"""
Configuration loader for PLANWRIGHT.
Merges defaults with per-directory .planwright/config.yaml overrides and
PLANWRIGHT_* environment variables.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field

PROVIDERS = ("openai", "anthropic", "custom")
MODES = ("preview", "automatic")
MIN_UNDO_WINDOW_MINUTES = 1
MAX_UNDO_WINDOW_MINUTES = 1440


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

class AssistantConfig(BaseModel):
    """Everything needed to talk to one provider. Passed explicitly, never held globally."""
    enabled: bool = True
    provider: str = "openai"
    api_key: str = ""
    model: str = "gpt-4o-mini"
    mode: str = "preview"
    undo_window_minutes: int = 60
    custom_endpoint: str | None = None


class RetryConfig(BaseModel):
    max_attempts: int = 3
    base_delay: float = 1.0


class HistoryConfig(BaseModel):
    max_entries: int = 50
    store_dir: str = "~/.planwright/store"


class LocaleConfig(BaseModel):
    timezone: str = "UTC"


class PlanwrightConfig(BaseModel):
    assistant: AssistantConfig = Field(default_factory=AssistantConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    history: HistoryConfig = Field(default_factory=HistoryConfig)
    locale: LocaleConfig = Field(default_factory=LocaleConfig)


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------

_DEFAULT_CONFIG_PATH = Path(__file__).parent / "config.yaml"

# env var -> (section, key)
_ENV_OVERRIDES = {
    "PLANWRIGHT_PROVIDER": ("assistant", "provider"),
    "PLANWRIGHT_API_KEY": ("assistant", "api_key"),
    "PLANWRIGHT_MODEL": ("assistant", "model"),
    "PLANWRIGHT_MODE": ("assistant", "mode"),
    "PLANWRIGHT_ENDPOINT": ("assistant", "custom_endpoint"),
    "PLANWRIGHT_TIMEZONE": ("locale", "timezone"),
    "PLANWRIGHT_STORE_DIR": ("history", "store_dir"),
}


def _deep_merge(base: dict, override: dict) -> dict:
    """Recursively merge override into base."""
    merged = base.copy()
    for key, value in override.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(base_dir: Path | None = None) -> PlanwrightConfig:
    """
    Load config by merging:
      1. Built-in defaults (planwright/config.yaml)
      2. Directory overrides (<base_dir>/.planwright/config.yaml)
      3. PLANWRIGHT_* environment variables
    """
    with open(_DEFAULT_CONFIG_PATH, "r") as f:
        base: dict[str, Any] = yaml.safe_load(f) or {}

    if base_dir:
        local_config = base_dir / ".planwright" / "config.yaml"
        if local_config.exists():
            with open(local_config, "r") as f:
                overrides: dict[str, Any] = yaml.safe_load(f) or {}
            base = _deep_merge(base, overrides)

    for env_name, (section, key) in _ENV_OVERRIDES.items():
        value = os.environ.get(env_name)
        if value:
            base.setdefault(section, {})[key] = value

    return PlanwrightConfig(**base)


def validate_config(config: AssistantConfig) -> list[str]:
    """Return every problem with ``config``; empty means usable."""
    errors: list[str] = []

    if not config.enabled:
        errors.append("AI assistant is not enabled")
    if not config.api_key:
        errors.append("API key is required")
    if not config.provider:
        errors.append("Provider is required")
    elif config.provider not in PROVIDERS:
        errors.append(f"Invalid provider: {config.provider}")
    if config.provider == "custom" and not config.custom_endpoint:
        errors.append("Custom endpoint is required for custom provider")
    if not config.model:
        errors.append("Model is required")
    if config.mode not in MODES:
        errors.append(f"Invalid mode: {config.mode}")
    if not MIN_UNDO_WINDOW_MINUTES <= config.undo_window_minutes <= MAX_UNDO_WINDOW_MINUTES:
        errors.append(
            f"Undo window must be between {MIN_UNDO_WINDOW_MINUTES} "
            f"and {MAX_UNDO_WINDOW_MINUTES} minutes"
        )

    return errors


def validate_api_keys() -> dict[str, bool]:
    """Check which provider API keys are available in the environment."""
    return {
        "PLANWRIGHT_API_KEY": bool(os.environ.get("PLANWRIGHT_API_KEY")),
        "OPENAI_API_KEY":     bool(os.environ.get("OPENAI_API_KEY")),
        "ANTHROPIC_API_KEY":  bool(os.environ.get("ANTHROPIC_API_KEY")),
        "PLANWRIGHT_SECRET":  bool(os.environ.get("PLANWRIGHT_SECRET")),
    }
