"""
PLANWRIGHT Assistant — The Pipeline

Wires the stages together for one instruction:

  classify → scope → prompt → retry(provider) → parse → validate → sanitize
    → preview (wait for confirmation) | automatic (apply now)
    → engine → history

It holds no workspace state. The host passes its workspace in and decides
what to do with the workspace that comes back.
"""

from __future__ import annotations

import time
from datetime import datetime
from typing import Any, Callable

from loguru import logger
from pydantic import BaseModel, Field

from planwright.config_loader import PlanwrightConfig, validate_config
from planwright.context import estimate_context_tokens, scope
from planwright.dates import now_ms
from planwright.engine import apply_changes
from planwright.errors import AssistantBusyError, ConfigError, ProviderError, ResponseValidationError
from planwright.history import ActionHistory
from planwright.intent import classify
from planwright.models import (
    ActionHistoryEntry,
    AIRequest,
    AIResult,
    ApplyResult,
    ContextFilter,
    JsonDict,
    RequestMode,
    Workspace,
)
from planwright.preview import describe_changes
from planwright.prompts import build_messages
from planwright.providers import BaseProvider, create_provider
from planwright.retry import with_retries
from planwright.sanitize import sanitize_result
from planwright.validation import parse_response, validate_changes, validate_result

HISTORY_REQUEST_TYPE = "task-management"


class ApplyOutcome(BaseModel):
    result: ApplyResult
    entry: ActionHistoryEntry | None = None
    message: str


class AssistantReply(BaseModel):
    prompt: str
    mode: RequestMode
    result: AIResult
    previews: list[str] = Field(default_factory=list)
    # referential problems found before anything is applied
    problems: list[str] = Field(default_factory=list)
    context_tokens: int = 0
    outcome: ApplyOutcome | None = None

    @property
    def has_changes(self) -> bool:
        return bool(self.result.changes)


def format_error(exc: BaseException) -> str:
    """One chat-style line for a failed request."""
    if isinstance(exc, ResponseValidationError):
        return f"Validation error: {exc}"
    if isinstance(exc, ProviderError):
        return f"{exc.provider} error: {exc}"
    return str(exc) or "An error occurred"


def apply_message(result: ApplyResult, total: int) -> str:
    if result.success:
        return f"Applied {result.applied_changes} changes successfully"
    failures = "; ".join(result.errors)
    if result.applied_changes:
        return f"Applied {result.applied_changes} of {total} changes. Failed: {failures}"
    return f"Failed to apply changes: {failures}"


class Assistant:
    def __init__(
        self,
        config: PlanwrightConfig,
        provider: BaseProvider | None = None,
        history: ActionHistory | None = None,
        clock: Callable[[], int] = now_ms,
        sleep: Callable[[float], None] = time.sleep,
        now: Callable[[], datetime] | None = None,
    ):
        self.config = config
        self._provider = provider
        self.history = history
        self.clock = clock
        self.sleep = sleep
        self.now = now
        self._busy = False

    @property
    def provider(self) -> BaseProvider:
        if self._provider is None:
            errors = validate_config(self.config.assistant)
            if errors:
                raise ConfigError("Assistant is not configured: " + "; ".join(errors), errors)
            self._provider = create_provider(self.config.assistant)
        return self._provider

    @property
    def busy(self) -> bool:
        return self._busy

    # --- Request ------------------------------------------------------------

    def request(
        self,
        prompt: str,
        workspace: Workspace | JsonDict,
        context_filter: ContextFilter | None = None,
    ) -> AssistantReply:
        """
        Ask the provider about ``workspace``. Nothing is applied here.

        Raises ProviderError or ResponseValidationError when the request
        fails as a whole; format_error turns either into a user message.
        """
        if self._busy:
            raise AssistantBusyError("A request is already in progress")
        self._busy = True
        try:
            return self._request(prompt, workspace, context_filter)
        finally:
            self._busy = False

    def _request(
        self,
        prompt: str,
        workspace: Workspace | JsonDict,
        context_filter: ContextFilter | None,
    ) -> AssistantReply:
        mode = classify(prompt)
        request = AIRequest(prompt=prompt, mode=mode, context_filter=context_filter)
        context = scope(
            workspace,
            request,
            timezone=self.config.locale.timezone,
            now=self.now() if self.now else None,
        )
        tokens = estimate_context_tokens(context)
        logger.info(
            f"[ASSISTANT] {mode} request — {len(context.tables)} tables in context (~{tokens} tokens)"
        )

        provider = self.provider
        messages = build_messages(mode, context, prompt)

        def attempt() -> AIResult:
            response = provider.complete(messages)
            return validate_result(parse_response(response.content), mode)

        result = with_retries(
            attempt,
            max_attempts=self.config.retry.max_attempts,
            base_delay=self.config.retry.base_delay,
            sleep=self.sleep,
        )
        result = sanitize_result(result)

        document = _as_document(workspace)
        reply = AssistantReply(
            prompt=prompt,
            mode=mode,
            result=result,
            previews=describe_changes(result.changes, document),
            problems=validate_changes(result.changes, document) if result.changes else [],
            context_tokens=tokens,
        )
        logger.info(f"[ASSISTANT] Reply: {len(result.changes)} changes, {len(result.insights)} insights")
        return reply

    # --- Apply --------------------------------------------------------------

    def apply(
        self,
        changes: AssistantReply | AIResult | list[Any],
        workspace: Workspace | JsonDict,
        prompt: str = "",
    ) -> ApplyOutcome:
        """Run the engine and record the batch if anything was applied."""
        if isinstance(changes, AssistantReply):
            prompt = prompt or changes.prompt
            changes = changes.result.changes
        elif isinstance(changes, AIResult):
            changes = changes.changes

        before = _as_document(workspace)
        result = apply_changes(before, changes, clock=self.clock)

        entry = None
        if result.applied_changes > 0 and self.history is not None:
            entry = self.history.record(prompt, changes, before, HISTORY_REQUEST_TYPE)

        message = apply_message(result, len(changes))
        log = logger.info if result.success else logger.warning
        log(f"[ASSISTANT] {message}")
        return ApplyOutcome(result=result, entry=entry, message=message)

    def handle(
        self,
        prompt: str,
        workspace: Workspace | JsonDict,
        context_filter: ContextFilter | None = None,
    ) -> AssistantReply:
        """Request, then apply straight away in automatic mode."""
        reply = self.request(prompt, workspace, context_filter)
        if self.config.assistant.mode == "automatic" and reply.has_changes:
            reply.outcome = self.apply(reply, workspace, prompt)
        return reply


def _as_document(workspace: Workspace | JsonDict) -> JsonDict:
    if isinstance(workspace, Workspace):
        return workspace.to_document()
    return workspace
