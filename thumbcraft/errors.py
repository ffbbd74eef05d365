"""Error types for the orchestration core.

Every error carries what a caller needs to build a structured reply:

- ``kind``: machine-classifiable category string.
- ``status``: HTTP status used by request handlers.
- ``user_message``: human-readable message safe to show to end users.
- ``details``: raw diagnostic kept for operators.

Model endpoint failures are classified once, at the orchestrator boundary,
by ``classify_model_error``.
"""

import asyncio
from typing import Any, Dict, Optional

import httpx


class ThumbcraftError(Exception):
    """Base class for all errors raised by the core."""

    kind = "unexpected_error"
    status = 500
    default_message = "An unexpected error occurred. Please try again later."

    def __init__(self, user_message: Optional[str] = None, details: Optional[str] = None):
        self.user_message = user_message or self.default_message
        self.details = details
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        if self.details:
            return f"{self.user_message} ({self.details})"
        return self.user_message

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"error": self.user_message, "kind": self.kind}
        if self.details:
            out["details"] = self.details
        return out


class ValidationError(ThumbcraftError):
    """The request was malformed; rejected before any remote call."""

    kind = "invalid_request"
    status = 400
    default_message = "The request is invalid."


class ConfigurationError(ThumbcraftError):
    """The service is misconfigured (missing credential, bad setting)."""

    kind = "configuration_error"
    status = 500
    default_message = "Server configuration error. Please contact the administrator."


class ToolError(ThumbcraftError):
    """A single tool invocation failed.

    Always names the tool, since outcomes of a parallel batch are
    attributed per call.
    """

    kind = "tool_error"
    status = 502

    def __init__(
        self,
        tool_name: str,
        reason: str,
        attempts: int = 1,
        cause: Optional[BaseException] = None,
    ):
        self.tool_name = tool_name
        self.reason = reason
        self.attempts = attempts
        self.cause = cause
        super().__init__(
            user_message=f'Tool "{tool_name}" failed after {attempts} attempt(s): {reason}',
            details=reason,
        )

    def _format_message(self) -> str:
        return self.user_message


class ToolServerUnavailable(ToolError):
    """No tool server is configured (missing address or credential)."""

    kind = "tool_server_unavailable"
    status = 503

    def __init__(self, tool_name: str, missing: str = "MCP_SERVER_URL / MCP_AUTH_TOKEN"):
        self.missing = missing
        super().__init__(
            tool_name=tool_name,
            reason=f"tool server is not configured ({missing} not set)",
            attempts=0,
        )

    def _format_message(self) -> str:
        return f'Tool "{self.tool_name}" unavailable: {self.reason}'


class ModelError(ThumbcraftError):
    """Base class for language model endpoint failures."""

    kind = "model_error"
    status = 500
    default_message = "Image generation failed. Please try again later."


class ModelRateLimited(ModelError):
    kind = "rate_limited"
    status = 429
    default_message = "Too many requests. Please wait a moment and try again."


class ModelContentBlocked(ModelError):
    kind = "content_blocked"
    status = 400
    default_message = (
        "Generation was blocked by the content policy. "
        "Please change the prompt and try again."
    )


class ModelTimeout(ModelError):
    kind = "timeout"
    status = 504
    default_message = "The request timed out. Please try again."


class ModelAuthError(ModelError):
    """Model credential rejected; the user sees the configuration message."""

    kind = "model_auth_error"
    status = 500
    default_message = ConfigurationError.default_message


class ModelOtherError(ModelError):
    pass


class UnrecognizedPartError(ModelOtherError):
    """A model response contained a part shape the decoder does not know."""

    kind = "unrecognized_part"

    def __init__(self, description: str):
        self.description = description
        super().__init__(details=f"unrecognized response part: {description}")


# ==================== Classification ====================

_RATE_LIMIT_PATTERNS = ("429", "rate limit", "rate_limit", "quota", "resource exhausted", "resource_exhausted")
_BLOCKED_PATTERNS = ("safety", "blocked", "prohibited_content", "finish_reason: safety")
_TIMEOUT_PATTERNS = ("timeout", "timed out", "deadline")
_AUTH_PATTERNS = ("401", "403", "api key", "api_key", "unauthenticated", "permission_denied")


def _status_signals(exc: BaseException) -> Dict[str, Any]:
    """Collect status code/category from google.genai API errors."""
    # Imported here so importing this module does not load the SDK
    from google.genai import errors as genai_errors

    if isinstance(exc, genai_errors.APIError):
        return {"code": getattr(exc, "code", None), "status": str(getattr(exc, "status", "") or "").upper()}
    return {}


def classify_model_error(exc: BaseException) -> ThumbcraftError:
    """Map a model endpoint failure to a typed error.

    Errors that are already classified are returned unchanged. Otherwise
    status/category signals from the SDK error are inspected first, then
    exception types, then message patterns.

    Args:
        exc: The exception raised while talking to the model.

    Returns:
        A ThumbcraftError subclass instance with ``details`` set to the
        raw diagnostic.
    """
    if isinstance(exc, ThumbcraftError):
        return exc

    details = f"{type(exc).__name__}: {exc}"
    signals = _status_signals(exc)
    code = signals.get("code")
    status = signals.get("status", "")

    if code == 429 or status == "RESOURCE_EXHAUSTED":
        return ModelRateLimited(details=details)
    if code == 504 or status == "DEADLINE_EXCEEDED":
        return ModelTimeout(details=details)
    if code in (401, 403) or status in ("UNAUTHENTICATED", "PERMISSION_DENIED"):
        return ModelAuthError(details=details)

    if isinstance(exc, (asyncio.TimeoutError, TimeoutError, httpx.TimeoutException)):
        return ModelTimeout(details=details)

    lower = str(exc).lower()
    if any(p in lower for p in _RATE_LIMIT_PATTERNS):
        return ModelRateLimited(details=details)
    if any(p in lower for p in _BLOCKED_PATTERNS):
        return ModelContentBlocked(details=details)
    if any(p in lower for p in _TIMEOUT_PATTERNS):
        return ModelTimeout(details=details)
    if any(p in lower for p in _AUTH_PATTERNS):
        return ModelAuthError(details=details)
    return ModelOtherError(details=details)


__all__ = [
    'ThumbcraftError',
    'ValidationError',
    'ConfigurationError',
    'ToolError',
    'ToolServerUnavailable',
    'ModelError',
    'ModelRateLimited',
    'ModelContentBlocked',
    'ModelTimeout',
    'ModelAuthError',
    'ModelOtherError',
    'UnrecognizedPartError',
    'classify_model_error',
]
