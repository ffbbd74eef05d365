"""Chat request handler.

Framework-independent equivalent of the chat HTTP route: takes a decoded
JSON body, runs (or resumes) an orchestration and returns a status code and
a JSON-ready body. Request body::

    {
        "message": "...",                      # required
        "history": [{"role", "parts"}, ...],   # Gemini-style wire turns
        "selectedImages": [{"mimeType", "data"}, ...]   # phase 2 only
    }

Every failure is returned as ``{"error", "kind", "details"?}`` with the
status of its error class; nothing is raised to the caller.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from .config import OrchestratorConfig
from .converters import history_from_wire
from .errors import ThumbcraftError, ValidationError
from .orchestrator import Orchestrator, validate_message
from .selection import PendingSelection, coerce_images

logger = logging.getLogger(__name__)


@dataclass
class ChatReply:
    status: int
    body: Dict[str, Any] = field(default_factory=dict)


def _error_reply(error: ThumbcraftError) -> ChatReply:
    return ChatReply(status=error.status, body=error.to_dict())


async def handle_chat_request(
    body: Any,
    config: Optional[OrchestratorConfig] = None,
    orchestrator: Optional[Orchestrator] = None,
) -> ChatReply:
    """Handle one chat request.

    Input is validated before the configuration is checked, and both before
    any remote call.

    Args:
        body: Decoded JSON request body.
        config: Configuration; loaded from the environment when omitted.
        orchestrator: Pre-built orchestrator (takes precedence over config).

    Returns:
        ChatReply with 200 and a ParsedResult / PendingSelection body, or an
        error status and an error body.
    """
    try:
        if not isinstance(body, dict):
            raise ValidationError(details="request body must be a JSON object")
        message = validate_message(body.get("message"))
        history = history_from_wire(body.get("history"))
        selected = body.get("selectedImages")
        images = coerce_images(selected) if selected is not None else None

        if orchestrator is None:
            config = config or OrchestratorConfig.from_env()
            orchestrator = Orchestrator.from_config(config)

        if images is not None:
            result = await orchestrator.resume(message, history, images)
        else:
            result = await orchestrator.run(message, history)
    except ThumbcraftError as exc:
        if isinstance(exc, ValidationError):
            logger.info("Rejected chat request: %s", exc)
        return _error_reply(exc)
    except Exception:
        logger.exception("Unexpected error while handling chat request")
        return ChatReply(status=500, body=ThumbcraftError().to_dict())

    if isinstance(result, PendingSelection):
        logger.info("Returning %d reference candidate(s) for selection", len(result.candidates))
    return ChatReply(status=200, body=result.to_dict())


__all__ = ['ChatReply', 'handle_chat_request']
