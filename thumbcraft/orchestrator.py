"""Orchestration loop.

Drives the model through the function-calling protocol. Two modes:

iterative (default)
    One tool-capable session. Each round: send, and if the reply requests
    tools, run them concurrently, lift reference content into the user's
    turn, send the outcomes back. Stops on a reply without tool calls, or
    at the round budget with a best-effort parse of the last reply.

selection
    Phase 1 asks a lightweight decision session whether reference images
    are needed, runs the requested tools once and returns the image
    candidates as a ``PendingSelection``. Phase 2 (``resume``) sends the
    message plus the images a human chose to the generation session.

Tool failures never abort a run; they become error outcomes the model can
read. Model failures abort the run and are classified once, here.
"""

import asyncio
import logging
from typing import Any, List, Optional, Sequence, Union

from .config import OrchestratorConfig
from .errors import ThumbcraftError, ToolError, ToolServerUnavailable, ValidationError, classify_model_error
from .mcp_client import McpToolClient, ToolClient
from .provider import create_provider
from .references import image_candidates, lift_references
from .response_parser import extract_tool_calls, has_tool_calls, parse
from .selection import PendingSelection, cancel_selection, coerce_images
from .session import (
    ConversationSession,
    ModelProvider,
    generation_session_config,
    tool_session_config,
)
from .types import FunctionCall, InlineImage, Message, ParsedResult, Part, Role, ToolOutcome, ToolSchema

logger = logging.getLogger(__name__)

MAX_TOOL_ROUNDS = 10

RunResult = Union[ParsedResult, PendingSelection]


def validate_message(message: Any) -> str:
    """Return the trimmed message.

    Raises:
        ValidationError: If the message is missing, not a string, or blank.
    """
    if not isinstance(message, str) or not message.strip():
        raise ValidationError(
            user_message="A non-empty message is required.",
            details="'message' must be a non-empty string",
        )
    return message.strip()


def _image_parts(images: Sequence[InlineImage]) -> List[Part]:
    """Decode images into inline parts before any remote call."""
    parts = []
    for position, image in enumerate(images):
        try:
            data = image.decode()
        except ValueError as exc:
            raise ValidationError(details=f"image #{position}: {exc}") from exc
        parts.append(Part.from_inline(image.mime_type, data))
    return parts


class Orchestrator:
    """Runs user requests against the model and the tool server.

    Args:
        provider: Model provider shared by all sessions of this orchestrator.
        config: Orchestrator configuration.
        tool_client: Tool client, or None when no tool server is configured.
        tools: Tool declarations for the model. Discovered from the tool
            server on first use when omitted.
    """

    def __init__(
        self,
        provider: ModelProvider,
        config: Optional[OrchestratorConfig] = None,
        tool_client: Optional[ToolClient] = None,
        tools: Optional[Sequence[ToolSchema]] = None,
    ):
        self.config = config or OrchestratorConfig()
        self._provider = provider
        self._tool_client = tool_client
        self._tools: Optional[List[ToolSchema]] = list(tools) if tools is not None else None

    @classmethod
    def from_config(cls, config: OrchestratorConfig) -> 'Orchestrator':
        """Validate the configuration and build provider and tool client.

        Raises:
            ConfigurationError: If the configuration is invalid.
        """
        config.validate()
        return cls(
            provider=create_provider(config),
            config=config,
            tool_client=McpToolClient.from_config(config),
        )

    @property
    def max_tool_rounds(self) -> int:
        return self.config.max_tool_rounds or MAX_TOOL_ROUNDS

    # ==================== Public surface ====================

    async def run(
        self,
        message: str,
        history: Optional[Sequence[Message]] = None,
        selected_images: Optional[Sequence[Any]] = None,
    ) -> RunResult:
        """Handle one user request.

        Args:
            message: The user's message.
            history: Prior turns (caller-owned).
            selected_images: Pre-selected reference images. When given (even
                empty), the request goes straight to generation.

        Returns:
            ParsedResult, or PendingSelection in selection mode when tools
            returned candidates.

        Raises:
            ValidationError: Before any remote call, on invalid input.
            ModelError: Classified model failure.
        """
        text = validate_message(message)
        prior = list(history or [])
        images = coerce_images(selected_images) if selected_images is not None else None

        try:
            if images is not None:
                return await self.generate(text, prior, images)
            if self.config.mode == "selection":
                return await self.select_references(text, prior)
            return await self.run_tool_loop(text, prior)
        except Exception as exc:
            error = self._fail(exc)
            if error is exc:
                raise
            raise error from exc

    async def resume(
        self,
        pending: Union[PendingSelection, str],
        history: Optional[Sequence[Message]] = None,
        chosen: Optional[Sequence[Any]] = None,
    ) -> ParsedResult:
        """Phase 2 of selection mode.

        Args:
            pending: The PendingSelection (consumed here), or the original
                message when the caller kept only the message.
            history: Prior turns.
            chosen: Candidate indices or images; empty means text-only.

        Raises:
            ValidationError: If the selection was already used or discarded,
                or a chosen entry is invalid.
            ModelError: Classified model failure.
        """
        if isinstance(pending, PendingSelection):
            images = pending.choose(chosen or [])
            text = pending.message
        else:
            text = validate_message(pending)
            images = coerce_images(list(chosen or []))

        logger.info("Resuming with %d chosen reference image(s)", len(images))
        try:
            return await self.generate(text, list(history or []), images)
        except Exception as exc:
            error = self._fail(exc)
            if error is exc:
                raise
            raise error from exc

    def cancel(
        self,
        pending: Optional[PendingSelection],
        history: Sequence[Message],
        message: Optional[str] = None,
    ) -> List[Message]:
        """Discard a selection; returns history without its provisional turn."""
        return cancel_selection(pending, history, message)

    # ==================== Tool dispatch ====================

    async def tool_schemas(self) -> List[ToolSchema]:
        """Tool declarations, discovered once from the tool server."""
        if self._tools is not None:
            return self._tools
        if self._tool_client is None or not hasattr(self._tool_client, "list_tools"):
            return []
        try:
            self._tools = await self._tool_client.list_tools()
        except Exception as exc:
            logger.warning("Tool discovery failed, continuing without tools: %s", exc)
            return []
        logger.info("Discovered %d tool(s): %s", len(self._tools),
                    ", ".join(t.name for t in self._tools))
        return self._tools

    async def _dispatch_one(self, call: FunctionCall) -> ToolOutcome:
        if self._tool_client is None:
            return ToolOutcome.failed(call, str(ToolServerUnavailable(call.name)))
        try:
            result = await self._tool_client.execute(call.name, call.args)
        except ToolError as exc:
            logger.error("%s", exc)
            return ToolOutcome.failed(call, str(exc))
        except Exception as exc:
            error = ToolError(call.name, f"{type(exc).__name__}: {exc}", cause=exc)
            logger.error("%s", error)
            return ToolOutcome.failed(call, str(error))
        if not isinstance(result, dict):
            result = {"content": result}
        return ToolOutcome.ok(call, result)

    async def dispatch_tool_calls(self, calls: Sequence[FunctionCall]) -> List[ToolOutcome]:
        """Run one round of tool calls concurrently.

        Outcomes come back in request order, one per call. Without a tool
        client every call gets an error outcome and nothing is sent over
        the network.
        """
        if not calls:
            return []
        if self._tool_client is None:
            logger.warning("No tool server configured; answering %d tool call(s) with errors",
                           len(calls))
        else:
            logger.info("Dispatching %d tool call(s): %s", len(calls),
                        ", ".join(c.name for c in calls))
        outcomes = await asyncio.gather(*(self._dispatch_one(call) for call in calls))
        return list(outcomes)

    # ==================== Iterative mode ====================

    async def run_tool_loop(
        self,
        message: str,
        history: Sequence[Message],
        images: Sequence[InlineImage] = (),
    ) -> ParsedResult:
        """Single-session tool loop, bounded by ``max_tool_rounds``."""
        parts = [Part.from_text(message)] + _image_parts(images)
        tools = await self.tool_schemas()
        session = ConversationSession(
            self._provider,
            tool_session_config(self.config, tools),
            history=history,
            history_window=self.config.history_window,
        )

        response = await session.send(parts)
        rounds = 0
        while has_tool_calls(response):
            if rounds >= self.max_tool_rounds:
                logger.warning(
                    "Tool round budget (%d) exhausted with tool calls still pending; "
                    "returning best-effort result", self.max_tool_rounds,
                )
                result = parse(response)
                result.tool_rounds = rounds
                result.round_budget_exhausted = True
                return result

            outcomes = await self.dispatch_tool_calls(extract_tool_calls(response))
            rounds += 1

            lifted: List[Part] = []
            for outcome in outcomes:
                if outcome.success:
                    refs = lift_references(outcome.result)
                    outcome.result = refs.result
                    lifted.extend(refs.parts)
            if lifted:
                session.attach_to_last_user_turn(lifted)
                logger.info("Attached %d reference part(s) to the user turn", len(lifted))

            response = await session.send(
                [Part.from_function_response(o) for o in outcomes],
                role=Role.TOOL,
            )

        result = parse(response)
        result.tool_rounds = rounds
        logger.info("Run finished after %d tool round(s), %d image(s)", rounds, len(result.images))
        return result

    # ==================== Selection mode ====================

    async def select_references(self, message: str, history: Sequence[Message]) -> RunResult:
        """Phase 1: fetch reference candidates, or fall through to generation."""
        if self._tool_client is None:
            logger.warning("No tool server configured; generating without reference images")
            return await self.generate(message, history, [])

        tools = await self.tool_schemas()
        decision = ConversationSession(
            self._provider,
            tool_session_config(self.config, tools, decision=True),
        )
        response = await decision.send([Part.from_text(message)])
        if not has_tool_calls(response):
            logger.info("No reference lookup requested; generating directly")
            return await self.generate(message, history, [])

        outcomes = await self.dispatch_tool_calls(extract_tool_calls(response))
        candidates: List[InlineImage] = []
        for outcome in outcomes:
            if outcome.success:
                candidates.extend(image_candidates(outcome.result))
        logger.info("Collected %d reference candidate(s) from %d tool call(s)",
                    len(candidates), len(outcomes))
        return PendingSelection(message=message, candidates=candidates)

    async def generate(
        self,
        message: str,
        history: Sequence[Message],
        images: Sequence[InlineImage],
    ) -> ParsedResult:
        """Phase 2: generation-only session, message plus chosen images."""
        parts = [Part.from_text(message)] + _image_parts(images)
        session = ConversationSession(
            self._provider,
            generation_session_config(self.config),
            history=history,
            history_window=self.config.history_window,
        )
        response = await session.send(parts)
        return parse(response)

    # ==================== Failure boundary ====================

    def _fail(self, exc: BaseException) -> ThumbcraftError:
        error = classify_model_error(exc)
        logger.error("Run failed [%s]: %s", error.kind, error.details or error.user_message)
        return error


__all__ = ['MAX_TOOL_ROUNDS', 'Orchestrator', 'RunResult', 'validate_message']
