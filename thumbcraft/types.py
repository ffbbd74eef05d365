"""Provider-agnostic types for the orchestration core.

These types abstract away the google.genai SDK types (Content, Part,
FunctionDeclaration, ...) so the session, parser and loop can be exercised
without the SDK. Conversion lives in ``thumbcraft.converters``.

Continuation tokens (Gemini "thought signatures") are carried as opaque
``bytes`` on the parts that produced them. They are never inspected, only
round-tripped; on the JSON wire they are base64 strings.
"""

import base64
import binascii
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union


class Role(str, Enum):
    """Turn role in a conversation.

    TOOL is internal: tool-result turns are sent to the model with the
    wire role "user", but keeping them distinct lets the loop find the
    user-authored turn a request originated from.
    """
    USER = "user"
    MODEL = "model"
    TOOL = "tool"


class PartKind(str, Enum):
    """Tag of a Part variant."""
    TEXT = "text"
    INLINE_DATA = "inline_data"
    FILE_DATA = "file_data"
    FUNCTION_CALL = "function_call"
    FUNCTION_RESPONSE = "function_response"
    THOUGHT = "thought"


@dataclass
class ToolSchema:
    """Tool/function declaration sent to the model.

    Attributes:
        name: Tool name as known by the tool server.
        description: Human-readable description for the model.
        parameters: JSON Schema object describing the arguments.
    """
    name: str
    description: str = ""
    parameters: Dict[str, Any] = field(default_factory=dict)


@dataclass
class FunctionCall:
    """A tool call requested by the model.

    The protocol carries no call id; ``index`` is the position of the call
    among the tool-call parts of its response and is the correlation key
    between a request and its outcome.
    """
    name: str
    args: Dict[str, Any] = field(default_factory=dict)
    index: int = 0


@dataclass
class ToolOutcome:
    """Result of one tool call, successful or not.

    Attributes:
        name: Name of the tool that was called.
        index: Position of the originating FunctionCall in its response.
        success: Whether the call produced a result.
        result: Result mapping when successful.
        error: Error message when not successful.
    """
    name: str
    index: int = 0
    success: bool = True
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, call: FunctionCall, result: Dict[str, Any]) -> 'ToolOutcome':
        return cls(name=call.name, index=call.index, success=True, result=result)

    @classmethod
    def failed(cls, call: FunctionCall, error: str) -> 'ToolOutcome':
        return cls(name=call.name, index=call.index, success=False, error=error)

    def to_response(self) -> Dict[str, Any]:
        """Payload for the function_response part sent back to the model."""
        if self.success:
            return {"result": self.result if self.result is not None else {}}
        return {"error": self.error or "unknown error"}


@dataclass
class InlineData:
    """Binary payload with its MIME type."""
    mime_type: str
    data: bytes


@dataclass
class FileData:
    """Reference to remote binary content (e.g. a fetched reference image)."""
    file_uri: str
    mime_type: str


@dataclass
class Part:
    """One content unit of a Turn.

    Exactly one of the content fields is set. ``thought_signature`` may
    accompany any model-emitted part and must be replayed verbatim.
    """
    text: Optional[str] = None
    inline_data: Optional[InlineData] = None
    file_data: Optional[FileData] = None
    function_call: Optional[FunctionCall] = None
    function_response: Optional[ToolOutcome] = None
    thought: Optional[str] = None
    thought_signature: Optional[bytes] = None

    @classmethod
    def from_text(cls, text: str, thought_signature: Optional[bytes] = None) -> 'Part':
        return cls(text=text, thought_signature=thought_signature)

    @classmethod
    def from_inline(
        cls,
        mime_type: str,
        data: bytes,
        thought_signature: Optional[bytes] = None,
    ) -> 'Part':
        return cls(inline_data=InlineData(mime_type=mime_type, data=data),
                   thought_signature=thought_signature)

    @classmethod
    def from_file(cls, file_uri: str, mime_type: str) -> 'Part':
        return cls(file_data=FileData(file_uri=file_uri, mime_type=mime_type))

    @classmethod
    def from_function_call(cls, call: FunctionCall, thought_signature: Optional[bytes] = None) -> 'Part':
        return cls(function_call=call, thought_signature=thought_signature)

    @classmethod
    def from_function_response(cls, outcome: ToolOutcome) -> 'Part':
        return cls(function_response=outcome)

    @property
    def kind(self) -> PartKind:
        if self.function_call is not None:
            return PartKind.FUNCTION_CALL
        if self.function_response is not None:
            return PartKind.FUNCTION_RESPONSE
        if self.inline_data is not None:
            return PartKind.INLINE_DATA
        if self.file_data is not None:
            return PartKind.FILE_DATA
        if self.thought is not None:
            return PartKind.THOUGHT
        return PartKind.TEXT


@dataclass
class Message:
    """A Turn: a role and its ordered parts."""
    role: Role
    parts: List[Part] = field(default_factory=list)

    @classmethod
    def from_text(cls, role: Union[Role, str], text: str) -> 'Message':
        if isinstance(role, str):
            role = Role(role)
        return cls(role=role, parts=[Part.from_text(text)])

    @property
    def text(self) -> Optional[str]:
        texts = [p.text for p in self.parts if p.text]
        return '\n'.join(texts) if texts else None

    @property
    def function_calls(self) -> List[FunctionCall]:
        return [p.function_call for p in self.parts if p.function_call is not None]

    def is_informative(self) -> bool:
        """A model turn must carry text, binary content or a tool call.

        Thought-only or empty model turns are not valid history entries.
        """
        if self.role != Role.MODEL:
            return bool(self.parts)
        for p in self.parts:
            kind = p.kind
            if kind in (PartKind.INLINE_DATA, PartKind.FILE_DATA, PartKind.FUNCTION_CALL):
                return True
            # Empty text still counts when it carries a signature to replay
            if kind == PartKind.TEXT and p.text is not None and (p.text or p.thought_signature):
                return True
        return False


@dataclass
class TokenUsage:
    """Token usage reported with a model response."""
    prompt_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0
    thinking_tokens: Optional[int] = None


class FinishReason(str, Enum):
    """Reason why the model stopped generating."""
    STOP = "stop"
    MAX_TOKENS = "max_tokens"
    TOOL_USE = "tool_use"
    SAFETY = "safety"
    ERROR = "error"
    UNKNOWN = "unknown"


@dataclass
class ProviderResponse:
    """Decoded model response.

    Attributes:
        parts: Ordered parts of the first candidate.
        usage: Token usage statistics.
        finish_reason: Why the model stopped generating.
        raw: The SDK response object, kept for diagnostics.
    """
    parts: List[Part] = field(default_factory=list)
    usage: TokenUsage = field(default_factory=TokenUsage)
    finish_reason: FinishReason = FinishReason.UNKNOWN
    raw: Any = None

    def has_function_calls(self) -> bool:
        return any(p.function_call is not None for p in self.parts)


# ==================== Caller-facing results ====================

def encode_signature(signature: Optional[bytes]) -> Optional[str]:
    """Encode a continuation token for the JSON wire."""
    if signature is None:
        return None
    return base64.b64encode(signature).decode("ascii")


def decode_signature(value: Optional[str]) -> Optional[bytes]:
    """Decode a continuation token received on the JSON wire."""
    if not value:
        return None
    return base64.b64decode(value)


def strip_data_uri(data: str) -> str:
    """Return the bare base64 payload of a data URI (or the input itself)."""
    if data.startswith("data:") and "," in data:
        return data.split(",", 1)[1]
    return data


@dataclass
class InlineImage:
    """An image in transport form (base64 payload).

    Used for generated images in a ParsedResult and for reference image
    candidates in a PendingSelection.
    """
    mime_type: str
    data: str
    thought_signature: Optional[bytes] = None

    @classmethod
    def from_bytes(
        cls,
        mime_type: str,
        data: bytes,
        thought_signature: Optional[bytes] = None,
    ) -> 'InlineImage':
        return cls(
            mime_type=mime_type,
            data=base64.b64encode(data).decode("ascii"),
            thought_signature=thought_signature,
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'InlineImage':
        """Build from wire JSON: ``{"mimeType", "data", "thoughtSignature"?}``.

        ``data`` may be a data URI; its MIME type is used when ``mimeType``
        is absent.
        """
        raw = data.get("data")
        if not isinstance(raw, str) or not raw:
            raise ValueError("image entry requires a non-empty 'data' string")
        mime_type = data.get("mimeType") or data.get("mime_type")
        if not mime_type and raw.startswith("data:"):
            mime_type = raw[5:].split(";", 1)[0]
        return cls(
            mime_type=str(mime_type or "image/png"),
            data=strip_data_uri(raw),
            thought_signature=decode_signature(data.get("thoughtSignature")),
        )

    def decode(self) -> bytes:
        """Decode the transport encoding into raw bytes.

        Raises:
            ValueError: If the payload is not valid base64.
        """
        try:
            return base64.b64decode(strip_data_uri(self.data), validate=True)
        except binascii.Error as exc:
            raise ValueError(f"invalid base64 image data: {exc}") from exc

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"mimeType": self.mime_type, "data": self.data}
        signature = encode_signature(self.thought_signature)
        if signature:
            out["thoughtSignature"] = signature
        return out


@dataclass
class ParsedResult:
    """Terminal artifact of an orchestration run.

    Attributes:
        text: Text parts joined by newline and trimmed.
        images: Generated images in encounter order.
        text_thought_signature: Token of the last text part seen.
        tool_rounds: Number of tool-dispatch rounds the run performed.
        round_budget_exhausted: True when the loop stopped at its round cap
            with tool calls still pending.
    """
    text: str = ""
    images: List[InlineImage] = field(default_factory=list)
    text_thought_signature: Optional[bytes] = None
    tool_rounds: int = 0
    round_budget_exhausted: bool = False

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "text": self.text,
            "images": [img.to_dict() for img in self.images],
        }
        signature = encode_signature(self.text_thought_signature)
        if signature:
            out["textThoughtSignature"] = signature
        if self.round_budget_exhausted:
            out["roundBudgetExhausted"] = True
        return out
