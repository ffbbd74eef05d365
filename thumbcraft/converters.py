"""Converters between internal types and the google.genai SDK / wire JSON.

Two boundaries are handled here:

- SDK boundary: internal ``Message``/``Part``/``ToolSchema`` to
  ``types.Content``/``types.Part``/``types.Tool`` for requests, and SDK
  responses back to ``ProviderResponse``. Decoding is tagged and fails
  closed: a part shape that is not recognized raises
  ``UnrecognizedPartError`` instead of being dropped.
- Wire boundary: Gemini-style camelCase history JSON received from the
  presentation layer (``{"role", "parts": [{"text", "thoughtSignature"},
  {"inlineData": {"mimeType", "data"}}]}``).
"""

import base64
from typing import Any, List, Optional

from ._lazy import get_types
from .errors import ModelContentBlocked, UnrecognizedPartError, ValidationError
from .types import (
    FinishReason,
    FunctionCall,
    Message,
    Part,
    PartKind,
    ProviderResponse,
    Role,
    TokenUsage,
    ToolOutcome,
    ToolSchema,
    decode_signature,
    strip_data_uri,
)


# ==================== Role Conversion ====================


def role_to_sdk(role: Role) -> str:
    """Convert internal Role to SDK role string."""
    # Tool results are sent as user turns
    return "model" if role == Role.MODEL else "user"


# ==================== ToolSchema Conversion ====================


def tool_schema_to_sdk(schema: ToolSchema) -> Any:
    """Convert ToolSchema to a ``types.FunctionDeclaration``."""
    types = get_types()
    return types.FunctionDeclaration(
        name=schema.name,
        description=schema.description,
        parameters_json_schema=schema.parameters or {"type": "object", "properties": {}},
    )


def tool_schemas_to_sdk_tool(schemas: Optional[List[ToolSchema]]) -> Optional[Any]:
    """Wrap all declarations in a single ``types.Tool``."""
    if not schemas:
        return None
    types = get_types()
    return types.Tool(function_declarations=[tool_schema_to_sdk(s) for s in schemas])


# ==================== Part Conversion (requests) ====================


def part_to_sdk(part: Part) -> Any:
    """Convert internal Part to ``types.Part``, replaying its signature."""
    types = get_types()
    kind = part.kind
    sig = part.thought_signature

    if kind == PartKind.FUNCTION_CALL:
        fc = part.function_call
        return types.Part(
            function_call=types.FunctionCall(name=fc.name, args=fc.args),
            thought_signature=sig,
        )
    if kind == PartKind.FUNCTION_RESPONSE:
        fr = part.function_response
        return types.Part(
            function_response=types.FunctionResponse(name=fr.name, response=fr.to_response()),
        )
    if kind == PartKind.INLINE_DATA:
        return types.Part(
            inline_data=types.Blob(mime_type=part.inline_data.mime_type, data=part.inline_data.data),
            thought_signature=sig,
        )
    if kind == PartKind.FILE_DATA:
        return types.Part(
            file_data=types.FileData(
                file_uri=part.file_data.file_uri,
                mime_type=part.file_data.mime_type,
            ),
        )
    if kind == PartKind.THOUGHT:
        return types.Part(text=part.thought, thought=True, thought_signature=sig)
    return types.Part(text=part.text or "", thought_signature=sig)


def message_to_sdk(message: Message) -> Any:
    """Convert internal Message to ``types.Content``."""
    types = get_types()
    return types.Content(
        role=role_to_sdk(message.role),
        parts=[part_to_sdk(p) for p in message.parts],
    )


def history_to_sdk(history: List[Message]) -> List[Any]:
    return [message_to_sdk(m) for m in history]


# ==================== Part Conversion (responses) ====================


def _describe_sdk_part(sdk_part: Any) -> str:
    dump = getattr(sdk_part, "model_dump", None)
    if callable(dump):
        fields = sorted(dump(exclude_none=True).keys())
        return f"part with fields {fields}" if fields else "empty part"
    return f"object of type {type(sdk_part).__name__}"


def part_from_sdk(sdk_part: Any, call_index: int = 0) -> Part:
    """Decode one ``types.Part``.

    Args:
        sdk_part: The SDK part.
        call_index: Position assigned if the part is a function call.

    Raises:
        UnrecognizedPartError: If the part matches no known variant.
    """
    sig = getattr(sdk_part, "thought_signature", None)
    text = getattr(sdk_part, "text", None)

    fc = getattr(sdk_part, "function_call", None)
    if fc is not None:
        return Part.from_function_call(
            FunctionCall(name=fc.name or "", args=dict(fc.args or {}), index=call_index),
            thought_signature=sig,
        )

    if getattr(sdk_part, "thought", None) and text is not None:
        return Part(thought=text, thought_signature=sig)

    if text is not None:
        return Part.from_text(text, thought_signature=sig)

    inline = getattr(sdk_part, "inline_data", None)
    if inline is not None:
        return Part.from_inline(
            inline.mime_type or "application/octet-stream",
            inline.data or b"",
            thought_signature=sig,
        )

    file_data = getattr(sdk_part, "file_data", None)
    if file_data is not None:
        return Part.from_file(file_data.file_uri or "", file_data.mime_type or "application/octet-stream")

    fr = getattr(sdk_part, "function_response", None)
    if fr is not None:
        response = dict(fr.response or {})
        if "error" in response:
            outcome = ToolOutcome(name=fr.name or "", success=False, error=str(response["error"]))
        else:
            outcome = ToolOutcome(name=fr.name or "", result=response.get("result", response))
        return Part.from_function_response(outcome)

    # Signature-only parts still have to be replayed
    if sig is not None:
        return Part.from_text("", thought_signature=sig)

    raise UnrecognizedPartError(_describe_sdk_part(sdk_part))


def finish_reason_from_sdk(reason: Any) -> FinishReason:
    """Convert SDK finish reason enum to internal FinishReason."""
    if reason is None:
        return FinishReason.UNKNOWN
    name = str(getattr(reason, "name", reason)).upper()
    mapping = {
        "STOP": FinishReason.STOP,
        "MAX_TOKENS": FinishReason.MAX_TOKENS,
        "SAFETY": FinishReason.SAFETY,
        "RECITATION": FinishReason.SAFETY,
        "BLOCKLIST": FinishReason.SAFETY,
        "PROHIBITED_CONTENT": FinishReason.SAFETY,
        "SPII": FinishReason.SAFETY,
        "IMAGE_SAFETY": FinishReason.SAFETY,
        "IMAGE_PROHIBITED_CONTENT": FinishReason.SAFETY,
        "MALFORMED_FUNCTION_CALL": FinishReason.ERROR,
        "OTHER": FinishReason.ERROR,
    }
    return mapping.get(name, FinishReason.UNKNOWN)


def usage_from_sdk(metadata: Any) -> TokenUsage:
    if metadata is None:
        return TokenUsage()
    return TokenUsage(
        prompt_tokens=getattr(metadata, "prompt_token_count", None) or 0,
        output_tokens=getattr(metadata, "candidates_token_count", None) or 0,
        total_tokens=getattr(metadata, "total_token_count", None) or 0,
        thinking_tokens=getattr(metadata, "thoughts_token_count", None),
    )


def response_from_sdk(response: Any) -> ProviderResponse:
    """Decode a ``GenerateContentResponse`` (first candidate only).

    Raises:
        ModelContentBlocked: If the prompt was blocked, or the candidate was
            stopped for safety without producing any content.
        UnrecognizedPartError: If a part matches no known variant.
    """
    usage = usage_from_sdk(getattr(response, "usage_metadata", None))
    candidates = getattr(response, "candidates", None) or []

    if not candidates:
        feedback = getattr(response, "prompt_feedback", None)
        block_reason = getattr(feedback, "block_reason", None) if feedback else None
        if block_reason is not None:
            name = getattr(block_reason, "name", block_reason)
            raise ModelContentBlocked(details=f"prompt blocked: {name}")
        return ProviderResponse(usage=usage, finish_reason=FinishReason.UNKNOWN, raw=response)

    candidate = candidates[0]
    content = getattr(candidate, "content", None)
    sdk_parts = (getattr(content, "parts", None) or []) if content is not None else []

    parts: List[Part] = []
    call_index = 0
    for sdk_part in sdk_parts:
        part = part_from_sdk(sdk_part, call_index=call_index)
        if part.function_call is not None:
            call_index += 1
        parts.append(part)

    raw_reason = getattr(candidate, "finish_reason", None)
    finish_reason = finish_reason_from_sdk(raw_reason)
    if finish_reason == FinishReason.SAFETY and not parts:
        name = getattr(raw_reason, "name", raw_reason)
        raise ModelContentBlocked(details=f"finish_reason: {name}")
    if call_index:
        finish_reason = FinishReason.TOOL_USE

    return ProviderResponse(parts=parts, usage=usage, finish_reason=finish_reason, raw=response)


# ==================== Wire JSON (history) ====================


def _b64decode(value: Any, what: str) -> bytes:
    if not isinstance(value, str):
        raise ValidationError(details=f"{what} must be a base64 string")
    try:
        return base64.b64decode(strip_data_uri(value), validate=True)
    except ValueError as exc:
        raise ValidationError(details=f"{what} is not valid base64: {exc}") from exc


def part_from_wire(data: Any) -> Part:
    """Decode one wire part.

    Raises:
        ValidationError: On malformed input or an unknown part shape.
    """
    if not isinstance(data, dict):
        raise ValidationError(details="history part must be an object")

    raw_sig = data.get("thoughtSignature")
    try:
        sig = decode_signature(raw_sig) if isinstance(raw_sig, str) else None
    except ValueError as exc:
        raise ValidationError(details=f"thoughtSignature is not valid base64: {exc}") from exc

    if "text" in data:
        if not isinstance(data["text"], str):
            raise ValidationError(details="text part must be a string")
        if data.get("thought") is True:
            return Part(thought=data["text"], thought_signature=sig)
        return Part.from_text(data["text"], thought_signature=sig)

    if "inlineData" in data:
        inline = data["inlineData"]
        if not isinstance(inline, dict):
            raise ValidationError(details="inlineData must be an object")
        return Part.from_inline(
            str(inline.get("mimeType") or "image/png"),
            _b64decode(inline.get("data"), "inlineData.data"),
            thought_signature=sig,
        )

    if "fileData" in data:
        file_data = data["fileData"]
        if not isinstance(file_data, dict) or not file_data.get("fileUri"):
            raise ValidationError(details="fileData requires a fileUri")
        return Part.from_file(
            str(file_data["fileUri"]),
            str(file_data.get("mimeType") or "image/jpeg"),
        )

    if "functionCall" in data:
        fc = data["functionCall"]
        if not isinstance(fc, dict) or not fc.get("name"):
            raise ValidationError(details="functionCall requires a name")
        return Part.from_function_call(
            FunctionCall(name=str(fc["name"]), args=dict(fc.get("args") or {})),
            thought_signature=sig,
        )

    if "functionResponse" in data:
        fr = data["functionResponse"]
        if not isinstance(fr, dict) or not fr.get("name"):
            raise ValidationError(details="functionResponse requires a name")
        response = fr.get("response") or {}
        if not isinstance(response, dict):
            raise ValidationError(details="functionResponse.response must be an object")
        if "error" in response:
            outcome = ToolOutcome(name=str(fr["name"]), success=False, error=str(response["error"]))
        else:
            outcome = ToolOutcome(name=str(fr["name"]), result=response.get("result", response))
        return Part.from_function_response(outcome)

    if sig is not None:
        return Part.from_text("", thought_signature=sig)

    raise ValidationError(details=f"unrecognized history part with keys {sorted(data.keys())}")


def message_from_wire(data: Any) -> Message:
    """Decode one wire turn (roles "user" and "model" only).

    Raises:
        ValidationError: On malformed input.
    """
    if not isinstance(data, dict):
        raise ValidationError(details="history entry must be an object")
    role = data.get("role")
    if role not in (Role.USER.value, Role.MODEL.value):
        raise ValidationError(details=f"history role must be 'user' or 'model', got {role!r}")
    parts = data.get("parts") or []
    if not isinstance(parts, list):
        raise ValidationError(details="history parts must be a list")
    return Message(role=Role(role), parts=[part_from_wire(p) for p in parts])


def history_from_wire(data: Any) -> List[Message]:
    """Decode a wire history list; None means no history."""
    if data is None:
        return []
    if not isinstance(data, list):
        raise ValidationError(details="history must be a list")
    return [message_from_wire(item) for item in data]
