"""Response parsing.

Normalizes a decoded model response into deliverable content
(``ParsedResult``) or into the ordered tool calls it requests. The two views
are exclusive: ``parse`` ignores tool-call parts, the tool-call helpers
ignore everything else, and thought parts are ignored by all three.
"""

from typing import List, Optional

from .types import FunctionCall, InlineImage, ParsedResult, PartKind, ProviderResponse


def parse(response: ProviderResponse) -> ParsedResult:
    """Extract text and generated images.

    Text parts are joined by newline in encounter order and trimmed. The
    signature of the last text part seen becomes the result's text
    signature; each image keeps its own.
    """
    texts: List[str] = []
    images: List[InlineImage] = []
    text_signature: Optional[bytes] = None

    for part in response.parts:
        kind = part.kind
        if kind == PartKind.TEXT:
            if part.text:
                texts.append(part.text)
            if part.thought_signature is not None:
                text_signature = part.thought_signature
        elif kind == PartKind.INLINE_DATA:
            images.append(InlineImage.from_bytes(
                part.inline_data.mime_type,
                part.inline_data.data,
                thought_signature=part.thought_signature,
            ))

    return ParsedResult(
        text="\n".join(texts).strip(),
        images=images,
        text_thought_signature=text_signature,
    )


def has_tool_calls(response: ProviderResponse) -> bool:
    return response.has_function_calls()


def extract_tool_calls(response: ProviderResponse) -> List[FunctionCall]:
    """Tool calls in response order, re-indexed by position, args defaulting to {}."""
    calls = []
    for part in response.parts:
        if part.function_call is None:
            continue
        fc = part.function_call
        calls.append(FunctionCall(name=fc.name, args=dict(fc.args or {}), index=len(calls)))
    return calls
