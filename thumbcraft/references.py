"""Reference lifting from tool results.

Tool results may carry binary content the model should see as first-class
parts rather than as JSON text. Two shapes are recognized:

1. Reference markers inside text content items. Grammar::

       block    := "```" [lang] NEWLINE json-body "```"
       json-body := object | "[" object ("," object)* "]"
       object   := { "file_uri" | "fileUri": non-empty string,
                     ["mime_type" | "mimeType": string] }

   ``lang`` is any word (``json`` is typical). A block whose body is not
   valid JSON, or an object without a usable ``file_uri``, is ignored; the
   text itself is never modified. Each object becomes a file-reference part
   (MIME type defaults to ``image/jpeg``).

2. MCP ``image`` content items (``{"type": "image", "data", "mimeType"}``).
   Each becomes an inline binary part; in the result sent back to the model
   the payload is replaced by a small placeholder so the image is not
   duplicated as base64 text.

Only text and image items of a result's ``content`` list are inspected.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .types import FileData, InlineImage, Part, strip_data_uri

logger = logging.getLogger(__name__)

DEFAULT_REFERENCE_MIME = "image/jpeg"

_FENCED_BLOCK = re.compile(r"```[\w-]*[ \t]*\r?\n(.*?)```", re.DOTALL)


def _reference_from_entry(entry: Any) -> Optional[FileData]:
    if not isinstance(entry, dict):
        return None
    uri = entry.get("file_uri") or entry.get("fileUri")
    if not isinstance(uri, str) or not uri.strip():
        return None
    mime_type = entry.get("mime_type") or entry.get("mimeType") or DEFAULT_REFERENCE_MIME
    return FileData(file_uri=uri.strip(), mime_type=str(mime_type))


def parse_reference_blocks(text: str) -> List[FileData]:
    """Find reference markers in free text, in order of appearance."""
    refs: List[FileData] = []
    if not text:
        return refs
    for match in _FENCED_BLOCK.finditer(text):
        body = match.group(1).strip()
        if not body:
            continue
        try:
            payload = json.loads(body)
        except json.JSONDecodeError:
            logger.debug("Ignoring fenced block that is not JSON")
            continue
        entries = payload if isinstance(payload, list) else [payload]
        for entry in entries:
            ref = _reference_from_entry(entry)
            if ref is not None:
                refs.append(ref)
    return refs


def result_content_items(result: Any) -> List[Dict[str, Any]]:
    """Content items of an MCP result (``content``, ``contents`` or a bare list)."""
    if isinstance(result, list):
        items = result
    elif isinstance(result, dict):
        items = result.get("content") or result.get("contents") or []
    else:
        return []
    if not isinstance(items, list):
        return []
    return [item for item in items if isinstance(item, dict)]


def image_candidates(result: Any) -> List[InlineImage]:
    """Every image item of a result, in item order."""
    images = []
    for item in result_content_items(result):
        data = item.get("data")
        if item.get("type") != "image" or not isinstance(data, str) or not data:
            continue
        mime_type = item.get("mimeType") or item.get("mime_type") or DEFAULT_REFERENCE_MIME
        images.append(InlineImage(mime_type=str(mime_type), data=strip_data_uri(data)))
    return images


@dataclass
class LiftedReferences:
    """Parts lifted from one tool result.

    Attributes:
        parts: File-reference and inline image parts, in item order.
        result: The result to send back to the model, with image payloads
            replaced by placeholders.
    """
    parts: List[Part] = field(default_factory=list)
    result: Any = None


def _image_placeholder(item: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "type": "image",
        "mimeType": item.get("mimeType") or item.get("mime_type") or DEFAULT_REFERENCE_MIME,
        "attached": True,
    }


def lift_references(result: Any) -> LiftedReferences:
    """Lift reference markers and image items out of a tool result."""
    parts: List[Part] = []
    replaced: List[Dict[str, Any]] = []
    changed = False

    for item in result_content_items(result):
        item_type = item.get("type")
        if item_type == "text":
            for ref in parse_reference_blocks(str(item.get("text") or "")):
                parts.append(Part.from_file(ref.file_uri, ref.mime_type))
            replaced.append(item)
        elif item_type == "image":
            images = image_candidates([item])
            if not images:
                replaced.append(item)
                continue
            try:
                data = images[0].decode()
            except ValueError as exc:
                logger.warning("Skipping image item with undecodable data: %s", exc)
                replaced.append(item)
                continue
            parts.append(Part.from_inline(images[0].mime_type, data))
            replaced.append(_image_placeholder(item))
            changed = True
        else:
            replaced.append(item)

    if not changed:
        return LiftedReferences(parts=parts, result=result)
    if isinstance(result, list):
        return LiftedReferences(parts=parts, result=replaced)
    sanitized = dict(result)
    key = "content" if sanitized.get("content") else "contents"
    sanitized[key] = replaced
    return LiftedReferences(parts=parts, result=sanitized)


__all__ = [
    'DEFAULT_REFERENCE_MIME',
    'LiftedReferences',
    'image_candidates',
    'lift_references',
    'parse_reference_blocks',
    'result_content_items',
]
