"""Pending reference selection.

A ``PendingSelection`` is the intermediate result of the two-phase
(selection) mode: reference image candidates fetched by tools, waiting for
a human to pick a subset before a generation call is spent.

Lifecycle::

    pending --choose()--> consumed    (exactly once)
    pending --discard()-> discarded

The caller layer owns the object between requests.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from .errors import ValidationError
from .types import InlineImage, Message, Role


class SelectionState(str, Enum):
    PENDING = "pending"
    CONSUMED = "consumed"
    DISCARDED = "discarded"


def coerce_images(entries: Any) -> List[InlineImage]:
    """Turn wire image entries (or InlineImages) into InlineImages.

    Raises:
        ValidationError: If ``entries`` is not a list or an entry is malformed.
    """
    if not isinstance(entries, (list, tuple)):
        raise ValidationError(details="selected images must be a list")
    images = []
    for position, entry in enumerate(entries):
        if isinstance(entry, InlineImage):
            images.append(entry)
            continue
        if not isinstance(entry, dict):
            raise ValidationError(details=f"selected image #{position} must be an object")
        try:
            images.append(InlineImage.from_dict(entry))
        except ValueError as exc:
            raise ValidationError(details=f"selected image #{position}: {exc}") from exc
    return images


@dataclass
class PendingSelection:
    """Candidates awaiting a human choice.

    Attributes:
        message: The user message that triggered the lookup.
        candidates: Flat candidate list (call order, then item order).
        id: Opaque identifier for the caller's bookkeeping.
        state: Lifecycle state.
        created_at: Creation time.
    """
    message: str
    candidates: List[InlineImage] = field(default_factory=list)
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    state: SelectionState = SelectionState.PENDING
    created_at: datetime = field(default_factory=datetime.now)

    @property
    def is_pending(self) -> bool:
        return self.state == SelectionState.PENDING

    def _require_pending(self, action: str) -> None:
        if not self.is_pending:
            raise ValidationError(
                details=f"selection {self.id} is already {self.state.value}; cannot {action}"
            )

    def choose(self, chosen: Sequence[Any]) -> List[InlineImage]:
        """Consume the selection with the chosen candidates.

        Args:
            chosen: Candidate indices, InlineImages, or wire image dicts.
                May be empty (generate from text only).

        Returns:
            The chosen images, in the given order.

        Raises:
            ValidationError: If the selection is not pending or an entry is
                invalid. The selection stays pending in that case.
        """
        self._require_pending("resume")
        images: List[InlineImage] = []
        for entry in chosen:
            if isinstance(entry, int) and not isinstance(entry, bool):
                if not 0 <= entry < len(self.candidates):
                    raise ValidationError(
                        details=f"candidate index {entry} out of range ({len(self.candidates)} candidates)"
                    )
                images.append(self.candidates[entry])
            else:
                images.extend(coerce_images([entry]))
        self.state = SelectionState.CONSUMED
        return images

    def discard(self) -> None:
        """Discard the selection (cancel)."""
        self._require_pending("cancel")
        self.state = SelectionState.DISCARDED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": "mcp_results",
            "selectionId": self.id,
            "message": self.message,
            "images": [img.to_dict() for img in self.candidates],
        }


def remove_provisional_turn(history: Sequence[Message], message: str) -> List[Message]:
    """Drop the trailing user turn that asked ``message``, if present."""
    turns = list(history)
    if turns and turns[-1].role == Role.USER and (turns[-1].text or "").strip() == message.strip():
        turns.pop()
    return turns


def cancel_selection(
    pending: Optional[PendingSelection],
    history: Sequence[Message],
    message: Optional[str] = None,
) -> List[Message]:
    """Discard a selection and return history as if it was never requested."""
    if pending is not None:
        pending.discard()
        message = pending.message
    if message is None:
        return list(history)
    return remove_provisional_turn(history, message)
