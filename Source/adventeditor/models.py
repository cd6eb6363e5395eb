"""Data model for numbered text records."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

SLOT_COUNT = 24


def validate_slot(slot: int) -> int:
    if not isinstance(slot, int) or isinstance(slot, bool):
        raise ValueError(f"Slot must be an integer between 1 and {SLOT_COUNT}")
    if slot < 1 or slot > SLOT_COUNT:
        raise ValueError(f"Slot must be between 1 and {SLOT_COUNT}")
    return slot


def default_title(slot: int) -> str:
    return f"Text {slot}"


@dataclass
class TextRecord:
    """One persisted text, keyed by its slot number.

    ``id`` and ``created_at`` are assigned by the backend and only carried
    along for display; nothing in the session relies on them.
    """

    slot_number: int
    title: str = ""
    content: str = ""
    updated_at: Optional[str] = None
    id: Optional[int] = None
    created_at: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "TextRecord":
        if not isinstance(row, dict):
            raise ValueError(f"Expected a JSON object for a text row, got {type(row).__name__}")
        try:
            slot = int(row["text_number"])
        except (KeyError, TypeError, ValueError):
            raise ValueError(f"Text row has no usable text_number: {row!r}")
        return cls(
            slot_number=slot,
            title=row.get("title") or "",
            content=row.get("content") or "",
            updated_at=row.get("updated_at"),
            id=row.get("id"),
            created_at=row.get("created_at"),
        )

    def to_row(self) -> Dict[str, Any]:
        # Server-assigned columns are never written back
        return {
            "text_number": self.slot_number,
            "title": self.title,
            "content": self.content,
            "updated_at": self.updated_at,
        }
