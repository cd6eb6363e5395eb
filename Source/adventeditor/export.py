"""Markdown export of text records.

Nothing here touches the network: documents are built in memory and handed
to the caller as ``ExportedFile`` pairs, which ``write_exports`` can persist.
"""
from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

from .utils import write_text

logger = logging.getLogger(__name__)

_UNSAFE = re.compile(r"[^a-zA-Z0-9]")


@dataclass(frozen=True)
class ExportedFile:
    filename: str
    content: str


def markdown_document(title: str, content: str) -> str:
    return f"# {title}\n\n{content}"


def parse_markdown_document(document: str) -> Tuple[str, str]:
    """Split ``# title\\n\\ncontent`` back into ``(title, content)``."""
    if not document.startswith("# "):
        raise ValueError("Document does not start with a '# ' heading")
    head, sep, content = document[2:].partition("\n\n")
    if not sep:
        raise ValueError("Document has no blank line after the heading")
    return head, content


def export_filename(title: str, slot: Optional[int] = None) -> str:
    stem = _UNSAFE.sub("_", title).lower()
    if slot is not None:
        return f"text_{slot}_{stem}.md"
    return f"{stem}.md"


def write_exports(directory: str, files: Iterable[ExportedFile]) -> List[str]:
    os.makedirs(directory, exist_ok=True)
    written: List[str] = []
    for item in files:
        path = os.path.join(directory, item.filename)
        write_text(path, item.content)
        logger.info("Wrote %s", path)
        written.append(path)
    return written
