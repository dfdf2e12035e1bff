"""Byte-range text edits applied to a source in one pass."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from queryplane.core.errors import RefactorError
from queryplane.java.models import Span


@dataclass(frozen=True, slots=True)
class TextEdit:
    """Replace ``span`` of the current bytes with ``replacement``."""

    span: Span
    replacement: str


def check_overlaps(edits: Iterable[TextEdit], label: str) -> list[TextEdit]:
    """Sort edits by position, dropping exact duplicates.

    Raises:
        RefactorError: If two different edits touch overlapping ranges.
    """
    ordered = sorted(set(edits), key=lambda e: (e.span.start, e.span.end))
    for prev, cur in zip(ordered, ordered[1:], strict=False):
        if prev.span.overlaps(cur.span) or (
            prev.span.start == cur.span.start and prev.span.end == cur.span.end
        ):
            raise RefactorError.overlapping_edits(label)
    return ordered


def apply_text_edits(data: bytes, edits: Iterable[TextEdit], label: str = "<memory>") -> bytes:
    """Apply non-overlapping edits back to front so earlier offsets stay valid."""
    ordered = check_overlaps(edits, label)
    result = data
    for edit in reversed(ordered):
        result = result[: edit.span.start] + edit.replacement.encode("utf-8") + result[edit.span.end :]
    return result


def apply_within(data: bytes, span: Span, edits: Iterable[TextEdit]) -> str:
    """Text of ``span`` with every edit lying inside it applied."""
    inner = [
        TextEdit(Span(e.span.start - span.start, e.span.end - span.start), e.replacement)
        for e in edits
        if span.start <= e.span.start and e.span.end <= span.end
    ]
    return apply_text_edits(data[span.start : span.end], inner).decode("utf-8")
