"""Anchored suggestions and the live suggestion set.

A :class:`Suggestion` claims the range ``[start, end)`` of the document,
with ``document[start:end] == original`` when it is created. The
:class:`SuggestionSet` keeps that true across accepts: after a replacement
the anchors after the edit shift by the length delta, anchors overlapping
the edit are dropped, and anchors before it stay put.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, replace
from typing import Any, Iterator

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Suggestion:
    """One proposed edit anchored to a document range."""

    id: int
    original: str
    replacement: str
    reason: str
    category: str
    start: int
    end: int

    def overlaps(self, start: int, end: int) -> bool:
        return self.start < end and start < self.end

    def matches(self, document: str) -> bool:
        return document[self.start:self.end] == self.original

    def shifted(self, delta: int) -> Suggestion:
        return replace(self, start=self.start + delta, end=self.end + delta)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Suggestion:
        return cls(
            id=int(data["id"]),
            original=str(data["original"]),
            replacement=str(data["replacement"]),
            reason=str(data.get("reason", "")),
            category=str(data["category"]),
            start=int(data["start"]),
            end=int(data["end"]),
        )


@dataclass(frozen=True)
class Segment:
    """A run of display text; highlighted when ``suggestion`` is set."""

    text: str
    suggestion: Suggestion | None = None


class SuggestionSet:
    """Mutable, ordered collection of pending suggestions."""

    def __init__(self, suggestions: list[Suggestion] | tuple[Suggestion, ...] = ()) -> None:
        self._items: list[Suggestion] = list(suggestions)

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[Suggestion]:
        return iter(list(self._items))

    def __bool__(self) -> bool:
        return bool(self._items)

    def get(self, suggestion_id: int) -> Suggestion | None:
        for s in self._items:
            if s.id == suggestion_id:
                return s
        return None

    def ids(self) -> list[int]:
        return [s.id for s in self._items]

    def replace_all(self, suggestions: list[Suggestion]) -> None:
        self._items = list(suggestions)

    def clear(self) -> None:
        self._items = []

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def accept(self, document: str, suggestion_id: int) -> tuple[str, Suggestion] | None:
        """Apply *suggestion_id* to *document*.

        Returns ``(new_document, accepted)``, or None when the id is unknown
        or its anchor no longer matches the document. A stale suggestion is
        removed and the document is left alone.
        """
        target = self.get(suggestion_id)
        if target is None:
            return None
        if not target.matches(document):
            log.warning("Discarding stale suggestion %d: anchor no longer matches", target.id)
            self._items.remove(target)
            return None

        new_document = document[:target.start] + target.replacement + document[target.end:]
        delta = len(target.replacement) - len(target.original)

        kept: list[Suggestion] = []
        for s in self._items:
            if s.id == target.id:
                continue
            if s.end <= target.start:
                kept.append(s)
            elif s.start >= target.end:
                kept.append(s.shifted(delta))
            else:
                log.info("Dropping suggestion %d: overlaps accepted edit %d", s.id, target.id)
        self._items = kept
        return new_document, target

    def dismiss(self, suggestion_id: int) -> Suggestion | None:
        """Remove *suggestion_id* without touching the document."""
        target = self.get(suggestion_id)
        if target is not None:
            self._items.remove(target)
        return target

    def revalidate(self, document: str) -> int:
        """Re-check every anchor against an edited *document*.

        Anchors that still match stay. Others are re-anchored to the first
        occurrence of their original text that does not overlap a kept
        anchor, or discarded. Returns the number discarded.
        """
        kept = [s for s in self._items if s.matches(document)]
        moved = [s for s in self._items if not s.matches(document)]
        dropped = 0
        for s in moved:
            start = _first_free_occurrence(document, s.original, kept)
            if start is None:
                dropped += 1
                continue
            kept.append(replace(s, start=start, end=start + len(s.original)))
        order = {s.id: i for i, s in enumerate(self._items)}
        kept.sort(key=lambda s: order[s.id])
        self._items = kept
        if dropped:
            log.info("Discarded %d suggestion(s) invalidated by an edit", dropped)
        return dropped

    # ------------------------------------------------------------------
    # Display
    # ------------------------------------------------------------------

    def render_segments(self, document: str) -> list[Segment]:
        """Split *document* into plain and highlighted runs.

        Suggestions are laid out by ascending start. Of any overlapping
        pair, only the earlier-starting one is shown.
        """
        segments: list[Segment] = []
        cursor = 0
        for s in sorted(self._items, key=lambda s: (s.start, s.end)):
            if s.start < cursor or s.end > len(document):
                continue
            if s.start > cursor:
                segments.append(Segment(document[cursor:s.start]))
            segments.append(Segment(document[s.start:s.end], s))
            cursor = s.end
        if cursor < len(document):
            segments.append(Segment(document[cursor:]))
        return segments

    # ------------------------------------------------------------------
    # Serialisation
    # ------------------------------------------------------------------

    def to_list(self) -> list[dict[str, Any]]:
        return [s.to_dict() for s in self._items]

    @classmethod
    def from_list(cls, data: list[dict[str, Any]] | None) -> SuggestionSet:
        items: list[Suggestion] = []
        for raw in data or []:
            try:
                items.append(Suggestion.from_dict(raw))
            except (KeyError, TypeError, ValueError) as exc:
                log.warning("Skipping unreadable suggestion record: %s", exc)
        return cls(items)


def _first_free_occurrence(document: str, text: str, taken: list[Suggestion]) -> int | None:
    if not text:
        return None
    pos = document.find(text)
    while pos != -1:
        end = pos + len(text)
        if not any(t.overlaps(pos, end) for t in taken):
            return pos
        pos = document.find(text, pos + 1)
    return None
