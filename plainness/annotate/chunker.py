"""Paragraph-preserving segmentation for length-limited requests.

Paragraphs are blocks separated by runs of two or more newlines. Segments
are built by greedily packing whole paragraphs up to a word budget; a
paragraph over budget gets a segment of its own and is never split.

Segments round-trip: ``join_segments(plan_segments(text, w)) == text``.
When a boundary separator holds more than two newlines, the surplus stays
at the end of the earlier segment.
"""

from __future__ import annotations

import re

SEGMENT_SEPARATOR = "\n\n"

_PARAGRAPH_SPLIT_RE = re.compile(r"(\n{2,})")


def count_words(text: str) -> int:
    """Count non-empty whitespace-separated tokens."""
    return len(text.split())


def split_paragraphs(text: str) -> list[tuple[str, str]]:
    """Split *text* into ``(separator, paragraph)`` pairs.

    The first pair's separator is empty. Joining every separator and
    paragraph in order gives back *text*.
    """
    parts = _PARAGRAPH_SPLIT_RE.split(text)
    pairs = [("", parts[0])]
    for i in range(1, len(parts), 2):
        pairs.append((parts[i], parts[i + 1]))
    return pairs


def plan_segments(text: str, max_words: int) -> list[str]:
    """Partition *text* into ordered segments of at most *max_words* words.

    A segment only exceeds the budget when it holds a single paragraph
    that is longer than the budget on its own.
    """
    if max_words < 1:
        raise ValueError(f"max_words must be >= 1, got {max_words}")

    pairs = split_paragraphs(text)
    segments: list[str] = []
    current = pairs[0][1]
    current_words = count_words(current)

    for sep, para in pairs[1:]:
        para_words = count_words(para)
        if current_words + para_words > max_words and current_words > 0:
            segments.append(current + sep[: -len(SEGMENT_SEPARATOR)])
            current = para
            current_words = para_words
        else:
            current += sep + para
            current_words += para_words

    segments.append(current)
    return segments


def join_segments(segments: list[str]) -> str:
    """Reassemble segments in order with a blank-line separator."""
    return SEGMENT_SEPARATOR.join(segments)
