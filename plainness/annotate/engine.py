"""Suggestion analysis and whole-document rewriting.

Analysis is single-shot: one request carries the active category guidance
and the full document; the reply is expected to hold one JSON array of
proposed edits. Each edit is anchored to the current document text, and
edits that cannot be anchored are dropped without error.

The prepare rewrite (:meth:`AnnotationEngine.transform`) returns plain text.
Long documents go through :func:`~plainness.annotate.chunker.plan_segments`
and are submitted one segment at a time, in order. Any failed segment
aborts the whole rewrite.
"""

from __future__ import annotations

import enum
import json
import logging
import re
from typing import Any, Callable

from plainness.annotate.chunker import count_words, join_segments, plan_segments
from plainness.annotate.prompt import (
    render_analysis_request,
    render_analysis_system,
    render_chat_system,
    render_prepare_request,
    render_prepare_system,
)
from plainness.annotate.suggestions import Suggestion
from plainness.categories import CATEGORY_IDS, is_category
from plainness.errors import AnchorMiss, MalformedResponse
from plainness.service import CompletionService

log = logging.getLogger(__name__)

REQUIRED_FIELDS = ("original", "suggestion", "reason")

# Control characters (including raw newlines) break JSON string literals
_CONTROL_CHARS_RE = re.compile(r"[\x00-\x1f\x7f]")

ProgressCallback = Callable[[str], None]


class AnchorStrategy(str, enum.Enum):
    """How to pick a position for text that occurs more than once."""

    FIRST = "first"
    SEQUENTIAL = "sequential"
    UNIQUE = "unique"


# ------------------------------------------------------------------
# Response parsing
# ------------------------------------------------------------------


def _preview(text: str, limit: int) -> str:
    return text[:limit].replace("\n", " ")


def extract_json_array(text: str, preview_chars: int = 300) -> list[Any]:
    """Pull the JSON array out of a free-form model reply.

    Takes everything from the first ``[`` to the last ``]``, blanks out
    control characters and parses it. Raises :class:`MalformedResponse`
    with a bounded preview when there is no array or it does not parse.
    """
    start = text.find("[")
    end = text.rfind("]")
    if start == -1 or end == -1 or end < start:
        preview = _preview(text, preview_chars)
        raise MalformedResponse(f'No JSON array found. Response was: "{preview}..."', preview)

    candidate = _CONTROL_CHARS_RE.sub(" ", text[start:end + 1])
    try:
        parsed = json.loads(candidate)
    except json.JSONDecodeError as exc:
        preview = _preview(candidate, preview_chars)
        raise MalformedResponse(
            f'JSON parse failed: {exc.msg}. JSON started with: "{preview}..."', preview,
        ) from exc

    if not isinstance(parsed, list):
        preview = _preview(candidate, preview_chars)
        raise MalformedResponse(f'Expected a JSON array, got: "{preview}..."', preview)
    return parsed


def _valid_element(item: Any) -> bool:
    if not isinstance(item, dict):
        return False
    return all(isinstance(item.get(f), str) for f in REQUIRED_FIELDS)


def normalize_mode(value: Any) -> str:
    """Map a model-supplied ``mode`` onto a category id.

    Case and surrounding whitespace are ignored; anything else that is not
    a known category falls back to the first category.
    """
    if isinstance(value, str):
        mode = value.strip().lower()
        if is_category(mode):
            return mode
    log.debug("Unknown suggestion mode %r, using %s", value, CATEGORY_IDS[0])
    return CATEGORY_IDS[0]


# ------------------------------------------------------------------
# Anchoring
# ------------------------------------------------------------------


def anchor(
    document: str,
    original: str,
    strategy: AnchorStrategy = AnchorStrategy.FIRST,
    after: int = 0,
) -> int:
    """Return the start offset for *original* in *document*.

    ``first`` uses the first occurrence. ``sequential`` prefers the first
    occurrence at or after *after* and falls back to the first one.
    ``unique`` refuses text that occurs more than once. Raises
    :class:`AnchorMiss` when no position qualifies.
    """
    if not original:
        raise AnchorMiss(original, "empty text")
    first = document.find(original)
    if first == -1:
        raise AnchorMiss(original)

    if strategy is AnchorStrategy.SEQUENTIAL:
        later = document.find(original, after)
        return later if later != -1 else first
    if strategy is AnchorStrategy.UNIQUE:
        if document.find(original, first + 1) != -1:
            raise AnchorMiss(original, "ambiguous")
    return first


def anchor_suggestions(
    document: str,
    items: list[Any],
    strategy: AnchorStrategy = AnchorStrategy.FIRST,
) -> list[Suggestion]:
    """Turn parsed model elements into anchored suggestions.

    Keeps model order and numbers survivors from 1. Malformed elements,
    anchor misses and anchors overlapping an earlier survivor are dropped.
    """
    suggestions: list[Suggestion] = []
    previous_end = 0
    for item in items:
        if not _valid_element(item):
            log.debug("Dropping malformed suggestion element: %r", item)
            continue
        original = item["original"]
        try:
            start = anchor(document, original, strategy, after=previous_end)
        except AnchorMiss as exc:
            log.debug("%s", exc)
            continue
        end = start + len(original)
        if any(s.overlaps(start, end) for s in suggestions):
            log.debug("Dropping suggestion overlapping an earlier one: %r", original[:50])
            continue
        suggestions.append(
            Suggestion(
                id=len(suggestions) + 1,
                original=original,
                replacement=item["suggestion"],
                reason=item["reason"],
                category=normalize_mode(item.get("mode")),
                start=start,
                end=end,
            )
        )
        previous_end = end
    return suggestions


# ------------------------------------------------------------------
# Engine
# ------------------------------------------------------------------


class AnnotationEngine:
    """Requests edits from the completion service.

    Parameters
    ----------
    service:
        Text-completion backend.
    config:
        Plainness config dict (``analysis``, ``prepare``, ``chat``,
        ``author`` sections).
    """

    def __init__(self, service: CompletionService, config: dict[str, Any]) -> None:
        self._service = service
        self._config = config

    @property
    def _analysis(self) -> dict[str, Any]:
        return self._config["analysis"]

    def analyze(
        self,
        document: str,
        categories: list[str],
        limit: int | str | None = None,
    ) -> list[Suggestion]:
        """Return anchored suggestions for *document*, in model order.

        Raises ServiceError or MalformedResponse; anchor misses only
        shrink the result.
        """
        if limit is None:
            limit = self._analysis["suggestion_limit"]
        system = render_analysis_system(
            categories=categories,
            limit=limit,
            exhaustive_range=self._analysis["exhaustive_range"],
            author=self._config.get("author"),
        )
        reply = self._service.complete(
            system,
            [{"role": "user", "content": render_analysis_request(document)}],
            self._analysis["max_tokens"],
        )
        items = extract_json_array(reply, self._analysis["preview_chars"])
        suggestions = anchor_suggestions(
            document, items, AnchorStrategy(self._analysis["anchor_strategy"]),
        )
        log.info(
            "Analysis: %d proposed, %d anchored (categories=%s)",
            len(items), len(suggestions), ",".join(categories),
        )
        return suggestions

    def transform(self, text: str, on_progress: ProgressCallback | None = None) -> str:
        """Rewrite *text* (footnotes to MLA citations, terminology pass).

        Each reply is stripped of surrounding whitespace. All-or-nothing: the
        first failed request propagates and nothing partial is returned.
        """
        prep = self._config["prepare"]
        budget = prep["max_words_per_segment"]
        system = render_prepare_system()

        if count_words(text) <= budget:
            return self._service.complete(
                system,
                [{"role": "user", "content": render_prepare_request(text, segmented=False)}],
                prep["single_max_tokens"],
            ).strip()

        segments = plan_segments(text, budget)
        log.info("Prepare: %d words in %d segments", count_words(text), len(segments))
        processed: list[str] = []
        for i, segment in enumerate(segments, start=1):
            if on_progress:
                on_progress(f"Processing section {i} of {len(segments)}...")
            processed.append(
                self._service.complete(
                    system,
                    [{"role": "user", "content": render_prepare_request(segment, segmented=True)}],
                    prep["segment_max_tokens"],
                ).strip()
            )
        return join_segments(processed)

    def chat(
        self,
        document: str,
        history: list[dict[str, str]],
        message: str,
        pending: int = 0,
    ) -> str:
        """Return a conversational reply about the document."""
        chat_cfg = self._config["chat"]
        system = render_chat_system(
            document=document,
            pending=pending,
            preview_chars=chat_cfg["document_preview_chars"],
            author=self._config.get("author"),
        )
        context = [
            {"role": m["role"], "content": m["content"]}
            for m in history
            if m.get("role") in ("user", "assistant")
        ][-chat_cfg["context_messages"]:]
        context.append({"role": "user", "content": message})
        return self._service.complete(system, context, chat_cfg["max_tokens"])
