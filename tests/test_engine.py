"""Tests for plainness.annotate.engine and prompt rendering."""

from __future__ import annotations

import json

import pytest

from plainness.annotate.engine import (
    AnchorStrategy,
    AnnotationEngine,
    anchor,
    anchor_suggestions,
    extract_json_array,
    normalize_mode,
)
from plainness.annotate.prompt import (
    TRUNCATION_MARKER,
    render_analysis_system,
    render_chat_system,
    suggestion_target,
)
from plainness.annotate.suggestions import SuggestionSet
from plainness.categories import combined_guidance, get_category, normalize_categories
from plainness.errors import AnchorMiss, MalformedResponse, ServiceError
from conftest import ScriptedService, suggestion_json


def _item(original: str, suggestion: str = "x", mode: str = "clarity") -> dict:
    return {"original": original, "suggestion": suggestion, "reason": "r", "mode": mode}


class TestExtractJsonArray:
    def test_array_with_surrounding_prose(self) -> None:
        text = 'Sure! Here you go:\n[{"original": "a"}]\nHope that helps.'
        assert extract_json_array(text) == [{"original": "a"}]

    def test_control_characters_blanked(self) -> None:
        text = '[{"original": "line one\nline two"}]'
        assert extract_json_array(text) == [{"original": "line one line two"}]

    def test_no_array(self) -> None:
        with pytest.raises(MalformedResponse, match="No JSON array found") as exc_info:
            extract_json_array("I could not find anything to change.")
        assert exc_info.value.preview.startswith("I could not")

    def test_parse_failure_has_bounded_preview(self) -> None:
        text = "[" + "{broken " * 200 + "]"
        with pytest.raises(MalformedResponse, match="JSON parse failed") as exc_info:
            extract_json_array(text, preview_chars=50)
        assert len(exc_info.value.preview) == 50

    def test_preview_has_no_newlines(self) -> None:
        with pytest.raises(MalformedResponse) as exc_info:
            extract_json_array("nothing\nhere\nat all")
        assert "\n" not in exc_info.value.preview

    def test_empty_array(self) -> None:
        assert extract_json_array("[]") == []


class TestAnchor:
    def test_first_occurrence(self) -> None:
        assert anchor("A foo B foo C", "foo") == 2

    def test_sequential_prefers_after(self) -> None:
        assert anchor("A foo B foo C", "foo", AnchorStrategy.SEQUENTIAL, after=5) == 8

    def test_sequential_falls_back_to_first(self) -> None:
        assert anchor("A foo B", "foo", AnchorStrategy.SEQUENTIAL, after=6) == 2

    def test_unique_rejects_ambiguous(self) -> None:
        with pytest.raises(AnchorMiss, match="ambiguous"):
            anchor("A foo B foo C", "foo", AnchorStrategy.UNIQUE)

    def test_unique_accepts_single(self) -> None:
        assert anchor("A foo B", "foo", AnchorStrategy.UNIQUE) == 2

    def test_missing_text(self) -> None:
        with pytest.raises(AnchorMiss, match="not found"):
            anchor("A foo B", "bar")

    def test_empty_text(self) -> None:
        with pytest.raises(AnchorMiss, match="empty"):
            anchor("A foo B", "")

    def test_case_sensitive(self) -> None:
        with pytest.raises(AnchorMiss):
            anchor("A foo B", "FOO")


class TestAnchorSuggestions:
    def test_ids_are_sequential_among_survivors(self) -> None:
        doc = "alpha beta gamma"
        items = [_item("alpha"), _item("missing"), _item("gamma")]
        result = anchor_suggestions(doc, items)
        assert [(s.id, s.original, s.start, s.end) for s in result] == [
            (1, "alpha", 0, 5),
            (2, "gamma", 11, 16),
        ]

    def test_malformed_elements_dropped(self) -> None:
        doc = "alpha beta gamma"
        items = [
            "not a dict",
            {"original": "alpha", "suggestion": "a"},
            {"original": "beta", "suggestion": 7, "reason": "r", "mode": "tone"},
            _item("gamma", mode="tone"),
        ]
        result = anchor_suggestions(doc, items)
        assert [(s.original, s.category) for s in result] == [("gamma", "tone")]

    def test_mixed_case_mode_kept(self) -> None:
        doc = "A foo B bar C"
        items = [_item("foo", mode="Clarity"), _item("bar", mode=" Grammar ")]
        result = anchor_suggestions(doc, items)
        assert [(s.original, s.category) for s in result] == [("foo", "clarity"), ("bar", "grammar")]

    def test_unknown_mode_falls_back_to_clarity(self) -> None:
        doc = "alpha beta gamma"
        items = [
            {"original": "alpha", "suggestion": "a", "reason": "r"},
            {"original": "beta", "suggestion": "b", "reason": "r", "mode": 3},
            _item("gamma", mode="vibes"),
        ]
        result = anchor_suggestions(doc, items)
        assert [(s.id, s.original, s.category) for s in result] == [
            (1, "alpha", "clarity"),
            (2, "beta", "clarity"),
            (3, "gamma", "clarity"),
        ]

    def test_overlapping_anchor_dropped(self) -> None:
        doc = "alpha beta gamma"
        result = anchor_suggestions(doc, [_item("alpha beta"), _item("beta gamma")])
        assert [s.original for s in result] == ["alpha beta"]

    def test_duplicate_original_sequential_strategy(self) -> None:
        doc = "A foo B foo C"
        result = anchor_suggestions(
            doc, [_item("A foo"), _item("foo")], AnchorStrategy.SEQUENTIAL,
        )
        assert [(s.original, s.start) for s in result] == [("A foo", 0), ("foo", 8)]

    def test_duplicate_original_first_strategy_collides(self) -> None:
        doc = "A foo B foo C"
        result = anchor_suggestions(doc, [_item("A foo"), _item("foo")])
        assert [s.original for s in result] == ["A foo"]

    def test_anchors_match_document(self) -> None:
        doc = "One two three. Four five six."
        items = [_item("two"), _item("Four five"), _item("six.")]
        for s in anchor_suggestions(doc, items):
            assert doc[s.start:s.end] == s.original


class TestNormalizeMode:
    def test_known_ids_case_folded(self) -> None:
        assert normalize_mode("TERMINOLOGY") == "terminology"
        assert normalize_mode("\tscripture\n") == "scripture"

    def test_unknown_values(self) -> None:
        assert normalize_mode("") == "clarity"
        assert normalize_mode(None) == "clarity"
        assert normalize_mode(["tone"]) == "clarity"


class TestAnalyze:
    def test_returns_anchored_suggestions(self, config: dict) -> None:
        doc = "The Mormon Church teaches faith."
        service = ScriptedService([
            "Here are suggestions:\n"
            + suggestion_json(
                ("Mormon Church", "Church of Jesus Christ", "style guide", "terminology"),
                ("not in text", "x", "y", "clarity"),
            )
        ])
        engine = AnnotationEngine(service, config)
        result = engine.analyze(doc, ["terminology"])
        assert len(result) == 1
        assert result[0].id == 1
        assert doc[result[0].start:result[0].end] == "Mormon Church"

        call = service.calls[0]
        assert call["max_tokens"] == 4000
        assert "Return approximately 10 suggestions" in call["system"]
        assert get_category("terminology").guidance in call["system"]
        assert call["messages"] == [{
            "role": "user",
            "content": f"Analyze this text and return suggestions as a JSON array:\n\n{doc}",
        }]

    def test_exhaustive_limit(self, config: dict) -> None:
        service = ScriptedService(["[]"])
        AnnotationEngine(service, config).analyze("text", ["clarity"], limit="exhaustive")
        assert "Return approximately 25-40 suggestions" in service.calls[0]["system"]

    def test_malformed_reply_raises(self, config: dict) -> None:
        service = ScriptedService(["I have no suggestions today."])
        with pytest.raises(MalformedResponse):
            AnnotationEngine(service, config).analyze("text", ["clarity"])

    def test_service_error_propagates(self, config: dict) -> None:
        service = ScriptedService([ServiceError("upstream down", status=529)])
        with pytest.raises(ServiceError) as exc_info:
            AnnotationEngine(service, config).analyze("text", ["clarity"])
        assert exc_info.value.status == 529

    def test_duplicate_text_anchors_first_occurrence(self, config: dict) -> None:
        doc = "A foo B foo C"
        service = ScriptedService([json.dumps([_item("foo", "bar")])])
        result = AnnotationEngine(service, config).analyze(doc, ["clarity"])
        assert [(s.start, s.end) for s in result] == [(2, 5)]

        accepted = SuggestionSet(result).accept(doc, result[0].id)
        assert accepted is not None
        assert accepted[0] == "A bar B foo C"

    def test_configured_anchor_strategy(self, config: dict) -> None:
        config["analysis"]["anchor_strategy"] = "unique"
        service = ScriptedService([json.dumps([_item("foo"), _item("B")])])
        result = AnnotationEngine(service, config).analyze("A foo B foo C", ["clarity"])
        assert [s.original for s in result] == ["B"]


class TestTransform:
    def test_short_text_single_request(self, config: dict) -> None:
        service = ScriptedService(["rewritten"])
        progress: list[str] = []
        out = AnnotationEngine(service, config).transform("Short text.", progress.append)
        assert out == "rewritten"
        assert progress == []
        assert len(service.calls) == 1
        assert service.calls[0]["max_tokens"] == 8000
        assert service.calls[0]["messages"][0]["content"].startswith(
            "Please prepare this document"
        )

    def test_long_text_processed_in_order(self, config: dict) -> None:
        config["prepare"]["max_words_per_segment"] = 3
        text = "one two three\n\nfour five six\n\nseven"
        service = ScriptedService(["A", "B", "C"])
        progress: list[str] = []
        out = AnnotationEngine(service, config).transform(text, progress.append)
        assert out == "A\n\nB\n\nC"
        assert progress == [
            "Processing section 1 of 3...",
            "Processing section 2 of 3...",
            "Processing section 3 of 3...",
        ]
        assert [c["max_tokens"] for c in service.calls] == [6000, 6000, 6000]
        assert service.calls[1]["messages"][0]["content"].endswith("four five six")
        assert "section of a longer document" in service.calls[0]["messages"][0]["content"]

    def test_single_reply_is_stripped(self, config: dict) -> None:
        service = ScriptedService(["\n\nrewritten\n"])
        assert AnnotationEngine(service, config).transform("Short text.") == "rewritten"

    def test_segment_replies_stripped_before_joining(self, config: dict) -> None:
        config["prepare"]["max_words_per_segment"] = 3
        text = "one two three\n\nfour five six"
        service = ScriptedService(["  A\n", "\nB  "])
        assert AnnotationEngine(service, config).transform(text) == "A\n\nB"

    def test_failed_segment_aborts(self, config: dict) -> None:
        config["prepare"]["max_words_per_segment"] = 3
        text = "one two three\n\nfour five six\n\nseven"
        service = ScriptedService(["A", ServiceError("boom", status=500)])
        with pytest.raises(ServiceError):
            AnnotationEngine(service, config).transform(text)
        # Third segment never requested
        assert len(service.calls) == 2


class TestChat:
    def test_context_window_and_roles(self, config: dict) -> None:
        config["chat"]["context_messages"] = 3
        history = [
            {"role": "assistant", "content": "welcome"},
            {"role": "system", "content": "ignored"},
            {"role": "user", "content": "q1"},
            {"role": "assistant", "content": "a1"},
            {"role": "user", "content": "q2"},
        ]
        service = ScriptedService(["reply"])
        out = AnnotationEngine(service, config).chat("doc", history, "q3", pending=4)
        assert out == "reply"
        call = service.calls[0]
        assert call["messages"] == [
            {"role": "user", "content": "q1"},
            {"role": "assistant", "content": "a1"},
            {"role": "user", "content": "q2"},
            {"role": "user", "content": "q3"},
        ]
        assert "Current suggestions pending: 4" in call["system"]
        assert call["max_tokens"] == 4000


class TestPrompts:
    def test_suggestion_target(self) -> None:
        assert suggestion_target(7, "25-40") == "7"
        assert suggestion_target("exhaustive", "25-40") == "25-40"

    def test_author_name_in_analysis_prompt(self) -> None:
        system = render_analysis_system(
            categories=["clarity"], limit=5, author={"name": "Dr. Reyes", "description": None},
        )
        assert "helping Dr. Reyes refine" in system
        assert "clarity|grammar|tone|scripture|terminology" in system

    def test_anonymous_author(self) -> None:
        system = render_analysis_system(categories=["grammar"], limit=5)
        assert "helping an author refine" in system

    def test_chat_preview_truncated(self) -> None:
        system = render_chat_system(document="x" * 50, pending=0, preview_chars=10)
        assert "x" * 10 + TRUNCATION_MARKER in system
        assert "x" * 11 not in system

    def test_chat_preview_short_document_untouched(self) -> None:
        system = render_chat_system(document="short doc", pending=2, preview_chars=10)
        assert "short doc" in system
        assert TRUNCATION_MARKER not in system


class TestCategories:
    def test_normalize_orders_and_filters(self) -> None:
        assert normalize_categories(["tone", "bogus", "clarity", "tone"]) == ["clarity", "tone"]

    def test_normalize_non_list(self) -> None:
        assert normalize_categories("clarity") == []
        assert normalize_categories(None) == []

    def test_combined_guidance_joins_with_blank_line(self) -> None:
        text = combined_guidance(["clarity", "grammar"])
        assert text == get_category("clarity").guidance + "\n\n" + get_category("grammar").guidance
