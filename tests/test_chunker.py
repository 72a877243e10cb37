"""Tests for plainness.annotate.chunker."""

from __future__ import annotations

import pytest

from plainness.annotate.chunker import (
    count_words,
    join_segments,
    plan_segments,
    split_paragraphs,
)


class TestCountWords:
    def test_whitespace_tokens(self) -> None:
        assert count_words("one two\tthree\nfour") == 4

    def test_empty_and_blank(self) -> None:
        assert count_words("") == 0
        assert count_words("   \n\n ") == 0


class TestSplitParagraphs:
    def test_pairs_rebuild_text(self) -> None:
        text = "first\n\nsecond\n\n\n\nthird"
        pairs = split_paragraphs(text)
        assert pairs == [("", "first"), ("\n\n", "second"), ("\n\n\n\n", "third")]
        assert "".join(sep + para for sep, para in pairs) == text

    def test_single_newline_is_not_a_break(self) -> None:
        assert split_paragraphs("line one\nline two") == [("", "line one\nline two")]


class TestPlanSegments:
    def test_packs_paragraphs_up_to_budget(self) -> None:
        text = "one two three\n\nfour five six\n\nseven"
        assert plan_segments(text, 6) == ["one two three\n\nfour five six", "seven"]

    def test_oversized_paragraph_gets_own_segment(self) -> None:
        text = "a b\n\nc d e f g\n\nh"
        segments = plan_segments(text, 2)
        assert segments == ["a b", "c d e f g", "h"]

    def test_short_text_is_single_segment(self) -> None:
        text = "Just a short note.\n\nWith two paragraphs."
        assert plan_segments(text, 1500) == [text]

    def test_no_paragraph_breaks_is_single_segment(self) -> None:
        text = " ".join(["word"] * 50)
        assert plan_segments(text, 10) == [text]

    def test_surplus_newlines_stay_on_earlier_segment(self) -> None:
        segments = plan_segments("a\n\n\nb", 1)
        assert segments == ["a\n", "b"]
        assert join_segments(segments) == "a\n\n\nb"

    @pytest.mark.parametrize("budget", [1, 2, 3, 5, 100])
    def test_round_trip(self, budget: int) -> None:
        text = "Alpha beta.\n\nGamma delta epsilon.\n\n\nZeta\neta theta.\n\nIota"
        assert join_segments(plan_segments(text, budget)) == text

    def test_segments_respect_budget(self) -> None:
        paragraphs = [" ".join(["w"] * n) for n in (3, 4, 2, 5, 1, 1)]
        for segment in plan_segments("\n\n".join(paragraphs), 6):
            assert count_words(segment) <= 6

    def test_empty_text(self) -> None:
        assert plan_segments("", 10) == [""]

    def test_invalid_budget(self) -> None:
        with pytest.raises(ValueError, match="max_words"):
            plan_segments("text", 0)
