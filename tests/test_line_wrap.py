"""Tests for greedy, balanced and segment wrapping."""

from __future__ import annotations

import pytest

from domain.marked_text import (
    INVALID_WIDTH_CODE,
    LayoutValidationError,
    TextMetrics,
    TextSegment,
    parse_inline_formatting,
)
from service.line_wrap import (
    ORPHAN_PENALTY,
    balanced_wrap_text,
    count_wrapped_lines,
    measure_width,
    score_partition,
    split_segment_paragraphs,
    split_segment_words,
    wrap_segments,
    wrap_text,
)

REGULAR_FONT = "32px Merriweather"
BOLD_FONT = "bold 32px Merriweather"


class FixedAdvanceMetrics:
    """Every character advances by a fixed width; bold fonts advance double."""

    def __init__(self, advance: float = 10.0) -> None:
        self.advance = advance
        self.font = ""
        self.font_calls: list[str] = []

    def set_font(self, descriptor: str) -> None:
        self.font = descriptor
        self.font_calls.append(descriptor)

    def measure_text(self, text_value: str) -> TextMetrics:
        scale = 2.0 if self.font.startswith("bold") else 1.0
        return TextMetrics(width=len(text_value) * self.advance * scale)


def font_for(bold: bool, italic: bool) -> str:
    return BOLD_FONT if bold else REGULAR_FONT


def test_measure_width_sets_font_first() -> None:
    metrics = FixedAdvanceMetrics()
    metrics.set_font(BOLD_FONT)

    assert measure_width(metrics, REGULAR_FONT, "abc") == 30.0
    assert metrics.font_calls[-1] == REGULAR_FONT


def test_greedy_wrap_breaks_before_overflow() -> None:
    lines = wrap_text(FixedAdvanceMetrics(), "aaa bbb ccc", 80, REGULAR_FONT)

    assert lines == ["aaa bbb", "ccc"]


def test_greedy_wrap_empty_text() -> None:
    assert wrap_text(FixedAdvanceMetrics(), "", 100, REGULAR_FONT) == [""]


def test_greedy_wrap_keeps_overlong_first_word() -> None:
    lines = wrap_text(FixedAdvanceMetrics(), "abcdefghij xy", 50, REGULAR_FONT)

    assert lines == ["abcdefghij", "xy"]


def test_greedy_wrap_lines_rejoin_to_words() -> None:
    text_value = "the quick brown fox jumps over the lazy dog"
    lines = wrap_text(FixedAdvanceMetrics(), text_value, 120, REGULAR_FONT)

    assert " ".join(lines).split() == text_value.split()
    assert all(len(line) * 10 <= 120 for line in lines)


def test_wrap_rejects_non_positive_width() -> None:
    with pytest.raises(LayoutValidationError) as excinfo:
        wrap_text(FixedAdvanceMetrics(), "a b", 0, REGULAR_FONT)

    assert excinfo.value.code == INVALID_WIDTH_CODE


def test_count_wrapped_lines() -> None:
    counts = count_wrapped_lines(
        FixedAdvanceMetrics(), ["aaa bbb ccc", "a"], 80, REGULAR_FONT
    )

    assert counts == [2, 1]


def test_score_partition_adds_orphan_penalty() -> None:
    metrics = FixedAdvanceMetrics()

    assert score_partition(metrics, ["aaaa bbbb", "cccc dddd"], 90, REGULAR_FONT) == 0.0
    assert score_partition(metrics, ["aaaa bbbb cccc", "dddd"], 140, REGULAR_FONT) == (
        100.0**2 + ORPHAN_PENALTY
    )


def test_balanced_wrap_splits_evenly() -> None:
    lines = balanced_wrap_text(
        FixedAdvanceMetrics(), "aaaa bbbb cccc dddd", 90, REGULAR_FONT
    )

    assert lines == ["aaaa bbbb", "cccc dddd"]


def test_balanced_wrap_avoids_orphan_last_line() -> None:
    lines = balanced_wrap_text(FixedAdvanceMetrics(), "one two three", 130, REGULAR_FONT)

    assert lines == ["one", "two three"]


def test_balanced_wrap_single_word_falls_back_to_greedy() -> None:
    assert balanced_wrap_text(FixedAdvanceMetrics(), "Hello", 100, REGULAR_FONT) == [
        "Hello"
    ]


def test_balanced_wrap_two_words_uses_two_lines() -> None:
    lines = balanced_wrap_text(FixedAdvanceMetrics(), "Hello world", 500, REGULAR_FONT)

    assert lines == ["Hello", "world"]


def test_balanced_wrap_preserves_words() -> None:
    text_value = "Why most advice about writing is wrong"
    lines = balanced_wrap_text(FixedAdvanceMetrics(), text_value, 200, REGULAR_FONT)

    assert len(lines) in (2, 3)
    assert " ".join(lines) == text_value


def test_wrap_segments_measures_each_style() -> None:
    segments = (TextSegment("ab "), TextSegment("cd", bold=True))

    lines = wrap_segments(FixedAdvanceMetrics(), segments, 70, font_for)

    assert len(lines) == 1
    assert lines[0].text == "ab cd"
    assert lines[0].width == 70.0


def test_wrap_segments_breaks_between_styles() -> None:
    segments = (
        TextSegment("Hello "),
        TextSegment("bold", bold=True),
        TextSegment(" world"),
    )

    lines = wrap_segments(FixedAdvanceMetrics(advance=5.0), segments, 80, font_for)

    assert [line.text for line in lines] == ["Hello bold", "world"]
    assert lines[0].segments == (TextSegment("Hello "), TextSegment("bold", bold=True))
    assert lines[0].width == 70.0


def test_wrap_segments_trims_trailing_space() -> None:
    lines = wrap_segments(
        FixedAdvanceMetrics(), (TextSegment("aaa bbb ccc"),), 80, font_for
    )

    assert [line.text for line in lines] == ["aaa bbb", "ccc"]
    assert lines[0].width == 70.0


def test_wrap_segments_empty_returns_one_line() -> None:
    lines = wrap_segments(FixedAdvanceMetrics(), (TextSegment(""),), 80, font_for)

    assert len(lines) == 1
    assert lines[0].text == ""
    assert lines[0].width == 0.0


def test_greedy_wrap_is_idempotent() -> None:
    metrics = FixedAdvanceMetrics()
    text_value = "pack my box with five dozen liquor jugs"
    lines = wrap_text(metrics, text_value, 110, REGULAR_FONT)

    assert wrap_text(metrics, " ".join(lines), 110, REGULAR_FONT) == lines


def test_wrap_segments_keeps_punctuation_with_styled_word() -> None:
    segments = parse_inline_formatting("aaaa *bbbb*, cccc")

    lines = wrap_segments(FixedAdvanceMetrics(), segments, 95, font_for)

    assert [line.text for line in lines] == ["aaaa", "bbbb,", "cccc"]
    assert lines[1].segments == (TextSegment("bbbb", bold=True), TextSegment(","))
    assert lines[1].width == 90.0


def test_wrap_segments_never_splits_inside_a_word() -> None:
    segments = parse_inline_formatting("foo*bar*baz qux")

    lines = wrap_segments(FixedAdvanceMetrics(), segments, 60, font_for)

    assert [line.text for line in lines] == ["foobarbaz", "qux"]


def test_split_segment_words_spans_segments() -> None:
    words = split_segment_words(parse_inline_formatting("a *b*c d"))

    assert words == [
        [TextSegment("a ")],
        [TextSegment("b", bold=True), TextSegment("c ")],
        [TextSegment("d")],
    ]


def test_split_segment_paragraphs_keeps_styles() -> None:
    paragraphs = split_segment_paragraphs(
        (TextSegment("one\n"), TextSegment("two", bold=True), TextSegment("\n"))
    )

    assert paragraphs == [
        (TextSegment("one"),),
        (TextSegment("two", bold=True),),
        (TextSegment(""),),
    ]
