"""Tests for marker parsing and font descriptors."""

from __future__ import annotations

import pytest

from domain.marked_text import (
    INVALID_SPAN_CODE,
    Highlight,
    HighlightSpan,
    LayoutValidationError,
    TextSegment,
    WrappedLine,
    build_font_descriptor,
    normalize_line_breaks,
    parse_font_size,
    parse_inline_formatting,
    parse_marked_block,
    parse_marked_text,
)


def test_mark_tags_are_stripped_and_anchored() -> None:
    parsed = parse_marked_text("I <mark>love</mark> you")

    assert parsed.text == "I love you"
    assert parsed.highlights == (Highlight(phrase="love", start=2),)
    highlight = parsed.highlights[0]
    assert parsed.text[highlight.start : highlight.start + len(highlight.phrase)] == "love"


def test_multiple_marks_keep_clean_offsets() -> None:
    parsed = parse_marked_text("<mark>one</mark> and <mark>two</mark>")

    assert parsed.text == "one and two"
    assert [(item.phrase, item.start) for item in parsed.highlights] == [
        ("one", 0),
        ("two", 8),
    ]


def test_unclosed_mark_is_literal() -> None:
    parsed = parse_marked_text("a <mark>b</mark> c <mark>d")

    assert parsed.text == "a b c <mark>d"
    assert parsed.highlights == (Highlight(phrase="b", start=2),)


def test_empty_input_has_no_highlights() -> None:
    parsed = parse_marked_text("")

    assert parsed.text == ""
    assert parsed.highlights == ()


def test_empty_mark_keeps_empty_phrase() -> None:
    parsed = parse_marked_text("x<mark></mark>y")

    assert parsed.text == "xy"
    assert parsed.highlights == (Highlight(phrase="", start=1),)


def test_line_break_tags_become_newlines() -> None:
    assert normalize_line_breaks("a<br>b<BR/>c<br />d") == "a\nb\nc\nd"


def test_inline_formatting_segments() -> None:
    segments = parse_inline_formatting("Hello *bold* and _it_")

    assert segments == (
        TextSegment("Hello "),
        TextSegment("bold", bold=True),
        TextSegment(" and "),
        TextSegment("it", italic=True),
    )


def test_inline_formatting_nests_one_level() -> None:
    segments = parse_inline_formatting("*bold _both_ end*")

    assert segments == (
        TextSegment("bold ", bold=True),
        TextSegment("both", bold=True, italic=True),
        TextSegment(" end", bold=True),
    )


def test_plain_bold_plain_is_three_segments() -> None:
    assert parse_inline_formatting("plain *bold* plain") == (
        TextSegment("plain "),
        TextSegment("bold", bold=True),
        TextSegment(" plain"),
    )


def test_unmatched_or_empty_delimiters_stay_literal() -> None:
    assert parse_inline_formatting("a *b") == (TextSegment("a *b"),)
    assert parse_inline_formatting("a ** b") == (TextSegment("a ** b"),)


def test_empty_inline_formatting_returns_one_segment() -> None:
    assert parse_inline_formatting("") == (TextSegment(""),)


def test_segments_concatenate_to_clean_text() -> None:
    raw_text = "plain *bold* then _italic *both*_ tail"
    segments = parse_inline_formatting(raw_text)

    assert "".join(segment.text for segment in segments) == (
        "plain bold then italic both tail"
    )


def test_marked_block_remaps_highlights_past_emphasis() -> None:
    block = parse_marked_block("<mark>*big*</mark> deal")

    assert block.text == "big deal"
    assert block.highlights == (Highlight(phrase="big", start=0),)
    assert block.segments == (TextSegment("big", bold=True), TextSegment(" deal"))


def test_marked_block_highlight_after_emphasis() -> None:
    block = parse_marked_block("*Note:* read <mark>this part</mark> twice")

    assert block.text == "Note: read this part twice"
    highlight = block.highlights[0]
    assert highlight.start == 11
    assert block.text[highlight.start : highlight.start + len(highlight.phrase)] == (
        "this part"
    )


def test_wrapped_line_text_joins_segments() -> None:
    line = WrappedLine(
        segments=(TextSegment("a "), TextSegment("b", bold=True)), width=3.0
    )

    assert line.text == "a b"


def test_highlight_span_rejects_inverted_range() -> None:
    with pytest.raises(LayoutValidationError) as excinfo:
        HighlightSpan(start=5, end=2, color="#F0E231")

    assert excinfo.value.code == INVALID_SPAN_CODE


def test_font_descriptor_round_trip_size() -> None:
    descriptor = build_font_descriptor(
        32, ("Merriweather", "Open Sans"), bold=True, italic=True
    )

    assert descriptor == 'italic bold 32px Merriweather, "Open Sans"'
    assert parse_font_size(descriptor) == 32.0


def test_font_size_defaults_when_missing() -> None:
    assert parse_font_size("Merriweather") == 26.0
    assert parse_font_size("bold 18.5px serif") == 18.5
