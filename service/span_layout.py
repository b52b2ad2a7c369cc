"""Relocate highlight and emphasis spans onto wrapped lines."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Sequence, Tuple

from domain.marked_text import (
    LINE_MISMATCH_CODE,
    Highlight,
    HighlightSpan,
    LayoutValidationError,
    LineLayout,
    StyleRun,
    TextSegment,
)

DEFAULT_HIGHLIGHT_COLOR = "#F0E231"
MIN_FALLBACK_PHRASE_LENGTH = 4
LOGGER = logging.getLogger("render_slide_text.span_layout")


@dataclass(frozen=True)
class HighlightRange:
    """Highlight occurrence in absolute clean-text offsets."""

    start: int
    end: int
    color: str | None


def find_phrase_indices(text_value: str, phrase: str) -> list[Tuple[int, int]]:
    """Return every non-overlapping occurrence of phrase, left to right."""
    if not phrase:
        return []
    indices: list[Tuple[int, int]] = []
    start_index = 0
    while start_index < len(text_value):
        found = text_value.find(phrase, start_index)
        if found == -1:
            break
        indices.append((found, found + len(phrase)))
        start_index = found + len(phrase)
    return indices


def locate_lines(text_value: str, lines: Sequence[str]) -> Tuple[int, ...]:
    """Return the clean-text offset where each wrapped line starts.

    Lines must appear in order, separated only by whitespace the wrapper
    consumed at the break.
    """
    offsets: list[int] = []
    cursor = 0
    for line in lines:
        while not text_value.startswith(line, cursor):
            if cursor >= len(text_value) or not text_value[cursor].isspace():
                raise LayoutValidationError(
                    LINE_MISMATCH_CODE,
                    f"wrapped line {line!r} not found at offset {cursor}",
                )
            cursor += 1
        offsets.append(cursor)
        cursor += len(line)
    return tuple(offsets)


def find_highlight_ranges(
    text_value: str, highlights: Sequence[Highlight]
) -> list[HighlightRange]:
    """Resolve highlights to absolute ranges, sorted by start."""
    ranges: list[HighlightRange] = []
    for highlight in highlights:
        if not highlight.phrase:
            continue
        anchor = highlight.start
        if anchor is not None and text_value.startswith(highlight.phrase, anchor):
            ranges.append(
                HighlightRange(anchor, anchor + len(highlight.phrase), highlight.color)
            )
            continue
        for start, end in find_phrase_indices(text_value, highlight.phrase):
            ranges.append(HighlightRange(start, end, highlight.color))
    ranges.sort(key=lambda item: (item.start, item.end))
    return ranges


def assign_highlight_colors(
    ranges: Sequence[HighlightRange], palette: Sequence[str]
) -> list[HighlightRange]:
    """Cycle the palette over ranges in first-seen order; explicit colors win."""
    colors = tuple(palette) or (DEFAULT_HIGHLIGHT_COLOR,)
    return [
        HighlightRange(
            item.start,
            item.end,
            item.color if item.color else colors[index % len(colors)],
        )
        for index, item in enumerate(ranges)
    ]


def clip_ranges_to_line(
    ranges: Sequence[HighlightRange], line_start: int, line_length: int
) -> Tuple[HighlightSpan, ...]:
    """Clip absolute ranges to one line, returning line-local spans."""
    line_end = line_start + line_length
    spans: list[HighlightSpan] = []
    for item in ranges:
        start = max(item.start, line_start)
        end = min(item.end, line_end)
        if end <= start:
            continue
        spans.append(
            HighlightSpan(
                start=start - line_start,
                end=end - line_start,
                color=item.color or DEFAULT_HIGHLIGHT_COLOR,
            )
        )
    return tuple(spans)


def _is_word_bounded(line: str, start: int, end: int) -> bool:
    before_ok = start == 0 or line[start - 1].isspace()
    after_ok = end == len(line) or line[end].isspace()
    return before_ok and after_ok


def _search_ranges_in_line(
    line: str, highlights: Sequence[Highlight]
) -> list[HighlightRange]:
    """Only phrases long enough to be unambiguous and on word boundaries count."""
    ranges: list[HighlightRange] = []
    for highlight in highlights:
        if len(highlight.phrase) < MIN_FALLBACK_PHRASE_LENGTH:
            continue
        for start, end in find_phrase_indices(line, highlight.phrase):
            if _is_word_bounded(line, start, end):
                ranges.append(HighlightRange(start, end, highlight.color))
    ranges.sort(key=lambda item: (item.start, item.end))
    return ranges


def _colored_spans(
    ranges: Sequence[HighlightRange], palette: Sequence[str]
) -> Tuple[HighlightSpan, ...]:
    return tuple(
        HighlightSpan(item.start, item.end, item.color or DEFAULT_HIGHLIGHT_COLOR)
        for item in assign_highlight_colors(ranges, palette)
    )


def relocate_highlights(
    text_value: str,
    highlights: Sequence[Highlight],
    lines: Sequence[str],
    palette: Sequence[str] = (),
) -> Tuple[Tuple[HighlightSpan, ...], ...]:
    """Return per-line highlight spans for the wrapped lines."""
    return tuple(
        line_layout.spans
        for line_layout in layout_lines(text_value, lines, highlights, palette=palette)
    )


def build_emphasis_map(
    segments: Sequence[TextSegment],
) -> Tuple[Tuple[bool, bool], ...]:
    """Expand segments to one (bold, italic) pair per character."""
    return tuple(
        (segment.bold, segment.italic) for segment in segments for _ in segment.text
    )


def build_style_runs(
    line: str,
    line_start: int,
    emphasis_map: Sequence[Tuple[bool, bool]],
) -> Tuple[StyleRun, ...]:
    """Group a line into maximal runs of constant emphasis."""
    if not line:
        return ()
    runs: list[StyleRun] = []
    run_start = 0
    run_style = _style_at(emphasis_map, line_start)
    for index in range(1, len(line)):
        style = _style_at(emphasis_map, line_start + index)
        if style != run_style:
            runs.append(StyleRun(run_start, index, run_style[0], run_style[1]))
            run_start = index
            run_style = style
    runs.append(StyleRun(run_start, len(line), run_style[0], run_style[1]))
    return tuple(runs)


def _style_at(
    emphasis_map: Sequence[Tuple[bool, bool]], index: int
) -> Tuple[bool, bool]:
    if 0 <= index < len(emphasis_map):
        return emphasis_map[index]
    return (False, False)


def layout_lines(
    text_value: str,
    lines: Sequence[str],
    highlights: Sequence[Highlight],
    segments: Sequence[TextSegment] | None = None,
    palette: Sequence[str] = (),
) -> Tuple[LineLayout, ...]:
    """Relocate highlights and emphasis onto wrapped lines."""
    emphasis_map = build_emphasis_map(segments) if segments else ()
    try:
        offsets: Tuple[int, ...] | None = locate_lines(text_value, lines)
    except LayoutValidationError as exc:
        LOGGER.warning("%s: %s; using same-text search", exc.code, str(exc).strip())
        offsets = None

    if offsets is None:
        line_ranges = [_search_ranges_in_line(line, highlights) for line in lines]
        colored = iter(
            _colored_spans([item for ranges in line_ranges for item in ranges], palette)
        )
        return tuple(
            LineLayout(
                text=line,
                start=0,
                spans=tuple(next(colored) for _ in ranges),
                runs=build_style_runs(line, 0, ()),
            )
            for line, ranges in zip(lines, line_ranges)
        )

    ranges = assign_highlight_colors(
        find_highlight_ranges(text_value, highlights), palette
    )
    return tuple(
        LineLayout(
            text=line,
            start=offset,
            spans=clip_ranges_to_line(ranges, offset, len(line)),
            runs=build_style_runs(line, offset, emphasis_map),
        )
        for line, offset in zip(lines, offsets)
    )
