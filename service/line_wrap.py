"""Line wrapping strategies for render_slide_text."""

from __future__ import annotations

import logging
from typing import Callable, Sequence, Tuple

from domain.marked_text import (
    INVALID_WIDTH_CODE,
    LayoutValidationError,
    MetricsProvider,
    TextSegment,
    WrappedLine,
)

ORPHAN_PENALTY = 1e6
BALANCED_LINE_COUNTS = (2, 3)
LOGGER = logging.getLogger("render_slide_text.line_wrap")


def measure_width(metrics: MetricsProvider, font: str, text_value: str) -> float:
    """Measure text after setting the font; never trust prior font state."""
    metrics.set_font(font)
    return float(metrics.measure_text(text_value).width)


def _require_positive_width(max_width: float) -> None:
    if max_width <= 0:
        raise LayoutValidationError(
            INVALID_WIDTH_CODE, f"max_width must be positive, got {max_width}"
        )


def wrap_words(
    metrics: MetricsProvider,
    words: Sequence[str],
    max_width: float,
    font: str,
) -> list[str]:
    """Greedy first-fit wrap of a word sequence."""
    _require_positive_width(max_width)
    lines: list[str] = []
    line = ""
    for word_index, word in enumerate(words):
        test_line = line + word + " "
        if measure_width(metrics, font, test_line) > max_width and word_index > 0:
            lines.append(line.strip())
            line = word + " "
        else:
            line = test_line
    lines.append(line.strip())
    return lines


def wrap_text(
    metrics: MetricsProvider, text_value: str, max_width: float, font: str
) -> list[str]:
    """Greedy wrap of text split on single spaces."""
    return wrap_words(metrics, text_value.split(" "), max_width, font)


def count_wrapped_lines(
    metrics: MetricsProvider,
    texts: Sequence[str],
    max_width: float,
    font: str,
) -> list[int]:
    """Return how many greedy lines each text needs."""
    return [len(wrap_text(metrics, text_value, max_width, font)) for text_value in texts]


def score_partition(
    metrics: MetricsProvider, lines: Sequence[str], max_width: float, font: str
) -> float:
    """Sum of squared slack from the full width, plus the orphan penalty."""
    raggedness = sum(
        (max_width - measure_width(metrics, font, line)) ** 2 for line in lines
    )
    if len(lines[-1].split(" ")) == 1:
        raggedness += ORPHAN_PENALTY
    return raggedness


def balanced_wrap_text(
    metrics: MetricsProvider, text_value: str, max_width: float, font: str
) -> list[str]:
    """Pick the 2- or 3-line partition with the least raggedness.

    Every break combination is enumerated, so this is only meant for short
    titles. Falls back to greedy wrapping when no partition exists.
    """
    _require_positive_width(max_width)
    words = text_value.split(" ")
    best_lines: list[str] | None = None
    best_score = float("inf")

    for line_count in BALANCED_LINE_COUNTS:

        def search(word_index: int, current_lines: list[str]) -> None:
            nonlocal best_lines, best_score
            if len(current_lines) == line_count - 1:
                candidate = current_lines + [" ".join(words[word_index:])]
                score = score_partition(metrics, candidate, max_width, font)
                if score < best_score:
                    best_score = score
                    best_lines = candidate
                return

            remaining_breaks = line_count - len(current_lines) - 1
            for break_index in range(word_index + 1, len(words) - remaining_breaks + 1):
                search(break_index, current_lines + [" ".join(words[word_index:break_index])])

        search(0, [])

    if best_lines is None:
        LOGGER.debug("balanced wrap found no partition; using greedy wrap")
        return wrap_text(metrics, text_value, max_width, font)
    return best_lines


def _merge_segments(pieces: Sequence[TextSegment]) -> list[TextSegment]:
    merged: list[TextSegment] = []
    for piece in pieces:
        if merged and (merged[-1].bold, merged[-1].italic) == (piece.bold, piece.italic):
            previous = merged[-1]
            merged[-1] = TextSegment(previous.text + piece.text, previous.bold, previous.italic)
        else:
            merged.append(piece)
    return merged


def _finish_line(
    metrics: MetricsProvider,
    pieces: Sequence[TextSegment],
    font_for: Callable[[bool, bool], str],
) -> WrappedLine:
    segments = _merge_segments(pieces)
    while True:
        last = segments[-1]
        trimmed = last.text.rstrip(" ")
        if trimmed or len(segments) == 1:
            segments[-1] = TextSegment(trimmed, last.bold, last.italic)
            break
        segments.pop()
    width = sum(
        measure_width(metrics, font_for(segment.bold, segment.italic), segment.text)
        for segment in segments
    )
    return WrappedLine(segments=tuple(segments), width=width)


def split_segment_words(segments: Sequence[TextSegment]) -> list[list[TextSegment]]:
    """Group styled pieces into words; a word ends only at a space.

    A word keeps its trailing space and may span several segments, so
    "*bold*," stays one unbreakable word.
    """
    words: list[list[TextSegment]] = []
    word: list[TextSegment] = []
    for segment in segments:
        parts = segment.text.split(" ")
        for part_index, part in enumerate(parts):
            is_last = part_index == len(parts) - 1
            piece_text = part if is_last else part + " "
            if piece_text:
                word.append(TextSegment(piece_text, segment.bold, segment.italic))
            if not is_last:
                words.append(word)
                word = []
    if word:
        words.append(word)
    return words


def wrap_segments(
    metrics: MetricsProvider,
    segments: Sequence[TextSegment],
    max_width: float,
    font_for: Callable[[bool, bool], str],
) -> Tuple[WrappedLine, ...]:
    """Greedy wrap across styled segments, breaking only between whole words."""
    _require_positive_width(max_width)
    lines: list[WrappedLine] = []
    current: list[TextSegment] = []
    current_width = 0.0

    for word in split_segment_words(segments):
        if not current and not "".join(piece.text for piece in word).strip():
            continue
        word_width = sum(
            measure_width(metrics, font_for(piece.bold, piece.italic), piece.text)
            for piece in word
        )
        if current_width + word_width > max_width and current:
            lines.append(_finish_line(metrics, current, font_for))
            current = []
            current_width = 0.0
        current.extend(word)
        current_width += word_width

    if current:
        lines.append(_finish_line(metrics, current, font_for))
    if not lines:
        lines.append(WrappedLine(segments=(TextSegment(""),), width=0.0))
    return tuple(lines)


def split_segment_paragraphs(
    segments: Sequence[TextSegment],
) -> list[Tuple[TextSegment, ...]]:
    """Split styled segments at explicit newlines, keeping each piece's style."""
    paragraphs: list[list[TextSegment]] = [[]]
    for segment in segments:
        parts = segment.text.split("\n")
        for part_index, part in enumerate(parts):
            if part_index > 0:
                paragraphs.append([])
            if part:
                paragraphs[-1].append(TextSegment(part, segment.bold, segment.italic))
    return [tuple(paragraph) or (TextSegment(""),) for paragraph in paragraphs]
