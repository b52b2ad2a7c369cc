"""Domain types and marker parsing for render_slide_text."""

from __future__ import annotations

from bisect import bisect_left
from dataclasses import dataclass
import re
from typing import Protocol, Sequence, Tuple

INVALID_CONFIG_CODE = "slide_text.input.invalid_config"
INVALID_COLOR_CODE = "slide_text.input.invalid_color"
INVALID_WIDTH_CODE = "slide_text.input.invalid_width"
INPUT_FILE_CODE = "slide_text.input.file_error"
EMPTY_TEXT_CODE = "slide_text.input.empty_text"
FONT_DIR_CODE = "slide_text.input.fonts_missing"
FONT_LOAD_CODE = "slide_text.input.fonts_unloadable"
BACKGROUND_IMAGE_CODE = "slide_text.input.background_image"
AUDIO_FILE_CODE = "slide_text.input.audio_track"
LINE_MISMATCH_CODE = "slide_text.layout.line_mismatch"
INVALID_SPAN_CODE = "slide_text.layout.invalid_span"

MARK_OPEN = "<mark>"
MARK_CLOSE = "</mark>"
BOLD_DELIMITER = "*"
ITALIC_DELIMITER = "_"
LINE_BREAK_TAG_PATTERN = re.compile(r"<br\s*/?>", re.IGNORECASE)
FONT_SIZE_PATTERN = re.compile(r"(\d+(?:\.\d+)?)px")
DEFAULT_FONT_SIZE = 26


class LayoutValidationError(ValueError):
    """Validation error with a stable error code."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code


@dataclass(frozen=True)
class TextMetrics:
    """Measured text extents."""

    width: float


class MetricsProvider(Protocol):
    """Anything that can measure text under a font descriptor."""

    def set_font(self, descriptor: str) -> None: ...

    def measure_text(self, text_value: str) -> TextMetrics: ...


@dataclass(frozen=True)
class Highlight:
    """Highlighted phrase with an optional color and clean-text anchor."""

    phrase: str
    color: str | None = None
    start: int | None = None


@dataclass(frozen=True)
class ParsedText:
    """Clean text plus the highlights found in it."""

    text: str
    highlights: Tuple[Highlight, ...]


@dataclass(frozen=True)
class TextSegment:
    """Contiguous run of text sharing one emphasis style."""

    text: str
    bold: bool = False
    italic: bool = False


@dataclass(frozen=True)
class MarkedBlock:
    """Text with both marker grammars resolved into clean-text coordinates."""

    text: str
    highlights: Tuple[Highlight, ...]
    segments: Tuple[TextSegment, ...]


@dataclass(frozen=True)
class WrappedLine:
    """One wrapped line built from styled segments."""

    segments: Tuple[TextSegment, ...]
    width: float

    @property
    def text(self) -> str:
        return "".join(segment.text for segment in self.segments)


@dataclass(frozen=True)
class HighlightSpan:
    """Highlight range local to a single wrapped line."""

    start: int
    end: int
    color: str

    def __post_init__(self) -> None:
        if self.start < 0 or self.end < self.start:
            raise LayoutValidationError(
                INVALID_SPAN_CODE, f"invalid span {self.start}..{self.end}"
            )


@dataclass(frozen=True)
class StyleRun:
    """Maximal range of one (bold, italic) pair local to a line."""

    start: int
    end: int
    bold: bool
    italic: bool


@dataclass(frozen=True)
class LineLayout:
    """A wrapped line with its relocated highlight spans and style runs."""

    text: str
    start: int
    spans: Tuple[HighlightSpan, ...]
    runs: Tuple[StyleRun, ...]


@dataclass(frozen=True)
class HighlightRect:
    """Highlight background rectangle in device pixels."""

    x: float
    y: float
    width: float
    height: float


def normalize_line_breaks(raw_text: str) -> str:
    """Replace <br> style tags with newlines."""
    return LINE_BREAK_TAG_PATTERN.sub("\n", raw_text)


def parse_marked_text(raw_text: str) -> ParsedText:
    """Strip <mark> tags and collect the highlighted phrases.

    The scan is forward-only and never backtracks: an opening tag without a
    matching close leaves the rest of the input as literal text.
    """
    pieces: list[str] = []
    highlights: list[Highlight] = []
    clean_length = 0
    cursor = 0

    while cursor < len(raw_text):
        open_index = raw_text.find(MARK_OPEN, cursor)
        if open_index == -1:
            break
        phrase_start = open_index + len(MARK_OPEN)
        close_index = raw_text.find(MARK_CLOSE, phrase_start)
        if close_index == -1:
            break

        before = raw_text[cursor:open_index]
        pieces.append(before)
        clean_length += len(before)

        phrase = raw_text[phrase_start:close_index]
        highlights.append(Highlight(phrase=phrase, start=clean_length))
        pieces.append(phrase)
        clean_length += len(phrase)
        cursor = close_index + len(MARK_CLOSE)

    pieces.append(raw_text[cursor:])
    return ParsedText(text="".join(pieces), highlights=tuple(highlights))


def _find_emphasis_run(text_value: str, index: int, delimiters: str) -> int:
    """Return the closing delimiter index for a run opening at index, or -1."""
    delimiter = text_value[index]
    if delimiter not in delimiters:
        return -1
    close_index = text_value.find(delimiter, index + 1)
    if close_index == -1 or close_index == index + 1:
        return -1
    return close_index


def _scan_emphasis(
    text_value: str,
    offset: int,
    delimiters: str,
    bold: bool,
    italic: bool,
) -> list[Tuple[TextSegment, Tuple[int, ...]]]:
    """Split text into styled segments, keeping the source index of each character."""
    results: list[Tuple[TextSegment, Tuple[int, ...]]] = []
    plain_start = 0
    index = 0

    def flush_plain(end: int) -> None:
        if end > plain_start:
            results.append(
                (
                    TextSegment(text_value[plain_start:end], bold, italic),
                    tuple(range(offset + plain_start, offset + end)),
                )
            )

    while index < len(text_value):
        close_index = _find_emphasis_run(text_value, index, delimiters)
        if close_index == -1:
            index += 1
            continue

        flush_plain(index)
        inner_text = text_value[index + 1 : close_index]
        inner_offset = offset + index + 1
        if text_value[index] == BOLD_DELIMITER:
            inner_bold, inner_italic = True, italic
            nested = ITALIC_DELIMITER if ITALIC_DELIMITER in delimiters else ""
        else:
            inner_bold, inner_italic = bold, True
            nested = BOLD_DELIMITER if BOLD_DELIMITER in delimiters else ""

        if nested:
            results.extend(
                _scan_emphasis(inner_text, inner_offset, nested, inner_bold, inner_italic)
            )
        else:
            results.append(
                (
                    TextSegment(inner_text, inner_bold, inner_italic),
                    tuple(range(inner_offset, inner_offset + len(inner_text))),
                )
            )
        index = close_index + 1
        plain_start = index

    flush_plain(len(text_value))
    return results


def _scan_inline_formatting(
    text_value: str,
) -> Tuple[Tuple[TextSegment, ...], Tuple[int, ...]]:
    scanned = _scan_emphasis(
        text_value, 0, BOLD_DELIMITER + ITALIC_DELIMITER, False, False
    )
    if not scanned:
        return (TextSegment(text_value),), tuple(range(len(text_value)))
    segments = tuple(segment for segment, _ in scanned)
    kept_indices = tuple(
        source_index for _, indices in scanned for source_index in indices
    )
    return segments, kept_indices


def parse_inline_formatting(text_value: str) -> Tuple[TextSegment, ...]:
    """Split *bold* and _italic_ runs into styled segments."""
    segments, _ = _scan_inline_formatting(text_value)
    return segments


def parse_marked_block(raw_text: str) -> MarkedBlock:
    """Parse <mark> highlights, then emphasis, keeping highlight offsets exact."""
    parsed = parse_marked_text(raw_text)
    segments, kept_indices = _scan_inline_formatting(parsed.text)
    clean_text = "".join(segment.text for segment in segments)

    highlights: list[Highlight] = []
    for highlight in parsed.highlights:
        if highlight.start is None:
            continue
        start = bisect_left(kept_indices, highlight.start)
        end = bisect_left(kept_indices, highlight.start + len(highlight.phrase))
        if end <= start:
            continue
        highlights.append(
            Highlight(phrase=clean_text[start:end], color=highlight.color, start=start)
        )

    return MarkedBlock(text=clean_text, highlights=tuple(highlights), segments=segments)


def build_font_descriptor(
    size: float, families: Sequence[str], bold: bool = False, italic: bool = False
) -> str:
    """Build a "[style] [weight] <size>px <family>, ..." descriptor."""
    size_text = f"{int(size)}" if float(size).is_integer() else f"{size}"
    family_text = ", ".join(
        f'"{family}"' if " " in family else family for family in families
    )
    parts = []
    if italic:
        parts.append("italic")
    if bold:
        parts.append("bold")
    parts.append(f"{size_text}px")
    parts.append(family_text)
    return " ".join(parts)


def parse_font_size(descriptor: str, default: float = DEFAULT_FONT_SIZE) -> float:
    """Extract the pixel size from a font descriptor."""
    match = FONT_SIZE_PATTERN.search(descriptor)
    if not match:
        return float(default)
    return float(match.group(1))
