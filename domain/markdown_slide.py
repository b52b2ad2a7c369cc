"""Markdown slide parsing for render_slide_text."""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
import re
from typing import Tuple

from domain.marked_text import (
    EMPTY_TEXT_CODE,
    Highlight,
    LayoutValidationError,
    MarkedBlock,
    TextSegment,
    normalize_line_breaks,
    parse_marked_block,
)

SLIDE_SEPARATOR_PATTERN = re.compile(r"\n---\n")
BULLET_PREFIX = "• "
SPACER_LINE_HEIGHT = 30


class LineKind(str, Enum):
    """Rendered line categories."""

    TEXT = "text"
    BLOCKQUOTE = "blockquote"
    LIST = "list"
    SPACER = "spacer"


@dataclass(frozen=True)
class LineStyle:
    """Typography for one markdown line kind."""

    font_size: int
    line_height: int
    color: str
    indent: int = 0
    extra_spacing_after: int = 0
    force_bold: bool = False
    force_italic: bool = False


HEADING_STYLES = {
    1: LineStyle(font_size=90, line_height=110, color="#222", force_bold=True),
    2: LineStyle(font_size=54, line_height=70, color="#222", force_bold=True),
    3: LineStyle(font_size=42, line_height=58, color="#222", force_bold=True),
}
BLOCKQUOTE_STYLE = LineStyle(
    font_size=32, line_height=50, color="#555", indent=40, force_italic=True
)
LIST_STYLE = LineStyle(
    font_size=32, line_height=46, color="#222", indent=20, extra_spacing_after=20
)
PARAGRAPH_STYLE = LineStyle(font_size=34, line_height=52, color="#222")
SPACER_STYLE = LineStyle(font_size=1, line_height=SPACER_LINE_HEIGHT, color="transparent")

HEADING_PATTERN = re.compile(r"^(#{1,3})\s+")
BLOCKQUOTE_PATTERN = re.compile(r"^>\s+")
LIST_PATTERN = re.compile(r"^-\s+")


@dataclass(frozen=True)
class SlideLine:
    """One source line of a slide, parsed and styled."""

    kind: LineKind
    block: MarkedBlock
    style: LineStyle
    heading_level: int = 0


@dataclass(frozen=True)
class MarkdownSlide:
    """A slide and its parsed lines."""

    content: str
    lines: Tuple[SlideLine, ...]


def split_slides(markdown: str) -> Tuple[str, ...]:
    """Split markdown on --- separator lines, dropping empty slides."""
    normalized = markdown.replace("\r\n", "\n").replace("\ufeff", "")
    slides = (part.strip() for part in SLIDE_SEPARATOR_PATTERN.split(normalized))
    return tuple(slide for slide in slides if slide)


def _force_style(block: MarkedBlock, style: LineStyle) -> MarkedBlock:
    segments = block.segments
    if style.force_bold:
        segments = tuple(
            segment if segment.italic else replace(segment, bold=True)
            for segment in segments
        )
    if style.force_italic:
        segments = tuple(
            segment if segment.bold else replace(segment, italic=True)
            for segment in segments
        )
    return replace(block, segments=segments)


def _with_bullet(block: MarkedBlock) -> MarkedBlock:
    offset = len(BULLET_PREFIX)
    highlights = tuple(
        Highlight(
            phrase=highlight.phrase,
            color=highlight.color,
            start=None if highlight.start is None else highlight.start + offset,
        )
        for highlight in block.highlights
    )
    return MarkedBlock(
        text=BULLET_PREFIX + block.text,
        highlights=highlights,
        segments=(TextSegment(BULLET_PREFIX),) + block.segments,
    )


def parse_slide_line(raw_line: str) -> SlideLine:
    """Classify and parse one markdown line."""
    if not raw_line.strip():
        return SlideLine(
            kind=LineKind.SPACER,
            block=MarkedBlock(text="", highlights=(), segments=(TextSegment(""),)),
            style=SPACER_STYLE,
        )

    heading = HEADING_PATTERN.match(raw_line)
    if heading:
        level = len(heading.group(1))
        style = HEADING_STYLES[level]
        block = parse_marked_block(raw_line[heading.end() :])
        return SlideLine(LineKind.TEXT, _force_style(block, style), style, level)

    quote = BLOCKQUOTE_PATTERN.match(raw_line)
    if quote:
        block = parse_marked_block(raw_line[quote.end() :])
        return SlideLine(
            LineKind.BLOCKQUOTE, _force_style(block, BLOCKQUOTE_STYLE), BLOCKQUOTE_STYLE
        )

    item = LIST_PATTERN.match(raw_line)
    if item:
        block = _with_bullet(parse_marked_block(raw_line[item.end() :]))
        return SlideLine(LineKind.LIST, block, LIST_STYLE)

    return SlideLine(LineKind.TEXT, parse_marked_block(raw_line), PARAGRAPH_STYLE)


def parse_slide(content: str) -> MarkdownSlide:
    """Parse one slide's content into styled lines."""
    lines = tuple(
        parse_slide_line(raw_line)
        for raw_line in normalize_line_breaks(content).split("\n")
    )
    return MarkdownSlide(content=content, lines=lines)


def parse_markdown_slides(markdown: str) -> Tuple[MarkdownSlide, ...]:
    """Parse a markdown document into slides."""
    slides = split_slides(markdown)
    if not slides:
        raise LayoutValidationError(EMPTY_TEXT_CODE, "markdown contains no slides")
    return tuple(parse_slide(content) for content in slides)
