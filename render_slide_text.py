#!/usr/bin/env -S uv run
# /// script
# requires-python = ">=3.11"
# dependencies = [
#   "pillow>=10.1",
#   "numpy>=1.26"
# ]
# ///
"""Render highlighted, word-wrapped slide text into images (and an optional MP4)."""

from __future__ import annotations

import argparse
import json
import logging
import os
import random
import shutil
import subprocess
import sys
from dataclasses import dataclass, replace
from enum import Enum
from pathlib import Path
from typing import Sequence, Tuple

import numpy as np
from PIL import Image, ImageColor, ImageDraw, ImageFont

from domain.marked_text import (
    AUDIO_FILE_CODE,
    BACKGROUND_IMAGE_CODE,
    EMPTY_TEXT_CODE,
    FONT_DIR_CODE,
    FONT_LOAD_CODE,
    INPUT_FILE_CODE,
    INVALID_COLOR_CODE,
    INVALID_CONFIG_CODE,
    LayoutValidationError,
    LineLayout,
    MarkedBlock,
    MetricsProvider,
    TextMetrics,
    TextSegment,
    build_font_descriptor,
    normalize_line_breaks,
    parse_marked_block,
)
from domain.markdown_slide import (
    LineKind,
    MarkdownSlide,
    SlideLine,
    parse_markdown_slides,
)
from service.decoration import (
    BASELINE_FRACTION,
    HIGHLIGHT_ALPHA,
    FontVariants,
    PathCommand,
    Renderer,
    compute_line_highlight_rects,
    compute_run_offsets,
    compute_wavy_highlight_path,
    flatten_path,
    measure_line_width,
)
from service.line_wrap import (
    balanced_wrap_text,
    split_segment_paragraphs,
    wrap_segments,
)
from service.span_layout import find_highlight_ranges, layout_lines

DEFAULT_WIDTH = 1080
DEFAULT_HEIGHT = 1350
DEFAULT_FAMILY = "Merriweather"
DEFAULT_TEXT_COLOR = "#222222"
DEFAULT_HIGHLIGHT_COLORS = ("#F0E231",)
DEFAULT_FONT_SIZE = 48
LINE_HEIGHT_RATIO = 1.4
SLIDE_PADDING = 100
TITLE_FONT_RATIO = 2.0
TITLE_GAP = 40
LARGE_HEADING_SIZE = 54
LARGE_HEADING_SPACE_BEFORE = 30
LARGE_HEADING_SPACE_AFTER = 20
BLOCKQUOTE_SPACE_AFTER = 10
JPEG_QUALITY = 95
FONT_EXTENSIONS = (".ttf", ".otf")
BOLD_STYLE_TOKENS = ("bold", "black", "heavy", "extrabold", "semibold")
LOGGER = logging.getLogger("render_slide_text")

FFMPEG_NOT_FOUND_CODE = "slide_text.ffmpeg.not_found"
FFMPEG_EXEC_CODE = "slide_text.ffmpeg.exec_error"
FFMPEG_UNSUPPORTED_CODE = "slide_text.ffmpeg.unsupported"
FFMPEG_PROCESS_CODE = "slide_text.ffmpeg.process_failed"
FFMPEG_DURATION_CODE = "slide_text.ffmpeg.duration_error"
H264_CODEC = "libx264"
H264_PIXEL_FORMAT = "yuv420p"
H264_CRF = "20"
H264_PRESET = "veryfast"
H264_TUNE = "stillimage"
AUDIO_CODEC = "aac"
AUDIO_BITRATE = "192k"
AUDIO_PAD_FILTER = "apad"


class RenderPipelineError(RuntimeError):
    """Runtime error with a stable error code."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code


class TextAlign(str, Enum):
    """Horizontal alignment for block text."""

    LEFT = "left"
    CENTER = "center"


@dataclass(frozen=True)
class SlideConfig:
    """Validated configuration for render_slide_text."""

    output_dir: str
    output_prefix: str
    width: int
    height: int
    background_rgba: Tuple[int, int, int, int]
    background_image_path: str | None
    background_gradient: Tuple[Tuple[int, int, int], Tuple[int, int, int]] | None
    fonts_dir: str | None
    font_family: str
    text_color: str
    highlight_colors: Tuple[str, ...]
    font_size: int
    align: TextAlign
    bold_highlights: bool
    wavy_highlights: bool
    balanced_titles: bool
    fps: int
    video_output_file: str | None
    duration_seconds: float | None

    def __post_init__(self) -> None:
        if not self.output_prefix.strip():
            raise LayoutValidationError(
                INVALID_CONFIG_CODE, "output_prefix must be non-empty"
            )
        if self.width <= 0 or self.height <= 0:
            raise LayoutValidationError(
                INVALID_CONFIG_CODE, "width and height must be positive"
            )
        if self.width <= SLIDE_PADDING * 2:
            raise LayoutValidationError(
                INVALID_CONFIG_CODE,
                f"width must exceed {SLIDE_PADDING * 2} pixels of padding",
            )
        if self.font_size <= 0:
            raise LayoutValidationError(INVALID_CONFIG_CODE, "font_size must be positive")
        if self.fps <= 0:
            raise LayoutValidationError(INVALID_CONFIG_CODE, "fps must be positive")
        if self.duration_seconds is not None and self.duration_seconds <= 0:
            raise LayoutValidationError(
                INVALID_CONFIG_CODE, "duration_seconds must be positive"
            )
        if self.video_output_file is not None:
            if not self.video_output_file.lower().endswith(".mp4"):
                raise LayoutValidationError(
                    INVALID_CONFIG_CODE, "video output file must end with .mp4"
                )
            if self.width % 2 or self.height % 2:
                raise LayoutValidationError(
                    INVALID_CONFIG_CODE, "width and height must be even for video output"
                )
        if not self.highlight_colors:
            raise LayoutValidationError(
                INVALID_CONFIG_CODE, "at least one highlight color is required"
            )
        if not isinstance(self.align, TextAlign):
            raise LayoutValidationError(INVALID_CONFIG_CODE, "align is invalid")


@dataclass(frozen=True)
class RenderRequest:
    """Parsed CLI request and loaded inputs."""

    config: SlideConfig
    markdown_text: str | None
    body_text: str | None
    title_text: str | None
    audio_track: str | None
    seed: int | None


@dataclass(frozen=True)
class FontRequest:
    """Parsed font descriptor."""

    size: float
    bold: bool
    italic: bool
    families: Tuple[str, ...]


def configure_logging() -> None:
    """Configure logging for CLI output."""
    logging.basicConfig(level=logging.INFO, format="%(message)s")


def parse_color_to_rgba(color_value: str) -> Tuple[int, int, int, int]:
    """Parse a CSS color token into an RGBA tuple."""
    normalized = color_value.strip()
    if normalized.lower() == "transparent":
        return (0, 0, 0, 0)
    try:
        rgb = ImageColor.getrgb(normalized)
    except ValueError as exc:
        raise LayoutValidationError(
            INVALID_COLOR_CODE, f"invalid color value: {color_value!r}"
        ) from exc
    if len(rgb) == 4:
        return rgb
    return (rgb[0], rgb[1], rgb[2], 255)


def parse_color_list(value: str) -> Tuple[str, ...]:
    """Parse a comma-separated color list, validating each entry."""
    colors = tuple(part.strip() for part in value.split(",") if part.strip())
    for color in colors:
        parse_color_to_rgba(color)
    return colors


def parse_font_descriptor(descriptor: str) -> FontRequest:
    """Parse "[style] [weight] <size>px <family>, ..." into a FontRequest."""
    tokens = descriptor.strip().split(" ")
    bold = False
    italic = False
    size = float(DEFAULT_FONT_SIZE)
    family_start = len(tokens)
    for index, token in enumerate(tokens):
        lowered = token.lower()
        if lowered.endswith("px"):
            try:
                size = float(lowered[:-2])
            except ValueError:
                continue
            family_start = index + 1
            break
        if lowered in ("italic", "oblique"):
            italic = True
        elif lowered in BOLD_STYLE_TOKENS or (lowered.isdigit() and int(lowered) >= 600):
            bold = True
    family_text = " ".join(tokens[family_start:])
    families = tuple(
        family.strip().strip("\"'")
        for family in family_text.split(",")
        if family.strip().strip("\"'")
    )
    return FontRequest(size=size, bold=bold, italic=italic, families=families)


def list_font_files(fonts_dir: str) -> list[str]:
    """List font files from the fonts directory."""
    if not os.path.isdir(fonts_dir):
        raise LayoutValidationError(
            FONT_DIR_CODE, f"fonts directory does not exist: {fonts_dir}"
        )

    font_files: list[str] = []
    for entry_name in sorted(os.listdir(fonts_dir)):
        if entry_name.lower().endswith(FONT_EXTENSIONS):
            font_files.append(os.path.join(fonts_dir, entry_name))

    if not font_files:
        raise LayoutValidationError(FONT_DIR_CODE, f"no font files found in {fonts_dir}")
    return font_files


class FontRegistry:
    """Maps font families and (bold, italic) variants to font files."""

    def __init__(self) -> None:
        self._faces: dict[str, dict[Tuple[bool, bool], str]] = {}
        self._family_order: list[str] = []
        self._cache: dict[Tuple[str | None, int], ImageFont.FreeTypeFont] = {}

    @property
    def families(self) -> Tuple[str, ...]:
        return tuple(self._family_order)

    def register(self, family: str, font_path: str, bold: bool = False, italic: bool = False) -> None:
        key = family.lower()
        if key not in self._faces:
            self._faces[key] = {}
            self._family_order.append(family)
        self._faces[key][(bold, italic)] = font_path

    def register_directory(self, fonts_dir: str) -> None:
        """Register every loadable font in a directory by its internal name."""
        for font_file_path in list_font_files(fonts_dir):
            try:
                font = ImageFont.truetype(font_file_path, size=12)
            except OSError as exc:
                LOGGER.warning(
                    "%s: skipped font %s (%s)",
                    FONT_LOAD_CODE,
                    font_file_path,
                    str(exc).strip(),
                )
                continue
            family, style = font.getname()
            style_text = (style or "").lower()
            self.register(
                family or Path(font_file_path).stem,
                font_file_path,
                bold=any(token in style_text for token in BOLD_STYLE_TOKENS),
                italic="italic" in style_text or "oblique" in style_text,
            )
        if not self._faces:
            raise LayoutValidationError(
                FONT_LOAD_CODE, "failed to load any fonts from fonts directory"
            )

    def resolve_path(self, request: FontRequest) -> str | None:
        """Pick the closest registered face for the request."""
        candidates = [
            self._faces[family.lower()]
            for family in request.families
            if family.lower() in self._faces
        ]
        if not candidates and self._family_order:
            candidates = [self._faces[self._family_order[0].lower()]]
        for faces in candidates:
            for variant in (
                (request.bold, request.italic),
                (request.bold, False),
                (False, request.italic),
                (False, False),
            ):
                if variant in faces:
                    return faces[variant]
            return next(iter(faces.values()))
        return None

    def load(self, descriptor: str) -> ImageFont.FreeTypeFont:
        """Load (and cache) the font for a descriptor."""
        request = parse_font_descriptor(descriptor)
        font_path = self.resolve_path(request)
        size = max(1, int(round(request.size)))
        cache_key = (font_path, size)
        cached_font = self._cache.get(cache_key)
        if cached_font is not None:
            return cached_font
        try:
            if font_path is None:
                font = ImageFont.load_default(size=size)
            else:
                font = ImageFont.truetype(font_path, size=size)
        except OSError as exc:
            raise LayoutValidationError(
                FONT_LOAD_CODE, f"failed to load font {font_path} at size {size}"
            ) from exc
        self._cache[cache_key] = font
        return font


class PillowCanvas:
    """Drawing surface with canvas-style font state over a Pillow image."""

    def __init__(self, image: Image.Image, registry: FontRegistry) -> None:
        self.image = image.convert("RGB")
        self._draw = ImageDraw.Draw(self.image, "RGBA")
        self._registry = registry
        self._font: ImageFont.FreeTypeFont | None = None
        self.fill_style = DEFAULT_TEXT_COLOR
        self.global_alpha = 1.0

    def set_font(self, descriptor: str) -> None:
        self._font = self._registry.load(descriptor)

    def _require_font(self) -> ImageFont.FreeTypeFont:
        if self._font is None:
            raise LayoutValidationError(FONT_LOAD_CODE, "font must be set before use")
        return self._font

    def measure_text(self, text_value: str) -> TextMetrics:
        if not text_value:
            return TextMetrics(width=0.0)
        return TextMetrics(
            width=float(self._draw.textlength(text_value, font=self._require_font()))
        )

    def _fill_rgba(self) -> Tuple[int, int, int, int]:
        red, green, blue, alpha = parse_color_to_rgba(self.fill_style)
        alpha_scale = min(1.0, max(0.0, self.global_alpha))
        return (red, green, blue, int(round(alpha * alpha_scale)))

    def fill_text(self, text_value: str, x: float, y: float) -> None:
        if not text_value:
            return
        self._draw.text(
            (x, y), text_value, font=self._require_font(), fill=self._fill_rgba(), anchor="ls"
        )

    def fill_rect(self, x: float, y: float, width: float, height: float) -> None:
        left, right = sorted((x, x + width))
        top, bottom = sorted((y, y + height))
        self._draw.rectangle((left, top, right, bottom), fill=self._fill_rgba())

    def fill_path(self, commands: Sequence[PathCommand]) -> None:
        points = flatten_path(commands)
        if len(points) >= 3:
            self._draw.polygon(points, fill=self._fill_rgba())


def build_font_variants(size: float, family: str) -> FontVariants:
    """Build regular/bold/italic descriptors for one size and family."""
    families = (family, "sans-serif")
    return FontVariants(
        regular=build_font_descriptor(size, families),
        bold=build_font_descriptor(size, families, bold=True),
        italic=build_font_descriptor(size, families, italic=True),
        bold_italic=build_font_descriptor(size, families, bold=True, italic=True),
    )


def embolden_highlights(block: MarkedBlock) -> MarkedBlock:
    """Mark highlighted characters bold, keeping other emphasis."""
    styles = [
        (segment.bold, segment.italic) for segment in block.segments for _ in segment.text
    ]
    for item in find_highlight_ranges(block.text, block.highlights):
        for index in range(item.start, item.end):
            styles[index] = (True, styles[index][1])

    segments: list[TextSegment] = []
    run_start = 0
    for index in range(1, len(block.text) + 1):
        if index == len(block.text) or styles[index] != styles[run_start]:
            bold, italic = styles[run_start]
            segments.append(TextSegment(block.text[run_start:index], bold, italic))
            run_start = index
    return replace(block, segments=tuple(segments) or block.segments)


def draw_line_layout(
    canvas: Renderer,
    fonts: FontVariants,
    line: LineLayout,
    origin_x: float,
    baseline_y: float,
    font_size: float,
    text_color: str,
    wavy: bool,
    rng: random.Random,
) -> None:
    """Draw highlight underlays, then the line's style runs left to right."""
    for rect, color in compute_line_highlight_rects(
        canvas, fonts, line, origin_x, baseline_y, font_size
    ):
        canvas.fill_style = color
        canvas.global_alpha = HIGHLIGHT_ALPHA
        if wavy:
            canvas.fill_path(compute_wavy_highlight_path(rect, rng))
        else:
            canvas.fill_rect(rect.x, rect.y, rect.width, rect.height)
    canvas.global_alpha = 1.0

    for run, run_x in compute_run_offsets(canvas, fonts, line, origin_x):
        canvas.set_font(fonts.font_for(run.bold, run.italic))
        canvas.fill_style = text_color
        canvas.fill_text(line.text[run.start : run.end], run_x, baseline_y)


def line_origin_x(
    canvas: PillowCanvas,
    fonts: FontVariants,
    line: LineLayout,
    x: float,
    max_width: float,
    align: TextAlign,
) -> float:
    if align == TextAlign.CENTER:
        return x + (max_width - measure_line_width(canvas, fonts, line)) / 2
    return x


def layout_block_text(
    canvas: MetricsProvider,
    block: MarkedBlock,
    fonts: FontVariants,
    max_width: float,
    palette: Sequence[str],
) -> Tuple[LineLayout, ...]:
    """Wrap each explicit line of a block in its own styles and relocate its spans."""
    lines: list[str] = []
    for paragraph in split_segment_paragraphs(block.segments):
        wrapped = wrap_segments(canvas, paragraph, max_width, fonts.font_for)
        lines.extend(line.text for line in wrapped)
    return layout_lines(block.text, lines, block.highlights, block.segments, palette)


def draw_highlighted_block(
    canvas: PillowCanvas,
    raw_text: str,
    x: float,
    y: float,
    max_width: float,
    fonts: FontVariants,
    font_size: float,
    line_height: float,
    text_color: str,
    palette: Sequence[str],
    align: TextAlign = TextAlign.LEFT,
    bold_highlights: bool = False,
    wavy: bool = False,
    rng: random.Random | None = None,
) -> float:
    """Draw marked text wrapped to max_width; y is the first baseline."""
    rng = rng or random.Random()
    block = parse_marked_block(normalize_line_breaks(raw_text))
    if bold_highlights:
        block = embolden_highlights(block)
    layouts = layout_block_text(canvas, block, fonts, max_width, palette)
    for line_index, line in enumerate(layouts):
        draw_line_layout(
            canvas,
            fonts,
            line,
            line_origin_x(canvas, fonts, line, x, max_width, align),
            y + line_index * line_height,
            font_size,
            text_color,
            wavy,
            rng,
        )
    return len(layouts) * line_height


def layout_balanced_title(
    canvas: PillowCanvas,
    raw_title: str,
    fonts: FontVariants,
    max_width: float,
    palette: Sequence[str],
) -> Tuple[LineLayout, ...]:
    """Balance a title over 2-3 lines and relocate its spans."""
    block = parse_marked_block(normalize_line_breaks(raw_title).replace("\n", " "))
    lines = balanced_wrap_text(canvas, block.text, max_width, fonts.regular)
    return layout_lines(block.text, lines, block.highlights, block.segments, palette)


def draw_balanced_title(
    canvas: PillowCanvas,
    raw_title: str,
    x: float,
    y: float,
    max_width: float,
    fonts: FontVariants,
    font_size: float,
    line_height: float,
    text_color: str,
    palette: Sequence[str],
    wavy: bool = False,
    rng: random.Random | None = None,
) -> float:
    """Draw a centered, balanced title; y is the first baseline."""
    rng = rng or random.Random()
    layouts = layout_balanced_title(canvas, raw_title, fonts, max_width, palette)
    for line_index, line in enumerate(layouts):
        draw_line_layout(
            canvas,
            fonts,
            line,
            line_origin_x(canvas, fonts, line, x, max_width, TextAlign.CENTER),
            y + line_index * line_height,
            font_size,
            text_color,
            wavy,
            rng,
        )
    return len(layouts) * line_height


def layout_slide_line(
    canvas: PillowCanvas,
    slide_line: SlideLine,
    max_width: float,
    config: SlideConfig,
) -> Tuple[LineLayout, ...]:
    """Wrap one markdown line word by word in its own styles."""
    fonts = build_font_variants(slide_line.style.font_size, config.font_family)
    block = slide_line.block
    if config.bold_highlights:
        block = embolden_highlights(block)
    if slide_line.heading_level == 1 and config.balanced_titles:
        lines = balanced_wrap_text(canvas, block.text, max_width, fonts.bold)
    else:
        wrapped = wrap_segments(canvas, block.segments, max_width, fonts.font_for)
        lines = [line.text for line in wrapped]
    return layout_lines(
        block.text, lines, block.highlights, block.segments, config.highlight_colors
    )


def slide_line_spacing(slide_line: SlideLine, is_first: bool) -> Tuple[float, float]:
    """Return extra space before and after a markdown line."""
    before = 0.0
    after = float(slide_line.style.extra_spacing_after)
    if slide_line.style.font_size >= LARGE_HEADING_SIZE:
        if not is_first:
            before += LARGE_HEADING_SPACE_BEFORE
        after += LARGE_HEADING_SPACE_AFTER
    if slide_line.kind == LineKind.BLOCKQUOTE:
        after += BLOCKQUOTE_SPACE_AFTER
    return before, after


def render_markdown_slide(
    slide: MarkdownSlide,
    background: Image.Image,
    registry: FontRegistry,
    config: SlideConfig,
    rng: random.Random,
) -> Image.Image:
    """Render one markdown slide, vertically centered."""
    canvas = PillowCanvas(background.copy(), registry)
    max_width = config.width - SLIDE_PADDING * 2

    planned: list[Tuple[SlideLine, Tuple[LineLayout, ...], float, float]] = []
    total_height = 0.0
    for index, slide_line in enumerate(slide.lines):
        line_max_width = max_width - slide_line.style.indent
        layouts = layout_slide_line(canvas, slide_line, line_max_width, config)
        before, after = slide_line_spacing(slide_line, index == 0)
        planned.append((slide_line, layouts, before, after))
        total_height += before + len(layouts) * slide_line.style.line_height + after

    row_top = (config.height - total_height) / 2
    for slide_line, layouts, before, after in planned:
        style = slide_line.style
        row_top += before
        if slide_line.kind == LineKind.SPACER:
            row_top += len(layouts) * style.line_height + after
            continue
        fonts = build_font_variants(style.font_size, config.font_family)
        text_color = (
            style.color if slide_line.kind == LineKind.BLOCKQUOTE else config.text_color
        )
        align = config.align
        if slide_line.heading_level == 1 and config.balanced_titles:
            align = TextAlign.CENTER
        for line in layouts:
            baseline_y = (
                row_top
                + (style.line_height - style.font_size) / 2
                + style.font_size * BASELINE_FRACTION
            )
            draw_line_layout(
                canvas,
                fonts,
                line,
                line_origin_x(
                    canvas, fonts, line, SLIDE_PADDING + style.indent,
                    max_width - style.indent, align,
                ),
                baseline_y,
                style.font_size,
                text_color,
                config.wavy_highlights,
                rng,
            )
            row_top += style.line_height
        row_top += after
    return canvas.image


def render_text_slide(
    body_text: str,
    title_text: str | None,
    background: Image.Image,
    registry: FontRegistry,
    config: SlideConfig,
    rng: random.Random,
) -> Image.Image:
    """Render an optional balanced title above a highlighted body block."""
    canvas = PillowCanvas(background.copy(), registry)
    max_width = config.width - SLIDE_PADDING * 2
    body_fonts = build_font_variants(config.font_size, config.font_family)
    body_line_height = int(config.font_size * LINE_HEIGHT_RATIO)
    body_block = parse_marked_block(normalize_line_breaks(body_text))
    body_lines = layout_block_text(
        canvas, body_block, body_fonts, max_width, config.highlight_colors
    )
    body_height = len(body_lines) * body_line_height

    title_height = 0.0
    title_size = config.font_size * TITLE_FONT_RATIO
    title_line_height = int(title_size * LINE_HEIGHT_RATIO)
    title_fonts = build_font_variants(title_size, config.font_family)
    if title_text:
        title_lines = layout_balanced_title(
            canvas, title_text, title_fonts, max_width, config.highlight_colors
        )
        title_height = len(title_lines) * title_line_height + TITLE_GAP

    top = (config.height - title_height - body_height) / 2
    if title_text:
        draw_balanced_title(
            canvas,
            title_text,
            SLIDE_PADDING,
            top + title_size,
            max_width,
            title_fonts,
            title_size,
            title_line_height,
            config.text_color,
            config.highlight_colors,
            wavy=config.wavy_highlights,
            rng=rng,
        )
    draw_highlighted_block(
        canvas,
        body_text,
        SLIDE_PADDING,
        top + title_height + config.font_size,
        max_width,
        body_fonts,
        config.font_size,
        body_line_height,
        config.text_color,
        config.highlight_colors,
        align=config.align,
        bold_highlights=config.bold_highlights,
        wavy=config.wavy_highlights,
        rng=rng,
    )
    return canvas.image


def read_slide_source(file_path: str) -> str:
    """Load a markdown deck or body text as UTF-8, dropping any byte-order mark."""
    source_path = Path(file_path)
    try:
        raw_bytes = source_path.read_bytes()
    except OSError as exc:
        raise LayoutValidationError(
            INPUT_FILE_CODE, f"cannot read slide source {source_path}: {exc.strerror}"
        ) from exc
    try:
        source_text = raw_bytes.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise LayoutValidationError(
            INPUT_FILE_CODE,
            f"slide source {source_path.name} has a non UTF-8 byte at {exc.start}",
        ) from exc
    return source_text.lstrip("\ufeff")


def load_background_image(image_path: str, width: int, height: int) -> Image.Image:
    """Load a background image scaled to the slide size."""
    try:
        image = Image.open(image_path)
        image.load()
    except FileNotFoundError as exc:
        raise LayoutValidationError(
            BACKGROUND_IMAGE_CODE, f"background image not found: {image_path}"
        ) from exc
    except OSError as exc:
        raise LayoutValidationError(
            BACKGROUND_IMAGE_CODE, f"failed to read background image: {image_path}"
        ) from exc
    image = image.convert("RGB")
    if image.size != (width, height):
        image = image.resize((width, height), Image.Resampling.LANCZOS)
    return image


def build_gradient_background(
    top_rgb: Tuple[int, int, int],
    bottom_rgb: Tuple[int, int, int],
    width: int,
    height: int,
    rng: np.random.Generator | None = None,
) -> Image.Image:
    """Build a vertical top-to-bottom gradient, dithered to hide banding."""
    rng = rng or np.random.default_rng()
    top_color = np.array(top_rgb, dtype=np.float32)
    bottom_color = np.array(bottom_rgb, dtype=np.float32)

    rows = np.arange(height, dtype=np.float32) / max(height - 1, 1)
    alpha = rows[:, np.newaxis, np.newaxis]
    gradient = (1.0 - alpha) * top_color + alpha * bottom_color
    gradient = np.broadcast_to(gradient, (height, width, 3)).copy()

    gradient += rng.random((height, width, 3), dtype=np.float32) - 0.5
    np.clip(gradient, 0, 255, out=gradient)
    return Image.fromarray(gradient.astype(np.uint8))


def build_background(config: SlideConfig, seed: int | None) -> Image.Image:
    """Build the slide background from an image, gradient or solid color."""
    if config.background_image_path:
        return load_background_image(
            config.background_image_path, config.width, config.height
        )
    if config.background_gradient is not None:
        top_rgb, bottom_rgb = config.background_gradient
        return build_gradient_background(
            top_rgb, bottom_rgb, config.width, config.height, np.random.default_rng(seed)
        )
    return Image.new("RGB", (config.width, config.height), color=config.background_rgba[:3])


def build_font_registry(fonts_dir: str | None) -> FontRegistry:
    """Register fonts from the fonts directory, or fall back to Pillow's default."""
    registry = FontRegistry()
    if fonts_dir is None:
        LOGGER.warning(
            "%s: no fonts directory supplied; using the built-in default font",
            FONT_LOAD_CODE,
        )
        return registry
    registry.register_directory(fonts_dir)
    return registry


def ensure_binary_available(binary_name: str) -> str:
    """Ensure an ffmpeg-suite binary is installed and executable."""
    binary_path = shutil.which(binary_name)
    if not binary_path:
        raise RenderPipelineError(FFMPEG_NOT_FOUND_CODE, f"{binary_name} not on PATH")
    try:
        subprocess.run(
            [binary_path, "-version"],
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            check=True,
        )
    except (OSError, subprocess.CalledProcessError) as exc:
        raise RenderPipelineError(
            FFMPEG_EXEC_CODE, f"{binary_name} exists but could not be executed"
        ) from exc
    return binary_path


def parse_duration_report(report_text: str, audio_path: str) -> float:
    """Read format.duration from ffprobe's JSON report."""
    try:
        duration_seconds = float(json.loads(report_text)["format"]["duration"])
    except (ValueError, KeyError, TypeError) as exc:
        raise LayoutValidationError(
            AUDIO_FILE_CODE, f"no duration reported for audio track {audio_path}"
        ) from exc
    if duration_seconds <= 0:
        raise LayoutValidationError(
            AUDIO_FILE_CODE,
            f"audio track {audio_path} is {duration_seconds:.3f}s long",
        )
    return duration_seconds


def read_audio_duration(audio_path: str) -> float:
    """Ask ffprobe how long the soundtrack runs; the video lasts that long."""
    if not Path(audio_path).is_file():
        raise LayoutValidationError(AUDIO_FILE_CODE, f"audio track missing: {audio_path}")
    result = subprocess.run(
        [
            ensure_binary_available("ffprobe"),
            "-v",
            "error",
            "-print_format",
            "json",
            "-show_format",
            audio_path,
        ],
        capture_output=True,
        text=True,
        check=False,
    )
    if result.returncode != 0:
        raise RenderPipelineError(
            FFMPEG_DURATION_CODE, f"ffprobe rejected {audio_path}: {result.stderr.strip()}"
        )
    return parse_duration_report(result.stdout, audio_path)


def validate_ffmpeg_capabilities(audio_track: str | None) -> None:
    """Validate that ffmpeg can encode H.264 (and AAC when audio is used)."""
    ffmpeg_path = ensure_binary_available("ffmpeg")
    encoders_result = subprocess.run(
        [ffmpeg_path, "-hide_banner", "-encoders"],
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
        check=False,
    )
    if encoders_result.returncode != 0:
        raise RenderPipelineError(FFMPEG_EXEC_CODE, "ffmpeg could not list encoders")
    if H264_CODEC not in encoders_result.stdout:
        raise RenderPipelineError(
            FFMPEG_UNSUPPORTED_CODE, f"ffmpeg does not support {H264_CODEC} encoder"
        )
    if audio_track and AUDIO_CODEC not in encoders_result.stdout:
        raise RenderPipelineError(
            FFMPEG_UNSUPPORTED_CODE, f"ffmpeg does not support {AUDIO_CODEC} encoder"
        )


def build_ffmpeg_command(
    config: SlideConfig, output_path: str, audio_track: str | None
) -> list[str]:
    """Build the ffmpeg command for a raw RGBA frame stream."""
    ffmpeg_cmd = [
        "ffmpeg",
        "-y",
        "-f",
        "rawvideo",
        "-pix_fmt",
        "rgba",
        "-s",
        f"{config.width}x{config.height}",
        "-r",
        str(config.fps),
        "-i",
        "-",
    ]
    if audio_track:
        ffmpeg_cmd.extend(["-i", audio_track, "-map", "0:v:0", "-map", "1:a:0"])
    else:
        ffmpeg_cmd.append("-an")
    ffmpeg_cmd.extend(
        ["-c:v", H264_CODEC, "-crf", H264_CRF, "-preset", H264_PRESET, "-tune", H264_TUNE]
    )
    if audio_track:
        ffmpeg_cmd.extend(
            [
                "-c:a",
                AUDIO_CODEC,
                "-b:a",
                AUDIO_BITRATE,
                "-af",
                AUDIO_PAD_FILTER,
                "-shortest",
            ]
        )
    ffmpeg_cmd.extend(["-pix_fmt", H264_PIXEL_FORMAT, "-movflags", "+faststart", output_path])
    return ffmpeg_cmd


def encode_still_video(
    config: SlideConfig,
    frame_image: Image.Image,
    duration_seconds: float,
    output_path: str,
    audio_track: str | None,
) -> None:
    """Pipe one finished frame to ffmpeg for the whole duration."""
    total_frames = int(round(duration_seconds * config.fps))
    if total_frames <= 0:
        raise LayoutValidationError(
            INVALID_CONFIG_CODE, "duration and fps produce zero frames"
        )
    try:
        ffmpeg_process = subprocess.Popen(
            build_ffmpeg_command(config, output_path, audio_track),
            stdin=subprocess.PIPE,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.PIPE,
        )
    except FileNotFoundError as exc:
        raise RenderPipelineError(FFMPEG_NOT_FOUND_CODE, "ffmpeg not found") from exc
    if not ffmpeg_process.stdin:
        raise RenderPipelineError(FFMPEG_PROCESS_CODE, "ffmpeg stdin unavailable")

    frame_bytes = frame_image.convert("RGBA").tobytes()
    try:
        for _ in range(total_frames):
            ffmpeg_process.stdin.write(frame_bytes)

        ffmpeg_process.stdin.close()
        stderr_bytes = ffmpeg_process.stderr.read() if ffmpeg_process.stderr else b""
        return_code = ffmpeg_process.wait()

        if return_code != 0:
            stderr_text = stderr_bytes.decode("utf-8", errors="replace").strip()
            raise RenderPipelineError(
                FFMPEG_PROCESS_CODE,
                f"ffmpeg failed with exit code {return_code}. {stderr_text}",
            )
    finally:
        if ffmpeg_process.stdin and not ffmpeg_process.stdin.closed:
            ffmpeg_process.stdin.close()
        if ffmpeg_process.poll() is None:
            ffmpeg_process.kill()


def parse_gradient(value: str) -> Tuple[Tuple[int, int, int], Tuple[int, int, int]]:
    """Parse "TOP,BOTTOM" gradient colors."""
    colors = parse_color_list(value)
    if len(colors) != 2:
        raise LayoutValidationError(
            INVALID_COLOR_CODE, f"gradient needs exactly two colors: {value!r}"
        )
    top_rgba = parse_color_to_rgba(colors[0])
    bottom_rgba = parse_color_to_rgba(colors[1])
    return top_rgba[:3], bottom_rgba[:3]


def parse_args(argv: Sequence[str]) -> RenderRequest:
    """Parse CLI arguments into a RenderRequest."""
    parser = argparse.ArgumentParser(prog="render_slide_text.py", add_help=True)
    input_group = parser.add_mutually_exclusive_group(required=True)
    input_group.add_argument("--input-markdown-file")
    input_group.add_argument("--input-text-file")
    parser.add_argument("--title", default=None)
    parser.add_argument("--output-dir", default=".")
    parser.add_argument("--output-prefix", default="slide")
    parser.add_argument("--width", type=int, default=DEFAULT_WIDTH)
    parser.add_argument("--height", type=int, default=DEFAULT_HEIGHT)
    parser.add_argument("--background", default="#FFFFFF", help="CSS color or #RRGGBB")
    background_group = parser.add_mutually_exclusive_group()
    background_group.add_argument("--background-image", default=None)
    background_group.add_argument(
        "--background-gradient", default=None, help="TOP,BOTTOM colors"
    )
    parser.add_argument("--fonts-dir", default=None)
    parser.add_argument("--font-family", default=DEFAULT_FAMILY)
    parser.add_argument("--font-size", type=int, default=DEFAULT_FONT_SIZE)
    parser.add_argument("--text-color", default=DEFAULT_TEXT_COLOR)
    parser.add_argument(
        "--highlight-colors",
        default=",".join(DEFAULT_HIGHLIGHT_COLORS),
        help="comma-separated colors cycled over highlights",
    )
    parser.add_argument("--align", default=TextAlign.LEFT.value, choices=[a.value for a in TextAlign])
    parser.add_argument("--bold-highlights", action="store_true")
    parser.add_argument("--wavy-highlights", action="store_true")
    parser.add_argument("--balanced-titles", action="store_true")
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--video-output-file", default=None)
    parser.add_argument("--duration-seconds", type=float, default=None)
    parser.add_argument("--audio-track", default=None)
    parser.add_argument("--fps", type=int, default=30)

    parsed = parser.parse_args(argv)

    markdown_text = None
    body_text = None
    if parsed.input_markdown_file is not None:
        markdown_text = read_slide_source(parsed.input_markdown_file)
        if parsed.title is not None:
            raise LayoutValidationError(
                INVALID_CONFIG_CODE, "title is only supported with input-text-file"
            )
    else:
        body_text = read_slide_source(parsed.input_text_file)
        if not body_text.strip():
            raise LayoutValidationError(EMPTY_TEXT_CODE, "input text is empty")

    if parsed.video_output_file is None:
        if parsed.audio_track or parsed.duration_seconds is not None:
            raise LayoutValidationError(
                INVALID_CONFIG_CODE,
                "audio-track/duration-seconds require video-output-file",
            )
    duration_seconds = parsed.duration_seconds
    if parsed.video_output_file is not None and duration_seconds is None:
        if not parsed.audio_track:
            raise LayoutValidationError(
                INVALID_CONFIG_CODE,
                "duration-seconds is required without audio track",
            )
        duration_seconds = read_audio_duration(parsed.audio_track)

    config = SlideConfig(
        output_dir=parsed.output_dir,
        output_prefix=parsed.output_prefix,
        width=parsed.width,
        height=parsed.height,
        background_rgba=parse_color_to_rgba(parsed.background),
        background_image_path=parsed.background_image,
        background_gradient=(
            parse_gradient(parsed.background_gradient)
            if parsed.background_gradient
            else None
        ),
        fonts_dir=parsed.fonts_dir,
        font_family=parsed.font_family,
        text_color=parsed.text_color,
        highlight_colors=parse_color_list(parsed.highlight_colors),
        font_size=parsed.font_size,
        align=TextAlign(parsed.align),
        bold_highlights=parsed.bold_highlights,
        wavy_highlights=parsed.wavy_highlights,
        balanced_titles=parsed.balanced_titles,
        fps=parsed.fps,
        video_output_file=parsed.video_output_file,
        duration_seconds=duration_seconds,
    )
    parse_color_to_rgba(config.text_color)

    return RenderRequest(
        config=config,
        markdown_text=markdown_text,
        body_text=body_text,
        title_text=parsed.title,
        audio_track=parsed.audio_track,
        seed=parsed.seed,
    )


def render_slides(request: RenderRequest) -> list[Image.Image]:
    """Render every requested slide into an image."""
    config = request.config
    rng = random.Random(request.seed)
    registry = build_font_registry(config.fonts_dir)
    background = build_background(config, request.seed)
    if request.markdown_text is not None:
        return [
            render_markdown_slide(slide, background, registry, config, rng)
            for slide in parse_markdown_slides(request.markdown_text)
        ]
    return [
        render_text_slide(
            request.body_text or "",
            request.title_text,
            background,
            registry,
            config,
            rng,
        )
    ]


def write_slides(images: Sequence[Image.Image], config: SlideConfig) -> list[str]:
    """Write slide images as numbered JPEG files."""
    output_dir = Path(config.output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    written: list[str] = []
    for index, image in enumerate(images, start=1):
        output_path = output_dir / f"{config.output_prefix}_{index}.jpg"
        image.save(output_path, format="JPEG", quality=JPEG_QUALITY)
        LOGGER.info("render_slide_text.output.slide: %s", output_path)
        written.append(str(output_path))
    return written


def main() -> int:
    """CLI entrypoint."""
    configure_logging()

    try:
        request = parse_args(sys.argv[1:])
        images = render_slides(request)
        config = request.config
        if config.video_output_file is not None and len(images) != 1:
            raise LayoutValidationError(
                INVALID_CONFIG_CODE,
                f"video output needs exactly one slide, got {len(images)}",
            )
        write_slides(images, config)
        if config.video_output_file is not None and config.duration_seconds is not None:
            validate_ffmpeg_capabilities(request.audio_track)
            encode_still_video(
                config,
                images[0],
                config.duration_seconds,
                config.video_output_file,
                request.audio_track,
            )
            LOGGER.info("render_slide_text.output.video: %s", config.video_output_file)
        return 0
    except LayoutValidationError as exc:
        LOGGER.error("%s: %s", exc.code, str(exc).strip())
        return 1
    except RenderPipelineError as exc:
        LOGGER.error("%s: %s", exc.code, str(exc).strip())
        return 1
    except Exception as exc:
        LOGGER.error("render_slide_text.unhandled_error: %s", str(exc).strip())
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
