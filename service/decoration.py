"""Highlight geometry and style-run positioning for render_slide_text."""

from __future__ import annotations

from dataclasses import dataclass
import math
import random
from typing import Protocol, Sequence, Tuple

from domain.marked_text import (
    HighlightRect,
    HighlightSpan,
    LineLayout,
    MetricsProvider,
    StyleRun,
)
from service.line_wrap import measure_width

# Tuned for Merriweather at 20-120px; other faces may need different values.
HIGHLIGHT_PAD_X = 10
HIGHLIGHT_PAD_Y = 0
BASELINE_FRACTION = 0.85
HIGHLIGHT_ALPHA = 0.7
WAVE_LENGTH = 18
CORNER_RADIUS = 8
WAVE_AMPLITUDE_BASE = 1.0
WAVE_AMPLITUDE_JITTER = 0.5

MOVE_TO = "move_to"
LINE_TO = "line_to"
QUAD_TO = "quad_to"
CLOSE_PATH = "close"


@dataclass(frozen=True)
class FontVariants:
    """Font descriptors for each (bold, italic) combination."""

    regular: str
    bold: str
    italic: str
    bold_italic: str

    def font_for(self, bold: bool, italic: bool) -> str:
        if bold and italic:
            return self.bold_italic
        if bold:
            return self.bold
        if italic:
            return self.italic
        return self.regular

    @classmethod
    def single(cls, descriptor: str) -> "FontVariants":
        return cls(descriptor, descriptor, descriptor, descriptor)


@dataclass(frozen=True)
class PathCommand:
    """One path-construction step."""

    op: str
    points: Tuple[Tuple[float, float], ...] = ()


class Renderer(MetricsProvider, Protocol):
    """Drawing surface with canvas-style fill state."""

    fill_style: str
    global_alpha: float

    def fill_text(self, text_value: str, x: float, y: float) -> None: ...

    def fill_rect(self, x: float, y: float, width: float, height: float) -> None: ...

    def fill_path(self, commands: Sequence[PathCommand]) -> None: ...


def _line_runs(line: LineLayout) -> Tuple[StyleRun, ...]:
    if line.runs:
        return line.runs
    if not line.text:
        return ()
    return (StyleRun(0, len(line.text), False, False),)


def measure_line_range(
    metrics: MetricsProvider,
    fonts: FontVariants,
    line: LineLayout,
    start: int,
    end: int,
) -> float:
    """Measure line.text[start:end], switching font at run boundaries."""
    total = 0.0
    for run in _line_runs(line):
        piece_start = max(run.start, start)
        piece_end = min(run.end, end)
        if piece_end <= piece_start:
            continue
        total += measure_width(
            metrics,
            fonts.font_for(run.bold, run.italic),
            line.text[piece_start:piece_end],
        )
    return total


def measure_line_width(
    metrics: MetricsProvider, fonts: FontVariants, line: LineLayout
) -> float:
    """Measure a whole line across its style runs."""
    return measure_line_range(metrics, fonts, line, 0, len(line.text))


def compute_highlight_rect(
    metrics: MetricsProvider,
    fonts: FontVariants,
    line: LineLayout,
    span: HighlightSpan,
    origin_x: float,
    baseline_y: float,
    font_size: float,
    pad_x: float = HIGHLIGHT_PAD_X,
) -> HighlightRect:
    """Compute the background rectangle behind one highlight span.

    The half-space correction offsets the trailing-space bleed of the
    measured prefix.
    """
    prefix_width = measure_line_range(metrics, fonts, line, 0, span.start)
    span_width = measure_line_range(metrics, fonts, line, span.start, span.end)
    half_space = measure_width(metrics, fonts.regular, " ") / 2
    return HighlightRect(
        x=origin_x + prefix_width - pad_x + half_space,
        y=baseline_y - font_size * BASELINE_FRACTION - HIGHLIGHT_PAD_Y,
        width=span_width + pad_x * 2 - half_space,
        height=font_size,
    )


def compute_line_highlight_rects(
    metrics: MetricsProvider,
    fonts: FontVariants,
    line: LineLayout,
    origin_x: float,
    baseline_y: float,
    font_size: float,
) -> list[Tuple[HighlightRect, str]]:
    """Compute every highlight rectangle for a line, paired with its color."""
    return [
        (
            compute_highlight_rect(
                metrics, fonts, line, span, origin_x, baseline_y, font_size
            ),
            span.color,
        )
        for span in line.spans
    ]


def compute_run_offsets(
    metrics: MetricsProvider,
    fonts: FontVariants,
    line: LineLayout,
    origin_x: float,
) -> list[Tuple[StyleRun, float]]:
    """Return each style run with the x position where it is drawn."""
    positions: list[Tuple[StyleRun, float]] = []
    cursor_x = origin_x
    for run in _line_runs(line):
        positions.append((run, cursor_x))
        cursor_x += measure_width(
            metrics, fonts.font_for(run.bold, run.italic), line.text[run.start : run.end]
        )
    return positions


def compute_wavy_highlight_path(
    rect: HighlightRect,
    rng: random.Random | None = None,
    wave_length: float = WAVE_LENGTH,
    radius: float = CORNER_RADIUS,
) -> Tuple[PathCommand, ...]:
    """Build a rounded outline whose top and bottom edges ripple slightly.

    The rectangle itself is left untouched; only the outline wobbles.
    """
    rng = rng or random.Random()
    amplitude = WAVE_AMPLITUDE_BASE + rng.random() * WAVE_AMPLITUDE_JITTER
    phase = rng.random() * math.pi * 2
    x, y, width, height = rect.x, rect.y, rect.width, rect.height
    radius = max(0.0, min(radius, width / 2, height / 2))
    edge_length = width - 2 * radius

    def wave(offset: float, shift: float) -> float:
        if edge_length <= 0:
            return 0.0
        return math.sin((offset / edge_length) * math.pi * 2 + phase + shift) * amplitude

    commands = [PathCommand(MOVE_TO, ((x + radius, y),))]

    step = 0.0
    while step <= edge_length:
        commands.append(PathCommand(LINE_TO, ((x + radius + step, y + wave(step, 0.0)),)))
        step += wave_length
    commands.append(PathCommand(LINE_TO, ((x + width - radius, y),)))
    commands.append(
        PathCommand(QUAD_TO, ((x + width, y), (x + width, y + radius)))
    )
    commands.append(PathCommand(LINE_TO, ((x + width, y + height - radius),)))
    commands.append(
        PathCommand(
            QUAD_TO, ((x + width, y + height), (x + width - radius, y + height))
        )
    )

    step = edge_length
    while step >= 0:
        commands.append(
            PathCommand(
                LINE_TO, ((x + radius + step, y + height + wave(step, math.pi)),)
            )
        )
        step -= wave_length
    commands.append(PathCommand(LINE_TO, ((x + radius, y + height),)))
    commands.append(PathCommand(QUAD_TO, ((x, y + height), (x, y + height - radius))))
    commands.append(PathCommand(LINE_TO, ((x, y + radius),)))
    commands.append(PathCommand(QUAD_TO, ((x, y), (x + radius, y))))
    commands.append(PathCommand(CLOSE_PATH))
    return tuple(commands)


def flatten_path(
    commands: Sequence[PathCommand], curve_steps: int = 6
) -> list[Tuple[float, float]]:
    """Convert path commands into a polygon, sampling quadratic curves."""
    points: list[Tuple[float, float]] = []
    for command in commands:
        if command.op in (MOVE_TO, LINE_TO):
            points.append(command.points[0])
        elif command.op == QUAD_TO:
            if not points:
                continue
            start_x, start_y = points[-1]
            (control_x, control_y), (end_x, end_y) = command.points
            for step_index in range(1, curve_steps + 1):
                t = step_index / curve_steps
                inverse = 1 - t
                points.append(
                    (
                        inverse * inverse * start_x
                        + 2 * inverse * t * control_x
                        + t * t * end_x,
                        inverse * inverse * start_y
                        + 2 * inverse * t * control_y
                        + t * t * end_y,
                    )
                )
    return points
