"""Tests for highlight rectangles, wavy outlines and run positions."""

from __future__ import annotations

import random

import pytest

from domain.marked_text import (
    HighlightRect,
    HighlightSpan,
    LineLayout,
    StyleRun,
    TextMetrics,
)
from service.decoration import (
    CLOSE_PATH,
    MOVE_TO,
    QUAD_TO,
    WAVE_AMPLITUDE_BASE,
    WAVE_AMPLITUDE_JITTER,
    FontVariants,
    PathCommand,
    compute_highlight_rect,
    compute_line_highlight_rects,
    compute_run_offsets,
    compute_wavy_highlight_path,
    flatten_path,
    measure_line_width,
)

FONTS = FontVariants(
    regular="40px Merriweather",
    bold="bold 40px Merriweather",
    italic="italic 40px Merriweather",
    bold_italic="italic bold 40px Merriweather",
)


class FixedAdvanceMetrics:
    """Ten pixels per character, twenty for bold descriptors."""

    def __init__(self) -> None:
        self.font = ""

    def set_font(self, descriptor: str) -> None:
        self.font = descriptor

    def measure_text(self, text_value: str) -> TextMetrics:
        advance = 20.0 if "bold" in self.font else 10.0
        return TextMetrics(width=len(text_value) * advance)


def test_font_variants_pick_descriptor() -> None:
    assert FONTS.font_for(False, False) == FONTS.regular
    assert FONTS.font_for(True, False) == FONTS.bold
    assert FONTS.font_for(False, True) == FONTS.italic
    assert FONTS.font_for(True, True) == FONTS.bold_italic
    assert FontVariants.single("x").font_for(True, True) == "x"


def test_highlight_rect_geometry() -> None:
    line = LineLayout(
        text="I love you",
        start=0,
        spans=(HighlightSpan(2, 6, "#F0E231"),),
        runs=(),
    )

    rect = compute_highlight_rect(
        FixedAdvanceMetrics(), FONTS, line, line.spans[0], 100, 200, 40
    )

    assert rect.x == pytest.approx(115.0)
    assert rect.y == pytest.approx(166.0)
    assert rect.width == pytest.approx(55.0)
    assert rect.height == pytest.approx(40.0)


def test_highlight_rect_measures_bold_prefix() -> None:
    line = LineLayout(
        text="ab cd",
        start=0,
        spans=(HighlightSpan(3, 5, "red"),),
        runs=(StyleRun(0, 3, False, False), StyleRun(3, 5, True, False)),
    )

    rect = compute_highlight_rect(FixedAdvanceMetrics(), FONTS, line, line.spans[0], 0, 50, 40)

    assert rect.x == pytest.approx(30.0 - 10.0 + 5.0)
    assert rect.width == pytest.approx(40.0 + 20.0 - 5.0)


def test_line_rects_keep_span_colors() -> None:
    line = LineLayout(
        text="one two",
        start=0,
        spans=(HighlightSpan(0, 3, "red"), HighlightSpan(4, 7, "blue")),
        runs=(),
    )

    rects = compute_line_highlight_rects(FixedAdvanceMetrics(), FONTS, line, 0, 40, 40)

    assert [color for _, color in rects] == ["red", "blue"]
    assert rects[0][0].x < rects[1][0].x


def test_run_offsets_advance_by_run_width() -> None:
    runs = (StyleRun(0, 3, False, False), StyleRun(3, 5, True, False))
    line = LineLayout(text="ab cd", start=0, spans=(), runs=runs)
    metrics = FixedAdvanceMetrics()

    positions = compute_run_offsets(metrics, FONTS, line, 10)

    assert positions == [(runs[0], 10), (runs[1], 40.0)]
    assert measure_line_width(metrics, FONTS, line) == 70.0


def test_plain_line_is_one_run() -> None:
    line = LineLayout(text="plain", start=0, spans=(), runs=())

    positions = compute_run_offsets(FixedAdvanceMetrics(), FONTS, line, 0)

    assert positions == [(StyleRun(0, 5, False, False), 0)]


def test_wavy_path_is_closed_and_near_rect() -> None:
    rect = HighlightRect(x=10, y=20, width=200, height=40)

    commands = compute_wavy_highlight_path(rect, random.Random(7))

    assert commands[0].op == MOVE_TO
    assert commands[-1].op == CLOSE_PATH
    limit = WAVE_AMPLITUDE_BASE + WAVE_AMPLITUDE_JITTER
    for command in commands:
        for x_value, y_value in command.points:
            assert rect.x - 1e-9 <= x_value <= rect.x + rect.width + 1e-9
            assert rect.y - limit <= y_value <= rect.y + rect.height + limit


def test_wavy_path_is_deterministic_with_seed() -> None:
    rect = HighlightRect(x=0, y=0, width=120, height=30)

    first = compute_wavy_highlight_path(rect, random.Random(3))
    second = compute_wavy_highlight_path(rect, random.Random(3))

    assert first == second


def test_wavy_path_handles_tiny_rect() -> None:
    commands = compute_wavy_highlight_path(
        HighlightRect(x=0, y=0, width=4, height=4), random.Random(1)
    )

    assert len(flatten_path(commands)) >= 3


def test_flatten_path_samples_curves() -> None:
    commands = (
        PathCommand(MOVE_TO, ((0.0, 0.0),)),
        PathCommand(QUAD_TO, ((10.0, 0.0), (10.0, 10.0))),
        PathCommand(CLOSE_PATH),
    )

    points = flatten_path(commands, curve_steps=4)

    assert len(points) == 5
    assert points[0] == (0.0, 0.0)
    assert points[-1] == pytest.approx((10.0, 10.0))
