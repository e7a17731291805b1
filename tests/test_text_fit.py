"""Tests for text wrapping, font fitting and alignment."""

import pytest

from sheetcanvas.ir import Rect
from sheetcanvas.text_fit import (
    ZWSP,
    MonospaceTextMeasurer,
    PillowTextMeasurer,
    TextLayout,
    layout_lines,
    pt_to_px,
    px_to_pt,
    soften_long_tokens,
)


class TestSoftenLongTokens:
    """Break opportunities inside unbroken tokens."""

    def test_camel_case(self):
        assert soften_long_tokens("camelCase") == f"camel{ZWSP}Case"

    def test_letter_digit_boundaries(self):
        assert soften_long_tokens("abc123def") == f"abc{ZWSP}123{ZWSP}def"

    def test_long_run_chunked(self):
        softened = soften_long_tokens("a" * 25)
        assert softened.count(ZWSP) == 2
        assert softened.replace(ZWSP, "") == "a" * 25

    def test_short_words_untouched(self):
        assert soften_long_tokens("plain words here") == "plain words here"
        assert soften_long_tokens("") == ""


class TestLayoutLines:
    """Greedy wrapping with a monospace measurer (0.6 em per glyph)."""

    def test_wraps_at_spaces(self, measurer):
        assert layout_lines("hello world", 60, 10, measurer) == ["hello", "world"]

    def test_fits_on_one_line(self, measurer):
        assert layout_lines("hello world", 1000, 10, measurer) == ["hello world"]

    def test_explicit_newlines(self, measurer):
        assert layout_lines("a\nb", 1000, 10, measurer) == ["a", "b"]

    def test_word_pieces_join_without_space(self, measurer):
        text = soften_long_tokens("camelCase")
        assert layout_lines(text, 1000, 10, measurer) == ["camelCase"]

    def test_long_token_wraps(self, measurer):
        """A 36-character token in a 100 px box at 15 px needs at least 3 lines."""
        layout = TextLayout(measurer=measurer)
        measured = layout.measure("abcdefghijklmnopqrstuvwxyzabcdefghij", 100, 15)
        assert measured.line_count >= 3
        assert all(measurer.text_width(line, 15) <= 100 for line in measured.lines)

    def test_no_width(self, measurer):
        assert layout_lines("one two", 0, 10, measurer) == ["one two"]


class TestMeasurers:
    def test_monospace_width(self):
        m = MonospaceTextMeasurer()
        assert m.text_width("abcd", 10) == pytest.approx(24.0)
        assert m.text_width(f"ab{ZWSP}cd", 10) == pytest.approx(24.0)
        assert m.text_width("漢字", 10) == pytest.approx(20.0)

    def test_pillow_width_grows_with_text(self):
        m = PillowTextMeasurer()
        short = m.text_width("abc", 14)
        assert short > 0
        assert m.text_width("abcabcabc", 14) > short
        assert m.text_width("", 14) == 0.0


class TestFitFontSize:
    """Binary search for the largest fitting point size."""

    def test_empty_text(self, measurer):
        layout = TextLayout(measurer=measurer)
        assert layout.fit_font_size("", 100, 100, base_pt=11) == 12
        assert layout.fit_font_size("text", 0, 100, base_pt=11, min_pt=14) == 14

    def test_roomy_box_keeps_base_size(self, measurer):
        layout = TextLayout(measurer=measurer)
        assert layout.fit_font_size("Hello", 1000, 1000, base_pt=11) == 11

    def test_tiny_box_gives_minimum(self, measurer):
        layout = TextLayout(measurer=measurer)
        assert layout.fit_font_size("Hello world", 50, 10, base_pt=24, min_pt=8) == 8

    def test_result_fits(self, measurer):
        layout = TextLayout(measurer=measurer)
        text = "Quarterly revenue summary for the northern region"
        size = layout.fit_font_size(text, 120, 60, base_pt=24, min_pt=6)
        assert 6 <= size < 24
        assert layout.measure(text, 120, pt_to_px(size)).height_px <= 60 - 2

    def test_larger_box_never_shrinks_font(self, measurer):
        layout = TextLayout(measurer=measurer)
        text = "Quarterly revenue summary"
        small = layout.fit_font_size(text, 80, 40, base_pt=20)
        large = layout.fit_font_size(text, 160, 80, base_pt=20)
        assert large >= small


class TestAlignText:
    """Two-pass alignment inside a rectangle."""

    def test_center_middle(self, measurer):
        layout = TextLayout(measurer=measurer)
        placement = layout.align_text("Hi", Rect(0, 0, 100, 40), "center", "middle", padding=4, font_px=15)
        assert placement.w == pytest.approx(18.0)
        assert placement.x == pytest.approx(41.0)
        assert placement.y == pytest.approx(9.5)
        assert placement.lines == ("Hi",)
        assert placement.line_px == 21

    def test_right_bottom(self, measurer):
        layout = TextLayout(measurer=measurer)
        placement = layout.align_text("Hi", Rect(0, 0, 100, 40), "right", "bottom", padding=4, font_px=15)
        assert placement.x == pytest.approx(78.0)
        assert placement.y + placement.h == pytest.approx(36.0)

    def test_padding_larger_than_rect(self, measurer):
        layout = TextLayout(measurer=measurer)
        rect = Rect(10, 10, 6, 6)
        placement = layout.align_text("Overflowing text", rect, "center", "middle", padding=20, font_px=15)
        assert rect.contains(Rect(placement.x, placement.y, placement.w, placement.h), tolerance=1e-9)

    def test_wrapped_block_stays_inside(self, measurer):
        layout = TextLayout(measurer=measurer)
        rect = Rect(5, 5, 80, 30)
        placement = layout.align_text("many words that need wrapping", rect, "left", "top", font_px=15)
        assert len(placement.lines) > 1
        assert rect.contains(Rect(placement.x, placement.y, placement.w, placement.h), tolerance=1e-9)


class TestUnits:
    def test_round_trip(self):
        assert pt_to_px(15) == 20
        assert px_to_pt(20) == 15
        assert pt_to_px(11) == 15
