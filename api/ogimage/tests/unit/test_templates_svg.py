"""Unit tests for the built-in templates and the SVG canvas."""

import pytest

from ogimage.models.schemas import TemplateKind, Theme
from ogimage.services.svg import ELLIPSIS, HEIGHT, WIDTH, EmbeddedFont, SvgCanvas, TextStyle, wrap_text
from ogimage.services.templates import TEMPLATES, THEMES, get_template, sanitize_text, theme_colors


class TestSanitizeText:
    @pytest.mark.parametrize("raw", [
        "<script>alert(1)</script>",
        'Say "hi" <b>now</b>',
        "it's <img src=x onerror=y>",
    ])
    def test_no_markup_survives(self, raw):
        cleaned = sanitize_text(raw)

        for ch in "<>\"'":
            assert ch not in cleaned

    def test_collapses_whitespace_and_controls(self):
        assert sanitize_text("  a   b \x00c\x7f  ") == "a b c"

    def test_empty(self):
        assert sanitize_text("") == ""


class TestTemplateSpecs:
    """Test cases for per-template field handling."""

    def test_every_kind_registered(self):
        assert set(TEMPLATES) == set(TemplateKind)

    @pytest.mark.parametrize("kind", list(TemplateKind))
    def test_defaults_fill_every_field(self, kind):
        spec = get_template(kind)
        prepared = spec.prepare({})

        for name in spec.fields:
            assert prepared[name] == spec.defaults[name][: spec.limits[name]]
        assert prepared["icon"] == spec.icon
        assert prepared["accent"] == spec.accent

    def test_fields_outside_template_ignored(self):
        prepared = get_template(TemplateKind.BLOG).prepare({"title": "Hello", "price": "10 USD"})

        assert prepared["title"] == "Hello"
        assert "price" not in prepared

    def test_truncation(self):
        prepared = get_template(TemplateKind.BLOG).prepare({"title": "x" * 150, "author": "y" * 50})

        assert len(prepared["title"]) == 80
        assert len(prepared["author"]) == 30

    def test_emoji_overrides_icon(self):
        assert get_template(TemplateKind.PRODUCT).prepare({"emoji": "🎉"})["icon"] == "🎉"

    def test_quote_accepts_description(self):
        prepared = get_template(TemplateKind.QUOTE).prepare({"description": "Loved it"})

        assert prepared["quote"] == "Loved it"

    def test_markup_only_value_falls_back_to_default(self):
        prepared = get_template(TemplateKind.MINIMAL).prepare({"subtitle": "<>"})

        assert prepared["subtitle"] == "Less is more"

    def test_themes(self):
        assert set(THEMES) == set(Theme)
        assert theme_colors(Theme.DARK).background == "#1a1a1a"


class TestWrapText:
    style = TextStyle(40, "#000")

    def test_short_text_single_line(self):
        assert wrap_text("Hello world", self.style, 1000, 2) == ["Hello world"]

    def test_wraps_on_words(self):
        lines = wrap_text("alpha beta gamma delta", self.style, 250, 4)

        assert len(lines) > 1
        assert " ".join(lines) == "alpha beta gamma delta"

    def test_overflow_gets_ellipsis(self):
        lines = wrap_text(" ".join(["word"] * 50), self.style, 300, 2)

        assert len(lines) == 2
        assert lines[-1].endswith(ELLIPSIS)

    def test_long_word_is_hard_broken(self):
        lines = wrap_text("a" * 100, self.style, 200, 20)

        assert len(lines) > 1
        assert "".join(lines) == "a" * 100

    def test_empty(self):
        assert wrap_text("", self.style, 100, 2) == []


class TestSvgCanvas:
    def test_document_shape(self):
        canvas = SvgCanvas("#ffffff", "'Inter', sans-serif")
        canvas.text(10, 20, "Tom & Jerry", TextStyle(20, "#000"))

        svg = canvas.to_svg()

        assert svg.startswith('<svg xmlns="http://www.w3.org/2000/svg"')
        assert f'width="{WIDTH}" height="{HEIGHT}"' in svg
        assert "Tom &amp; Jerry" in svg
        assert "font-family=\"&#x27;Inter&#x27;, sans-serif\"" in svg
        assert "@font-face" not in svg

    def test_embedded_font(self):
        canvas = SvgCanvas("#ffffff", "'Brand', sans-serif", EmbeddedFont("Brand", b"\x00\x01font"))

        svg = canvas.to_svg()

        assert "@font-face{font-family:'Brand'" in svg
        assert "data:font/ttf;base64,AAFmb250" in svg

    def test_text_block_returns_next_baseline(self):
        canvas = SvgCanvas("#ffffff", "serif")
        style = TextStyle(20, "#000", line_height=1.5)

        assert canvas.text_block(0, 100, "one line", style, 1000, 2) == 130

    @pytest.mark.parametrize("kind", list(TemplateKind))
    @pytest.mark.parametrize("theme", [Theme.LIGHT, Theme.DARK])
    def test_every_template_draws(self, kind, theme):
        spec = get_template(kind)
        colors = theme_colors(theme)
        canvas = SvgCanvas(colors.background, "serif")

        spec.draw(canvas, spec.prepare({"title": "Launch day"}), colors)
        svg = canvas.to_svg()

        assert svg.endswith("</svg>")
        assert colors.background in svg
