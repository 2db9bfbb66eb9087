"""Minimal SVG canvas for 1200x630 preview layouts.

Text is wrapped with an approximate glyph-width model; there is no shaping
engine here, so widths are estimates tuned for Latin text at the template
font sizes.
"""

from __future__ import annotations

import base64
from dataclasses import dataclass
from html import escape
from typing import List, Optional

WIDTH = 1200
HEIGHT = 630
ELLIPSIS = "…"

# Average advance width as a fraction of the font size
_WIDTH_FACTOR = {"normal": 0.52, "bold": 0.58}


@dataclass
class TextStyle:
    size: int
    color: str
    weight: int = 400
    opacity: float = 1.0
    anchor: str = "start"
    italic: bool = False
    letter_spacing: float = 0.0
    uppercase: bool = False
    line_height: float = 1.2


@dataclass
class EmbeddedFont:
    family: str
    data: bytes
    mime: str = "font/ttf"
    css_format: str = "truetype"

    def css(self) -> str:
        encoded = base64.b64encode(self.data).decode("ascii")
        return (
            f"@font-face{{font-family:'{self.family}';"
            f"src:url(data:{self.mime};base64,{encoded}) format('{self.css_format}');}}"
        )


def estimate_width(text: str, style: TextStyle) -> float:
    factor = _WIDTH_FACTOR["bold" if style.weight >= 600 else "normal"]
    return len(text) * style.size * factor + max(0, len(text) - 1) * style.letter_spacing


def wrap_text(text: str, style: TextStyle, max_width: float, max_lines: int) -> List[str]:
    """Greedy word wrap; the last kept line gets an ellipsis if text remains."""
    if not text:
        return []
    lines: List[str] = []
    current = ""
    words = text.split(" ")
    index = 0
    while index < len(words):
        word = words[index]
        candidate = f"{current} {word}" if current else word
        if estimate_width(candidate, style) <= max_width:
            current = candidate
            index += 1
            continue
        if not current:
            # A single word wider than the line is hard-broken
            cut = max(1, int(max_width / (style.size * _WIDTH_FACTOR["bold"])))
            lines.append(word[:cut])
            words[index] = word[cut:]
        else:
            lines.append(current)
            current = ""
        if len(lines) == max_lines:
            break
    else:
        if current:
            lines.append(current)
        return lines[:max_lines]

    last = lines[-1]
    while last and estimate_width(last + ELLIPSIS, style) > max_width:
        last = last[:-1]
    lines[-1] = last.rstrip() + ELLIPSIS
    return lines


class SvgCanvas:
    def __init__(self, background: str, font_family: str, font: Optional[EmbeddedFont] = None):
        self.background = background
        self.font_family = font_family
        self.font = font
        self._elements: List[str] = []

    def rect(self, x: float, y: float, width: float, height: float, fill: str,
             radius: float = 0, opacity: float = 1.0, stroke: Optional[str] = None) -> None:
        extra = f' stroke="{stroke}" stroke-width="2"' if stroke else ""
        self._elements.append(
            f'<rect x="{x:g}" y="{y:g}" width="{width:g}" height="{height:g}" rx="{radius:g}" '
            f'fill="{fill}" fill-opacity="{opacity:g}"{extra}/>'
        )

    def circle(self, cx: float, cy: float, r: float, fill: str, opacity: float = 1.0) -> None:
        self._elements.append(
            f'<circle cx="{cx:g}" cy="{cy:g}" r="{r:g}" fill="{fill}" fill-opacity="{opacity:g}"/>'
        )

    def text(self, x: float, y: float, content: str, style: TextStyle) -> None:
        if not content:
            return
        if style.uppercase:
            content = content.upper()
        attrs = [
            f'x="{x:g}"',
            f'y="{y:g}"',
            f'font-size="{style.size}"',
            f'font-weight="{style.weight}"',
            f'fill="{style.color}"',
            f'text-anchor="{style.anchor}"',
        ]
        if style.opacity < 1:
            attrs.append(f'fill-opacity="{style.opacity:g}"')
        if style.italic:
            attrs.append('font-style="italic"')
        if style.letter_spacing:
            attrs.append(f'letter-spacing="{style.letter_spacing:g}"')
        self._elements.append(f'<text {" ".join(attrs)}>{escape(content, quote=False)}</text>')

    def text_block(self, x: float, y: float, content: str, style: TextStyle,
                   max_width: float, max_lines: int) -> float:
        """Draw wrapped text with its first baseline at ``y``; return the next free baseline."""
        if style.uppercase:
            content = content.upper()
        lines = wrap_text(content, style, max_width, max_lines)
        step = style.size * style.line_height
        for i, line in enumerate(lines):
            self.text(x, y + i * step, line, style)
        return y + len(lines) * step

    def to_svg(self) -> str:
        defs = ""
        if self.font is not None:
            defs = f"<defs><style>{self.font.css()}</style></defs>"
        family = escape(self.font_family, quote=True)
        return (
            f'<svg xmlns="http://www.w3.org/2000/svg" width="{WIDTH}" height="{HEIGHT}" '
            f'viewBox="0 0 {WIDTH} {HEIGHT}">'
            f"{defs}"
            f'<rect width="{WIDTH}" height="{HEIGHT}" fill="{self.background}"/>'
            f'<g font-family="{family}">{"".join(self._elements)}</g>'
            "</svg>"
        )
