"""Built-in preview layouts.

Each ``TemplateKind`` maps to one ``TemplateSpec`` declaring the fields it
accepts, their defaults and truncation lengths, and a draw function that lays
them out on an ``SvgCanvas``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Callable, Dict, Mapping, Tuple

from ..models.schemas import Font, TemplateKind, Theme
from .svg import HEIGHT, WIDTH, SvgCanvas, TextStyle


@dataclass(frozen=True)
class ThemeColors:
    background: str
    text: str
    accent: str
    card: str


THEMES: Dict[Theme, ThemeColors] = {
    Theme.LIGHT: ThemeColors("#ffffff", "#1a1a1a", "#2563eb", "#f9fafb"),
    Theme.DARK: ThemeColors("#1a1a1a", "#ffffff", "#3b82f6", "#374151"),
    Theme.BLUE: ThemeColors("#dbeafe", "#1e3a8a", "#1d4ed8", "#bfdbfe"),
    Theme.GREEN: ThemeColors("#dcfce7", "#14532d", "#16a34a", "#bbf7d0"),
    Theme.PURPLE: ThemeColors("#f3e8ff", "#581c87", "#9333ea", "#ddd6fe"),
}

FONT_FAMILIES: Dict[Font, Tuple[str, str]] = {
    Font.INTER: ("Inter", "sans-serif"),
    Font.ROBOTO: ("Roboto", "sans-serif"),
    Font.PLAYFAIR: ("Playfair Display", "serif"),
    Font.OPENSANS: ("Open Sans", "sans-serif"),
}

SYSTEM_FONT_STACK = "system-ui, -apple-system, 'Segoe UI', Helvetica, Arial, sans-serif"

_TAG_RE = re.compile(r"<\s*/?\s*([^>]*)>")
_UNSAFE_RE = re.compile(r"[<>\"']")
_CONTROL_RE = re.compile(r"[\x00-\x1f\x7f]")
_SPACE_RE = re.compile(r"\s+")


def sanitize_text(text: str) -> str:
    """Strip markup, quotes and control characters; collapse whitespace."""
    if not text:
        return ""
    text = _TAG_RE.sub(r" \1 ", text)
    text = _UNSAFE_RE.sub(" ", text)
    text = _CONTROL_RE.sub("", text)
    return _SPACE_RE.sub(" ", text).strip()


DrawFn = Callable[[SvgCanvas, Dict[str, str], ThemeColors], None]


@dataclass(frozen=True)
class TemplateSpec:
    kind: TemplateKind
    defaults: Dict[str, str]
    limits: Dict[str, int]
    icon: str
    accent: str
    draw: DrawFn
    aliases: Dict[str, str] = field(default_factory=dict)

    @property
    def fields(self) -> Tuple[str, ...]:
        return tuple(self.defaults)

    def prepare(self, values: Mapping[str, str]) -> Dict[str, str]:
        """Pick this template's fields from ``values``, sanitized, truncated and defaulted."""
        prepared: Dict[str, str] = {}
        for name in self.fields:
            raw = values.get(name)
            for alias, target in self.aliases.items():
                if target == name and values.get(alias):
                    raw = values[alias]
            cleaned = sanitize_text(raw or "")
            prepared[name] = (cleaned or self.defaults[name])[: self.limits[name]]
        emoji = sanitize_text(values.get("emoji") or "")[:8]
        prepared["icon"] = emoji or self.icon
        prepared["accent"] = self.accent
        return prepared


PAD = 60


def _draw_default(canvas: SvgCanvas, f: Dict[str, str], c: ThemeColors) -> None:
    canvas.rect(0, 0, WIDTH, 12, c.accent)
    canvas.circle(WIDTH / 2, 170, 44, c.accent, opacity=0.15)
    canvas.text(WIDTH / 2, 188, f["icon"], TextStyle(48, c.text, anchor="middle"))
    y = canvas.text_block(WIDTH / 2, 310, f["title"], TextStyle(64, c.text, 800, anchor="middle", line_height=1.15),
                          WIDTH - 2 * PAD, 2)
    canvas.text_block(WIDTH / 2, y + 20, f["description"],
                      TextStyle(28, c.text, opacity=0.7, anchor="middle", line_height=1.4), WIDTH - 4 * PAD, 2)


def _draw_blog(canvas: SvgCanvas, f: Dict[str, str], c: ThemeColors) -> None:
    canvas.circle(PAD + 30, PAD + 30, 30, c.accent)
    canvas.text(PAD + 30, PAD + 40, f["icon"], TextStyle(24, "#ffffff", 600, anchor="middle"))
    canvas.text(PAD + 80, PAD + 26, f["author"], TextStyle(18, c.text, 600))
    canvas.text(PAD + 80, PAD + 48, "Author", TextStyle(14, c.text, opacity=0.6))
    y = canvas.text_block(PAD, 250, f"{f['title']} {f['accent']}", TextStyle(56, c.text, 800, line_height=1.1),
                          WIDTH - 2 * PAD, 2)
    y = canvas.text_block(PAD, y + 16, f["description"], TextStyle(22, c.text, opacity=0.7, line_height=1.4),
                          WIDTH - 2 * PAD, 2)
    canvas.rect(PAD, y + 10, 80, 4, c.accent, radius=2)


def _draw_product(canvas: SvgCanvas, f: Dict[str, str], c: ThemeColors) -> None:
    canvas.rect(PAD, PAD, WIDTH - 2 * PAD, HEIGHT - 2 * PAD, c.card, radius=24)
    canvas.text(PAD + 50, PAD + 110, f["icon"], TextStyle(64, c.text))
    y = canvas.text_block(PAD + 50, 260, f["title"], TextStyle(56, c.text, 800, line_height=1.1), 700, 2)
    canvas.text_block(PAD + 50, y + 16, f["description"], TextStyle(24, c.text, opacity=0.7, line_height=1.4), 700, 3)
    canvas.rect(WIDTH - PAD - 300, HEIGHT - PAD - 130, 250, 80, c.accent, radius=40)
    canvas.text(WIDTH - PAD - 175, HEIGHT - PAD - 78, f["price"], TextStyle(32, "#ffffff", 700, anchor="middle"))


def _draw_event(canvas: SvgCanvas, f: Dict[str, str], c: ThemeColors) -> None:
    canvas.rect(0, 0, 24, HEIGHT, c.accent)
    canvas.text(PAD + 24, PAD + 40, f"{f['icon']} EVENT", TextStyle(20, c.accent, 700, letter_spacing=3))
    y = canvas.text_block(PAD + 24, 200, f["title"], TextStyle(60, c.text, 800, line_height=1.1),
                          WIDTH - 2 * PAD - 24, 2)
    canvas.text_block(PAD + 24, y + 12, f["description"], TextStyle(26, c.text, opacity=0.7, line_height=1.4),
                      WIDTH - 2 * PAD - 24, 2)
    canvas.rect(PAD + 24, HEIGHT - PAD - 80, 360, 70, c.card, radius=16)
    canvas.text(PAD + 48, HEIGHT - PAD - 36, f"{f['accent']} {f['date']}", TextStyle(24, c.text, 600))
    canvas.rect(PAD + 404, HEIGHT - PAD - 80, 360, 70, c.card, radius=16)
    canvas.text(PAD + 428, HEIGHT - PAD - 36, f["location"], TextStyle(24, c.text, 600))


def _draw_quote(canvas: SvgCanvas, f: Dict[str, str], c: ThemeColors) -> None:
    canvas.text(WIDTH / 2, 110, f["title"], TextStyle(24, c.text, 600, opacity=0.8, anchor="middle",
                                                       letter_spacing=2, uppercase=True))
    canvas.text(WIDTH / 2, 200, "“", TextStyle(120, c.accent, 700, anchor="middle"))
    y = canvas.text_block(WIDTH / 2, 270, f["quote"], TextStyle(40, c.text, 600, anchor="middle", italic=True,
                                                                 line_height=1.3), 800, 3)
    canvas.text(WIDTH / 2, y + 40, f["author"], TextStyle(26, c.text, 700, anchor="middle"))
    canvas.text(WIDTH / 2, y + 76, f["role"], TextStyle(20, c.text, opacity=0.6, anchor="middle"))


def _draw_minimal(canvas: SvgCanvas, f: Dict[str, str], c: ThemeColors) -> None:
    y = canvas.text_block(WIDTH / 2, 290, f["title"], TextStyle(72, c.text, 300, anchor="middle", line_height=1.1),
                          WIDTH - 4 * PAD, 2)
    canvas.rect(WIDTH / 2 - 30, y - 20, 60, 2, c.accent)
    canvas.text_block(WIDTH / 2, y + 40, f["subtitle"], TextStyle(26, c.text, opacity=0.6, anchor="middle"),
                      WIDTH - 4 * PAD, 1)


def _draw_news(canvas: SvgCanvas, f: Dict[str, str], c: ThemeColors) -> None:
    canvas.rect(0, 0, WIDTH, 90, c.accent)
    canvas.text(PAD, 58, f"{f['icon']} {f['category']}", TextStyle(28, "#ffffff", 800, uppercase=True,
                                                                  letter_spacing=2))
    canvas.text(WIDTH - PAD, 58, f["date"], TextStyle(22, "#ffffff", 500, anchor="end"))
    y = canvas.text_block(PAD, 200, f["title"], TextStyle(54, c.text, 800, line_height=1.15), WIDTH - 2 * PAD, 3)
    canvas.text_block(PAD, y + 12, f["description"], TextStyle(24, c.text, opacity=0.7, line_height=1.4),
                      WIDTH - 2 * PAD, 2)


def _draw_tech(canvas: SvgCanvas, f: Dict[str, str], c: ThemeColors) -> None:
    for col in range(0, WIDTH, 60):
        canvas.rect(col, 0, 1, HEIGHT, c.accent, opacity=0.08)
    canvas.rect(PAD, PAD, 150, 44, c.accent, radius=22)
    canvas.text(PAD + 75, PAD + 30, f["version"], TextStyle(20, "#ffffff", 700, anchor="middle"))
    canvas.circle(PAD + 190, PAD + 22, 8, "#22c55e")
    canvas.text(PAD + 206, PAD + 30, f["status"], TextStyle(20, c.text, 600))
    y = canvas.text_block(PAD, 260, f"{f['icon']} {f['title']}", TextStyle(60, c.text, 800, line_height=1.1),
                          WIDTH - 2 * PAD, 2)
    canvas.text_block(PAD, y + 12, f["description"], TextStyle(26, c.text, opacity=0.7, line_height=1.4),
                      WIDTH - 2 * PAD, 2)


def _draw_podcast(canvas: SvgCanvas, f: Dict[str, str], c: ThemeColors) -> None:
    canvas.rect(PAD, PAD + 45, 420, 420, c.accent, radius=32)
    canvas.text(PAD + 210, PAD + 295, f["icon"], TextStyle(140, "#ffffff", anchor="middle"))
    x = PAD + 480
    canvas.text(x, 150, f["episode"], TextStyle(22, c.accent, 700, uppercase=True, letter_spacing=2))
    y = canvas.text_block(x, 220, f["title"], TextStyle(48, c.text, 800, line_height=1.15), WIDTH - x - PAD, 3)
    y = canvas.text_block(x, y + 8, f["description"], TextStyle(22, c.text, opacity=0.7, line_height=1.4),
                          WIDTH - x - PAD, 3)
    canvas.text(x, y + 30, f"{f['accent']} {f['duration']}", TextStyle(22, c.text, 600))


def _draw_portfolio(canvas: SvgCanvas, f: Dict[str, str], c: ThemeColors) -> None:
    canvas.circle(WIDTH - 180, 180, 220, c.accent, opacity=0.12)
    canvas.circle(WIDTH - 120, HEIGHT - 80, 120, c.accent, opacity=0.2)
    canvas.text(PAD, PAD + 40, f["name"], TextStyle(28, c.text, 700))
    canvas.text(PAD, PAD + 74, f["role"], TextStyle(20, c.accent, 600, uppercase=True, letter_spacing=2))
    y = canvas.text_block(PAD, 300, f["title"], TextStyle(64, c.text, 700, italic=True, line_height=1.1), 820, 2)
    canvas.text_block(PAD, y + 12, f["description"], TextStyle(24, c.text, opacity=0.7, line_height=1.4), 820, 2)
    canvas.text(WIDTH - PAD, HEIGHT - PAD, f["icon"], TextStyle(48, c.text, anchor="end"))


def _draw_course(canvas: SvgCanvas, f: Dict[str, str], c: ThemeColors) -> None:
    canvas.text(PAD, PAD + 40, f"{f['icon']} COURSE", TextStyle(22, c.accent, 800, letter_spacing=3))
    y = canvas.text_block(PAD, 190, f["title"], TextStyle(58, c.text, 800, line_height=1.1), WIDTH - 2 * PAD, 2)
    canvas.text_block(PAD, y + 8, f["description"], TextStyle(24, c.text, opacity=0.7, line_height=1.4),
                      WIDTH - 2 * PAD, 2)
    chips = (f["instructor"], f["duration"], f["level"])
    x = PAD
    for label in chips:
        width = max(140, len(label) * 13 + 48)
        canvas.rect(x, HEIGHT - PAD - 70, width, 60, c.card, radius=30)
        canvas.text(x + width / 2, HEIGHT - PAD - 32, label, TextStyle(22, c.text, 600, anchor="middle"))
        x += width + 20


TEMPLATES: Dict[TemplateKind, TemplateSpec] = {
    TemplateKind.DEFAULT: TemplateSpec(
        TemplateKind.DEFAULT,
        defaults={"title": "OG Image", "description": "Social previews rendered on demand"},
        limits={"title": 60, "description": 100},
        icon="🌟", accent="✨", draw=_draw_default,
    ),
    TemplateKind.BLOG: TemplateSpec(
        TemplateKind.BLOG,
        defaults={"title": "Blog Post", "description": "Read our latest insights and thoughts", "author": "OG Image"},
        limits={"title": 80, "description": 120, "author": 30},
        icon="📝", accent="✨", draw=_draw_blog,
    ),
    TemplateKind.PRODUCT: TemplateSpec(
        TemplateKind.PRODUCT,
        defaults={"title": "Amazing Product", "description": "Discover our latest innovation", "price": "99 USD"},
        limits={"title": 60, "description": 100, "price": 20},
        icon="🚀", accent="💫", draw=_draw_product,
    ),
    TemplateKind.EVENT: TemplateSpec(
        TemplateKind.EVENT,
        defaults={"title": "Join Our Event", "description": "Connect, learn, and grow together",
                  "date": "Coming Soon", "location": "Online"},
        limits={"title": 70, "description": 100, "date": 30, "location": 30},
        icon="🎯", accent="📅", draw=_draw_event,
    ),
    TemplateKind.QUOTE: TemplateSpec(
        TemplateKind.QUOTE,
        defaults={"title": "Customer Success Story", "quote": "This product has transformed our business completely!",
                  "author": "Happy Customer", "role": "CEO"},
        limits={"title": 60, "quote": 140, "author": 30, "role": 30},
        icon="💬", accent="⭐", draw=_draw_quote,
        aliases={"description": "quote"},
    ),
    TemplateKind.MINIMAL: TemplateSpec(
        TemplateKind.MINIMAL,
        defaults={"title": "Simple & Clean", "subtitle": "Less is more"},
        limits={"title": 50, "subtitle": 80},
        icon="✨", accent="◦", draw=_draw_minimal,
    ),
    TemplateKind.NEWS: TemplateSpec(
        TemplateKind.NEWS,
        defaults={"title": "Breaking News", "description": "Latest updates and important announcements",
                  "category": "News", "date": "Today"},
        limits={"title": 90, "description": 120, "category": 20, "date": 20},
        icon="📰", accent="🔥", draw=_draw_news,
    ),
    TemplateKind.TECH: TemplateSpec(
        TemplateKind.TECH,
        defaults={"title": "Next-Gen Solution", "description": "Built for developers, designed for scale",
                  "version": "v2.0", "status": "Live"},
        limits={"title": 60, "description": 100, "version": 10, "status": 15},
        icon="⚡", accent="🔧", draw=_draw_tech,
    ),
    TemplateKind.PODCAST: TemplateSpec(
        TemplateKind.PODCAST,
        defaults={"title": "Podcast Episode", "description": "Join us for an insightful conversation",
                  "episode": "Episode 42", "duration": "45 min"},
        limits={"title": 70, "description": 110, "episode": 20, "duration": 15},
        icon="🎧", accent="🎙", draw=_draw_podcast,
    ),
    TemplateKind.PORTFOLIO: TemplateSpec(
        TemplateKind.PORTFOLIO,
        defaults={"title": "Creative Portfolio", "description": "Showcasing exceptional design and innovation",
                  "name": "Artist Name", "role": "Designer"},
        limits={"title": 60, "description": 100, "name": 30, "role": 25},
        icon="🎨", accent="✨", draw=_draw_portfolio,
    ),
    TemplateKind.COURSE: TemplateSpec(
        TemplateKind.COURSE,
        defaults={"title": "Master the Fundamentals", "description": "Learn essential skills with expert guidance",
                  "instructor": "Expert Teacher", "duration": "8 weeks", "level": "Beginner"},
        limits={"title": 70, "description": 100, "instructor": 30, "duration": 15, "level": 15},
        icon="📚", accent="🎓", draw=_draw_course,
    ),
}


def get_template(kind: TemplateKind) -> TemplateSpec:
    return TEMPLATES[kind]


def theme_colors(theme: Theme) -> ThemeColors:
    return THEMES[theme]


def font_family_css(family: str, generic: str) -> str:
    return f"'{family}', {generic}"
