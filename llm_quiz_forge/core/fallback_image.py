from __future__ import annotations

import base64
from xml.sax.saxutils import escape

CAPTION_LIMIT = 30

SVG_TEMPLATE = """<svg width="400" height="300" xmlns="http://www.w3.org/2000/svg">
  <rect width="100%" height="100%" fill="#fff7ed"/>
  <circle cx="200" cy="150" r="80" stroke="#f97316" stroke-width="3" fill="none" opacity="0.5"/>
  <path d="M150 150 L250 150 M200 100 L200 200" stroke="#f97316" stroke-width="3" opacity="0.5"/>
  <text x="50%" y="90%" dominant-baseline="middle" text-anchor="middle" font-family="sans-serif" font-size="14" fill="#c2410c">{caption}</text>
  <text x="50%" y="50%" dominant-baseline="middle" text-anchor="middle" font-family="sans-serif" font-size="24" font-weight="bold" fill="#ea580c">IMG</text>
</svg>"""


def caption_for(prompt: str) -> str:
    text = "".join(ch for ch in " ".join((prompt or "").split()) if ch.isprintable())
    if len(text) > CAPTION_LIMIT:
        return text[:CAPTION_LIMIT] + "..."
    return text


def generate_svg_fallback(prompt: str) -> str:
    """Placeholder illustration with the start of the prompt as its caption."""
    svg = SVG_TEMPLATE.format(caption=escape(caption_for(prompt), {'"': "&quot;"}))
    encoded = base64.b64encode(svg.encode("utf-8", "replace")).decode("ascii")
    return f"data:image/svg+xml;base64,{encoded}"
