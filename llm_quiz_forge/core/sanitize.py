"""Force LaTeX math markup into inline form for print and on-screen rendering."""

from __future__ import annotations

import re
from typing import Union

_BLOCK_DOLLARS = re.compile(r"\$\$([\s\S]*?)\$\$")
_BLOCK_BRACKETS = re.compile(r"\\\[([\s\S]*?)\\\]")
_DISPLAYSTYLE = re.compile(r"\\displaystyle")
_ENVIRONMENTS = re.compile(r"\\(?:begin|end)\{(?:equation|align)\*?\}")
_NEWLINE_BEFORE = re.compile(r"\n\s*\$")
_NEWLINE_AFTER = re.compile(r"\$[ \t]*\n\s*")


def _sanitize_once(text: str) -> str:
    clean = _BLOCK_DOLLARS.sub(r"$\1$", text)
    clean = _BLOCK_BRACKETS.sub(r"$\1$", clean)
    clean = _DISPLAYSTYLE.sub("", clean)
    clean = _ENVIRONMENTS.sub("$", clean)
    clean = _NEWLINE_BEFORE.sub(" $", clean)
    clean = _NEWLINE_AFTER.sub("$ ", clean)
    return clean


def sanitize_latex(text: Union[str, None]) -> str:
    """Normalise math markup; applying it twice gives the same result as once."""
    if not text:
        return ""
    # every rewrite shortens the string or removes a newline, so this terminates
    previous = None
    clean = text
    while clean != previous:
        previous = clean
        clean = _sanitize_once(clean)
    return clean
