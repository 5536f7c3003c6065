import sys, pathlib; sys.path.insert(0, str(pathlib.Path(__file__).resolve().parents[1]))

import pytest

from llm_quiz_forge.core.sanitize import sanitize_latex


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("Find $$x+1$$ now", "Find $x+1$ now"),
        ("Find \\[x+1\\] now", "Find $x+1$ now"),
        ("Area $\\displaystyle \\frac{a}{b}$", "Area $ \\frac{a}{b}$"),
        ("\\begin{equation}E=mc^2\\end{equation}", "$E=mc^2$"),
        ("\\begin{align*}a=b\\end{align*}", "$a=b$"),
        ("The value\n  $x$ is positive", "The value $x$ is positive"),
        ("Let $x$\n  be real", "Let $x$ be real"),
        ("No math here.", "No math here."),
    ],
)
def test_rewrites(raw, expected):
    assert sanitize_latex(raw) == expected


def test_empty_input():
    assert sanitize_latex("") == ""
    assert sanitize_latex(None) == ""


def test_display_block_on_its_own_line_becomes_inline():
    raw = "Solve the equation:\n$$\n2x + 3 = 7\n$$\nfor x."
    clean = sanitize_latex(raw)
    assert "$$" not in clean
    assert "Solve the equation: $" in clean


@pytest.mark.parametrize(
    "raw",
    [
        "Solve:\n$$\\displaystyle \\int_0^1 x\\,dx$$\nquickly",
        "\\[\\begin{equation}a\\end{equation}\\]",
        "$$$$x$$$$",
        "a\n\n$\n\nb",
    ],
)
def test_idempotent(raw):
    once = sanitize_latex(raw)
    assert sanitize_latex(once) == once
