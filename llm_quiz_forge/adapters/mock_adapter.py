from __future__ import annotations

import json
import time
from typing import Union

from .base import RawResponse, TextPrompt

# 1x1 transparent PNG
MOCK_IMAGE = (
    "data:image/png;base64,"
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAQAAAC1HAwCAAAAC0lEQVR42mNkYAAAAAYAAjCB0C8AAAAASUVORK5CYII="
)

MOCK_QUIZ = {
    "questions": [
        {
            "text": "What is $2+2$?",
            "type": "MULTIPLE_CHOICE",
            "options": ["3", "4", "5", "6", "7"],
            "correctAnswer": "B",
            "explanation": "Adding two and two gives $4$.",
            "difficulty": "EASY",
            "cognitiveLevel": "C1",
            "stimulus": None,
            "imagePrompt": "Four apples on a table",
        },
        {
            "text": "Explain why $3 \\times 0 = 0$.",
            "type": "ESSAY",
            "options": [],
            "correctAnswer": "Any number multiplied by zero is zero.",
            "explanation": "Multiplication by zero annihilates.",
            "difficulty": "MEDIUM",
            "cognitiveLevel": "C2",
            "stimulus": None,
            "imagePrompt": None,
        },
    ],
    "blueprint": [
        {
            "questionNumber": 1,
            "basicCompetency": "Addition of whole numbers",
            "indicator": "Adds single-digit numbers",
            "cognitiveLevel": "C1",
            "difficulty": "EASY",
        },
        {
            "questionNumber": 2,
            "basicCompetency": "Multiplication properties",
            "indicator": "Explains the zero property",
            "cognitiveLevel": "C2",
            "difficulty": "MEDIUM",
        },
    ],
}


class MockAdapter:
    """Simple adapter that returns canned responses for testing."""

    def __init__(self, model: str = "mock", payload: Union[dict, None] = None) -> None:
        self.id = f"mock:{model}"
        self.payload = payload if payload is not None else MOCK_QUIZ
        self.prompts: list[TextPrompt] = []

    async def generate_text(self, prompt: TextPrompt) -> RawResponse:
        self.prompts.append(prompt)
        start = time.perf_counter()
        latency_ms = int((time.perf_counter() - start) * 1000)
        return RawResponse(
            text=json.dumps(self.payload),
            finish_reason="STOP",
            tokens_in=0,
            tokens_out=0,
            latency_ms=latency_ms,
        )

    async def generate_image(self, prompt: str) -> Union[str, None]:
        return MOCK_IMAGE

    async def aclose(self) -> None:
        return None
