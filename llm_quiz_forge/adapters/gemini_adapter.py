from __future__ import annotations

import time
from typing import Union

import httpx

from ..core.errors import TransportError, error_from_status
from .base import RawResponse, TextPrompt, error_message, make_client

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"

REF_IMAGE_NOTE = "Use this image as a reference context for the questions."

# educational content (history, biology, religion) trips the default filters
SAFETY_SETTINGS = [
    {"category": category, "threshold": "BLOCK_NONE"}
    for category in (
        "HARM_CATEGORY_HATE_SPEECH",
        "HARM_CATEGORY_SEXUALLY_EXPLICIT",
        "HARM_CATEGORY_HARASSMENT",
        "HARM_CATEGORY_DANGEROUS_CONTENT",
    )
]


class GeminiAdapter:
    """Primary provider: Google Generative Language REST API, one API key per instance."""

    id = "gemini"

    def __init__(
        self,
        api_key: str,
        text_model: str,
        image_model: str,
        *,
        base_url: str = GEMINI_BASE_URL,
        timeout: float = 120.0,
        client: Union[httpx.AsyncClient, None] = None,
    ) -> None:
        self.api_key = api_key
        self.text_model = text_model
        self.image_model = image_model
        self.timeout = timeout
        self._owns_client = client is None
        self.client = make_client(base_url, client)

    async def _post(self, model: str, payload: dict) -> tuple[dict, int]:
        start = time.perf_counter()
        try:
            resp = await self.client.post(
                f"/models/{model}:generateContent",
                json=payload,
                headers={"x-goog-api-key": self.api_key},
                timeout=self.timeout,
            )
        except httpx.TransportError as e:
            raise TransportError(f"Gemini API request failed for model '{model}': {e}") from e
        latency_ms = int((time.perf_counter() - start) * 1000)
        if resp.status_code >= 400:
            raise error_from_status(resp.status_code, error_message(resp), provider="Gemini")
        return resp.json(), latency_ms

    async def generate_text(self, prompt: TextPrompt) -> RawResponse:
        parts: list[dict] = [{"text": prompt.user_text}]
        if prompt.ref_image:
            mime, data = prompt.ref_image
            parts.append({"inlineData": {"mimeType": mime, "data": data}})
            parts.append({"text": REF_IMAGE_NOTE})

        generation_config: dict = {"temperature": prompt.temperature}
        if prompt.response_schema is not None:
            generation_config["responseMimeType"] = "application/json"
            generation_config["responseSchema"] = prompt.response_schema
        elif prompt.json_mode:
            generation_config["responseMimeType"] = "application/json"

        payload: dict = {
            "contents": [{"role": "user", "parts": parts}],
            "generationConfig": generation_config,
            "safetySettings": SAFETY_SETTINGS,
        }
        if prompt.system_instruction:
            payload["systemInstruction"] = {"parts": [{"text": prompt.system_instruction}]}

        data, latency_ms = await self._post(self.text_model, payload)

        text = ""
        finish_reason = None
        candidates = data.get("candidates") or []
        if candidates:
            candidate = candidates[0]
            finish_reason = candidate.get("finishReason")
            content_parts = (candidate.get("content") or {}).get("parts") or []
            text = "".join(p.get("text", "") for p in content_parts if not p.get("thought"))
        else:
            feedback = data.get("promptFeedback") or {}
            finish_reason = feedback.get("blockReason")

        usage = data.get("usageMetadata", {})
        return RawResponse(
            text=text,
            finish_reason=finish_reason,
            tokens_in=usage.get("promptTokenCount"),
            tokens_out=usage.get("candidatesTokenCount"),
            latency_ms=latency_ms,
        )

    async def generate_image(self, prompt: str) -> Union[str, None]:
        payload = {"contents": [{"role": "user", "parts": [{"text": prompt}]}]}
        data, _ = await self._post(self.image_model, payload)
        for candidate in data.get("candidates") or []:
            for part in (candidate.get("content") or {}).get("parts") or []:
                inline = part.get("inlineData")
                if inline and inline.get("data"):
                    mime = inline.get("mimeType") or "image/png"
                    return f"data:{mime};base64,{inline['data']}"
        return None

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()
