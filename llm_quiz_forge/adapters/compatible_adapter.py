from __future__ import annotations

import logging
import time
from typing import Union

import httpx

from ..core.errors import TransportError, error_from_status
from .base import RawResponse, TextPrompt, error_message, make_client

logger = logging.getLogger(__name__)

JSON_RESPONSE_FORMAT = {"type": "json_object"}
IMAGE_SIZE = "1024x1024"


class CompatibleAdapter:
    """OpenAI-compatible chat/images endpoints behind a configurable base URL."""

    id = "compatible"

    def __init__(
        self,
        base_url: str,
        api_key: str,
        text_model: str,
        image_model: str,
        *,
        timeout: float = 120.0,
        client: Union[httpx.AsyncClient, None] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.text_model = text_model
        self.image_model = image_model
        self.timeout = timeout
        self._owns_client = client is None
        self.client = make_client(self.base_url, client)

    async def _post(self, path: str, payload: dict) -> httpx.Response:
        headers = {"Authorization": f"Bearer {self.api_key}"}
        try:
            return await self.client.post(path, json=payload, headers=headers, timeout=self.timeout)
        except httpx.TransportError as e:
            raise TransportError(f"Compatible API request to {path} failed: {e}") from e

    def _user_content(self, prompt: TextPrompt) -> Union[str, list]:
        if not prompt.ref_image:
            return prompt.user_text
        mime, data = prompt.ref_image
        return [
            {"type": "text", "text": prompt.user_text},
            {"type": "image_url", "image_url": {"url": f"data:{mime};base64,{data}"}},
        ]

    async def generate_text(self, prompt: TextPrompt) -> RawResponse:
        messages = []
        if prompt.system_instruction:
            messages.append({"role": "system", "content": prompt.system_instruction})
        messages.append({"role": "user", "content": self._user_content(prompt)})
        payload: dict = {
            "model": self.text_model,
            "messages": messages,
            "temperature": prompt.temperature,
        }
        if prompt.json_mode or prompt.response_schema is not None:
            payload["response_format"] = JSON_RESPONSE_FORMAT

        start = time.perf_counter()
        resp = await self._post("/chat/completions", payload)
        if resp.status_code >= 400 and "response_format" in payload:
            message = error_message(resp)
            if resp.status_code == 400 or "unsupported" in message.lower():
                logger.info(
                    "Provider rejected response_format (%s); retrying without it",
                    resp.status_code,
                )
                payload.pop("response_format")
                resp = await self._post("/chat/completions", payload)
        latency_ms = int((time.perf_counter() - start) * 1000)
        if resp.status_code >= 400:
            raise error_from_status(resp.status_code, error_message(resp), provider="Compatible")

        data = resp.json()
        choices = data.get("choices") or []
        text = ""
        finish_reason = None
        if choices:
            text = (choices[0].get("message") or {}).get("content") or ""
            finish_reason = choices[0].get("finish_reason")
        usage = data.get("usage") or {}
        return RawResponse(
            text=text,
            finish_reason=finish_reason,
            tokens_in=usage.get("prompt_tokens"),
            tokens_out=usage.get("completion_tokens"),
            latency_ms=latency_ms,
        )

    async def generate_image(self, prompt: str) -> Union[str, None]:
        payload = {
            "model": self.image_model,
            "prompt": prompt,
            "n": 1,
            "size": IMAGE_SIZE,
            "response_format": "b64_json",
        }
        resp = await self._post("/images/generations", payload)
        if resp.status_code >= 400:
            raise error_from_status(resp.status_code, error_message(resp), provider="Compatible")
        items = resp.json().get("data") or []
        if not items:
            return None
        first = items[0]
        if first.get("b64_json"):
            return f"data:image/png;base64,{first['b64_json']}"
        return first.get("url")

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()
