from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Protocol, Union, TypedDict

import httpx


class RawResponse(TypedDict, total=False):
    text: str
    finish_reason: Union[str, None]
    tokens_in: Union[int, None]
    tokens_out: Union[int, None]
    latency_ms: int


@dataclass(frozen=True)
class TextPrompt:
    system_instruction: str
    user_text: str
    response_schema: Union[dict, None] = None
    json_mode: bool = False
    ref_image: Union[tuple[str, str], None] = None  # (mime type, base64 data)
    temperature: float = 0.7


class ProviderAdapter(Protocol):
    id: str

    async def generate_text(self, prompt: TextPrompt) -> RawResponse: ...

    async def generate_image(self, prompt: str) -> Union[str, None]: ...

    async def aclose(self) -> None: ...


def make_client(base_url: str, client: Union[httpx.AsyncClient, None] = None) -> httpx.AsyncClient:
    if client is not None:
        return client
    proxy = os.environ.get("HTTPS_PROXY") or os.environ.get("HTTP_PROXY")
    if proxy:
        return httpx.AsyncClient(base_url=base_url, proxy=proxy)
    return httpx.AsyncClient(base_url=base_url)


def error_message(response: httpx.Response) -> str:
    """Best-effort extraction of a provider error message."""
    try:
        payload = response.json()
    except ValueError:
        return response.text[:200]
    if not isinstance(payload, dict):
        return str(payload)[:200]
    error = payload.get("error")
    if isinstance(error, dict):
        return str(error.get("message") or error.get("status") or error)
    if error:
        return str(error)
    return str(payload.get("message") or response.text[:200])


def split_data_url(value: str, default_mime: str = "image/jpeg") -> tuple[str, str]:
    """Return ``(mime, base64)`` for a data URL or a bare base64 string."""
    if value.startswith("data:") and "," in value:
        header, data = value.split(",", 1)
        mime = header[5:].split(";", 1)[0] or default_mime
        return mime, data
    return default_mime, value
