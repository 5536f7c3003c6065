"""Active provider selection, persisted in the runtime settings store."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

import httpx

from ..adapters.compatible_adapter import CompatibleAdapter
from ..adapters.gemini_adapter import GeminiAdapter
from ..adapters.mock_adapter import MockAdapter
from .app_config import AppConfigLoader, app_config
from .runtime_data import get_runtime_paths
from .sqlite_store import connect, get_setting, put_setting
from .types import Credential

SETTING_KEY = "provider"


class ProviderKind(str, Enum):
    PRIMARY = "PRIMARY"
    COMPATIBLE = "COMPATIBLE"


@dataclass
class CompatibleSettings:
    base_url: str
    api_key: str = ""
    text_model: str = ""
    image_model: str = ""


@dataclass
class ProviderConfiguration:
    provider: ProviderKind = ProviderKind.PRIMARY
    compatible: Optional[CompatibleSettings] = None
    config: AppConfigLoader = field(default=app_config, repr=False, compare=False)

    @classmethod
    def from_dict(
        cls, data: Optional[dict[str, Any]], config: AppConfigLoader = app_config
    ) -> "ProviderConfiguration":
        data = data or {}
        try:
            provider = ProviderKind(str(data.get("provider", "PRIMARY")).upper())
        except ValueError as exc:
            raise ValueError(f"Unknown provider: {data.get('provider')}") from exc
        compatible = None
        raw = data.get("compatible")
        if isinstance(raw, dict):
            defaults = config.section("compatible")
            compatible = CompatibleSettings(
                base_url=raw.get("baseUrl") or raw.get("base_url") or defaults["base_url"],
                api_key=raw.get("apiKey") or raw.get("api_key") or "",
                text_model=raw.get("textModel") or raw.get("text_model") or defaults["text_model"],
                image_model=raw.get("imageModel") or raw.get("image_model") or defaults["image_model"],
            )
        if provider is ProviderKind.COMPATIBLE and compatible is None:
            raise ValueError("COMPATIBLE provider requires 'compatible' settings")
        return cls(provider=provider, compatible=compatible, config=config)

    def to_dict(self, mask_key: bool = False) -> dict[str, Any]:
        data: dict[str, Any] = {"provider": self.provider.value}
        if self.compatible:
            api_key = self.compatible.api_key
            if mask_key and api_key:
                api_key = Credential(api_key).masked
            data["compatible"] = {
                "baseUrl": self.compatible.base_url,
                "apiKey": api_key,
                "textModel": self.compatible.text_model,
                "imageModel": self.compatible.image_model,
            }
        return data

    def create_adapter(
        self,
        credential: Credential,
        use_mocks: bool = False,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """Create the adapter that talks to the active provider with ``credential``."""
        if use_mocks:
            return MockAdapter(model=self.provider.value.lower())
        timeout = self.config.request_timeout
        if self.provider is ProviderKind.COMPATIBLE:
            settings = self.compatible
            return CompatibleAdapter(
                base_url=settings.base_url,
                api_key=credential.value,
                text_model=settings.text_model,
                image_model=settings.image_model,
                timeout=timeout,
                client=client,
            )
        primary = self.config.section("primary")
        return GeminiAdapter(
            api_key=credential.value,
            text_model=primary["text_model"],
            image_model=primary["image_model"],
            base_url=primary["base_url"],
            timeout=timeout,
            client=client,
        )


def load_provider_configuration(config: AppConfigLoader = app_config) -> ProviderConfiguration:
    runtime_paths = get_runtime_paths()
    conn = connect(runtime_paths.db_path)
    data = get_setting(conn, SETTING_KEY)
    conn.close()
    return ProviderConfiguration.from_dict(data, config)


def save_provider_configuration(configuration: ProviderConfiguration) -> None:
    runtime_paths = get_runtime_paths()
    conn = connect(runtime_paths.db_path)
    put_setting(conn, SETTING_KEY, configuration.to_dict())
    conn.close()
