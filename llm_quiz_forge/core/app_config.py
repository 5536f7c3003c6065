"""Configuration loader for providers, rotation and timeouts."""

from __future__ import annotations

import copy
import os
from pathlib import Path
from typing import Any, Optional

import yaml

DEFAULTS: dict[str, Any] = {
    "primary": {
        "base_url": "https://generativelanguage.googleapis.com/v1beta",
        "text_model": "gemini-3-flash-preview",
        "image_model": "gemini-2.5-flash-image",
        "api_key_envs": ["GEMINI_API_KEYS", "API_KEY"],
    },
    "compatible": {
        "base_url": "https://api.openai.com/v1",
        "text_model": "gpt-4o-mini",
        "image_model": "dall-e-3",
    },
    "rotation": {
        "delay_seconds": 0.5,
        "cooldown_seconds": 60,
    },
    "request_timeout_seconds": 120,
    "min_user_key_length": 20,
}


def _merge(base: dict, override: dict) -> dict:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        elif value is not None:
            merged[key] = value
    return merged


class AppConfigLoader:
    """Loads settings from config/quizforge.yaml merged over ``DEFAULTS``."""

    def __init__(self, config_path: Optional[Path] = None) -> None:
        if config_path is None:
            env_path = os.environ.get("QUIZ_FORGE_CONFIG", "").strip()
            if env_path:
                config_path = Path(env_path)
            else:
                project_root = Path(__file__).parent.parent.parent
                config_path = project_root / "config" / "quizforge.yaml"
        self.config_path = config_path
        self._config: dict[str, Any] | None = None

    def _load_config(self) -> dict[str, Any]:
        if self._config is not None:
            return self._config
        user_config: dict[str, Any] = {}
        if self.config_path.exists():
            with self.config_path.open("r", encoding="utf-8") as handle:
                user_config = yaml.safe_load(handle) or {}
        self._config = _merge(DEFAULTS, user_config if isinstance(user_config, dict) else {})
        return self._config

    def section(self, name: str) -> dict[str, Any]:
        return dict(self._load_config().get(name) or {})

    def get(self, name: str, default: Any = None) -> Any:
        return self._load_config().get(name, default)

    @property
    def delay_seconds(self) -> float:
        return float(self.section("rotation")["delay_seconds"])

    @property
    def cooldown_seconds(self) -> float:
        return float(self.section("rotation")["cooldown_seconds"])

    @property
    def request_timeout(self) -> float:
        return float(self.get("request_timeout_seconds"))

    @property
    def min_user_key_length(self) -> int:
        return int(self.get("min_user_key_length"))


app_config = AppConfigLoader()
