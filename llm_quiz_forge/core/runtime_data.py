from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

DEFAULT_RUNTIME_DIR = Path(__file__).resolve().parents[2] / "runtime-data"
DB_FILE_NAME = "quizforge.sqlite3"


@dataclass(frozen=True)
class RuntimePaths:
    """Writable locations for the settings/log database, log files and saved quizzes."""

    root: Path

    @property
    def db_path(self) -> Path:
        return self.root / "db" / DB_FILE_NAME

    @property
    def logs_dir(self) -> Path:
        return self.root / "logs"

    @property
    def quizzes_dir(self) -> Path:
        return self.root / "quizzes"

    def ensure(self) -> "RuntimePaths":
        for directory in (self.db_path.parent, self.logs_dir, self.quizzes_dir):
            directory.mkdir(parents=True, exist_ok=True)
        return self


def build_runtime_paths(root: Path) -> RuntimePaths:
    return RuntimePaths(Path(root)).ensure()


def get_runtime_paths() -> RuntimePaths:
    configured = os.environ.get("QUIZ_FORGE_RUNTIME_DIR", "").strip()
    return build_runtime_paths(Path(configured) if configured else DEFAULT_RUNTIME_DIR)


def use_mocks() -> bool:
    return os.environ.get("QUIZ_FORGE_ENV", "real").lower() == "mock"
