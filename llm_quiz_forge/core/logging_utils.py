from __future__ import annotations

import logging
import os
import shutil
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
LOG_FILE_NAME = "quizforge.log"


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class LogRotationPolicy:
    max_bytes: int = 5 * 1024 * 1024
    max_age_hours: int = 24
    keep_files: int = 5

    @classmethod
    def from_env(cls) -> "LogRotationPolicy":
        return cls(
            max_bytes=_env_int("QUIZ_FORGE_LOG_MAX_BYTES", cls.max_bytes),
            max_age_hours=_env_int("QUIZ_FORGE_LOG_MAX_AGE_HOURS", cls.max_age_hours),
            keep_files=_env_int("QUIZ_FORGE_LOG_MAX_FILES", cls.keep_files),
        )

    @property
    def enabled(self) -> bool:
        return self.max_bytes > 0 or self.max_age_hours > 0

    def is_due(self, size: int, modified: datetime, now: datetime) -> bool:
        if self.max_bytes > 0 and size >= self.max_bytes:
            return True
        if self.max_age_hours > 0:
            return (now - modified).total_seconds() >= self.max_age_hours * 3600
        return False


def _prune_rotated(path: Path, keep: int) -> None:
    archives = sorted(
        path.parent.glob(f"{path.stem}.*{path.suffix}"),
        key=lambda p: p.stat().st_mtime,
        reverse=True,
    )
    for stale in archives[keep:]:
        stale.unlink(missing_ok=True)


def rotate_log_if_needed(path: Path, policy: LogRotationPolicy | None = None) -> Path | None:
    """Move ``path`` aside when it is too big or too old; returns the archive path."""
    policy = policy or LogRotationPolicy.from_env()
    if not policy.enabled or not path.is_file():
        return None

    now = datetime.now(timezone.utc)
    stat = path.stat()
    modified = datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc)
    if not policy.is_due(stat.st_size, modified, now):
        return None

    archive = path.with_name(f"{path.stem}.{now.strftime('%Y%m%d-%H%M%S')}{path.suffix}")
    shutil.move(str(path), str(archive))
    if policy.keep_files > 0:
        _prune_rotated(path, policy.keep_files)
    return archive


def configure_logging(logs_dir: Path, level: int = logging.INFO) -> Path:
    """Send package logs to stderr and to ``logs_dir/quizforge.log``."""
    logs_dir.mkdir(parents=True, exist_ok=True)
    log_path = logs_dir / LOG_FILE_NAME
    rotate_log_if_needed(log_path)

    package_logger = logging.getLogger("llm_quiz_forge")
    package_logger.setLevel(level)
    for handler in list(package_logger.handlers):
        if getattr(handler, "_quiz_forge", False):
            package_logger.removeHandler(handler)
            handler.close()

    formatter = logging.Formatter(LOG_FORMAT)
    for handler in (logging.StreamHandler(), logging.FileHandler(log_path, encoding="utf-8")):
        handler.setFormatter(formatter)
        handler._quiz_forge = True
        package_logger.addHandler(handler)
    return log_path
