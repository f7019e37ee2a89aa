from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Mapping, Optional

ENV_PREFIX = "ZEPPELIN_"

LOG_LEVELS = ("critical", "error", "warning", "info", "debug", "trace")
_LOG_LEVEL_ALIASES = {"warn": "warning", "fatal": "critical"}


def default_root() -> str:
    return str(Path.home() / "gt")


@dataclass(slots=True, frozen=True)
class ZeppelinConfig:
    bind: str = "127.0.0.1"
    port: int = 7331
    root: str = field(default_factory=default_root)
    poll_interval: float = 5.0
    command_timeout: float = 10.0
    subscriber_queue_size: int = 64
    static_dir: Optional[str] = None
    log_level: str = "info"
    log_path: Optional[str] = None

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ZeppelinConfig":
        env = os.environ if environ is None else environ
        base = cls()
        return base.with_overrides(
            bind=env.get(f"{ENV_PREFIX}BIND"),
            port=env.get(f"{ENV_PREFIX}PORT"),
            root=env.get(f"{ENV_PREFIX}ROOT"),
            poll_interval=env.get(f"{ENV_PREFIX}POLL_INTERVAL"),
            static_dir=env.get(f"{ENV_PREFIX}STATIC_DIR"),
            log_level=env.get(f"{ENV_PREFIX}LOG_LEVEL"),
            log_path=env.get(f"{ENV_PREFIX}LOG_PATH"),
        )

    def with_overrides(self, **overrides: Any) -> "ZeppelinConfig":
        """Return a copy with non-empty overrides applied and values clamped."""
        updates = {key: value for key, value in overrides.items() if value is not None and value != ""}
        merged = replace(self, **updates) if updates else self
        return replace(
            merged,
            bind=str(merged.bind).strip() or "127.0.0.1",
            port=max(1, _as_int(merged.port, default=7331)),
            root=str(Path(str(merged.root)).expanduser()),
            poll_interval=max(0.5, _as_float(merged.poll_interval, default=5.0)),
            command_timeout=max(1.0, _as_float(merged.command_timeout, default=10.0)),
            subscriber_queue_size=max(8, _as_int(merged.subscriber_queue_size, default=64)),
            log_level=_log_level(merged.log_level),
        )


def _log_level(value: Any) -> str:
    level = str(value).strip().lower()
    level = _LOG_LEVEL_ALIASES.get(level, level)
    return level if level in LOG_LEVELS else "info"


def _as_int(value: Any, *, default: int) -> int:
    try:
        return int(value)
    except Exception:
        return default


def _as_float(value: Any, *, default: float) -> float:
    try:
        return float(value)
    except Exception:
        return default
