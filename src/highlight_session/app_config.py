from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path

from highlight_session.models import SESSION_ID_PREFIX
from highlight_session.session.tiering import DEFAULT_METADATA_ONLY_THRESHOLD_BYTES


@dataclass
class RuntimeEnv:
    data_dir: str | None
    scope_dir: str | None


@dataclass
class AppConfig:
    data_dir: str
    durable_db_name: str
    scope_dir: str
    metadata_only_threshold_bytes: int
    session_ttl_hours: float
    session_id_prefix: str
    process_hooks: bool
    log_level: str
    log_consumers: list | None

    def durable_db_path(self, env: RuntimeEnv | None = None) -> Path:
        base = Path((env.data_dir if env else None) or self.data_dir)
        if not base.is_absolute():
            base = Path.cwd() / base
        return base / self.durable_db_name

    def scope_path(self, env: RuntimeEnv | None = None) -> Path:
        scope = Path((env.scope_dir if env else None) or self.scope_dir)
        if not scope.is_absolute():
            scope = Path.cwd() / scope
        return scope


def load_json_config() -> dict:
    config_path = Path.cwd() / "config.json"
    if config_path.exists():
        with open(config_path) as f:
            return json.load(f)
    return {}


def _to_bool(value: object, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"1", "true", "yes", "on"}:
            return True
        if lowered in {"0", "false", "no", "off"}:
            return False
    return bool(value)


def parse_app_config(config: dict) -> AppConfig:
    threshold = int(config.get("MetadataOnlyThresholdBytes", DEFAULT_METADATA_ONLY_THRESHOLD_BYTES))
    if threshold < 0:
        raise ValueError(f"MetadataOnlyThresholdBytes must not be negative: {threshold}")
    ttl_hours = float(config.get("SessionTtlHours", 24))
    if ttl_hours <= 0:
        raise ValueError(f"SessionTtlHours must be positive: {ttl_hours}")
    return AppConfig(
        data_dir=str(config.get("DataDir", ".highlight_session")),
        durable_db_name=str(config.get("DurableDbName", "sessions.db")),
        scope_dir=str(config.get("ScopeDir", ".highlight_session/scope")),
        metadata_only_threshold_bytes=threshold,
        session_ttl_hours=ttl_hours,
        session_id_prefix=str(config.get("SessionIdPrefix", SESSION_ID_PREFIX)).strip() or SESSION_ID_PREFIX,
        process_hooks=_to_bool(config.get("ProcessHooks", False), default=False),
        log_level=config.get("LogLevel", "INFO"),
        log_consumers=config.get("LogConsumers"),
    )


def resolve_runtime_env() -> RuntimeEnv:
    return RuntimeEnv(
        data_dir=os.environ.get("HIGHLIGHT_SESSION_DATA_DIR") or None,
        scope_dir=os.environ.get("HIGHLIGHT_SESSION_SCOPE_DIR") or None,
    )
