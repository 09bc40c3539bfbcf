"""Loguru sinks for the session layer.

Sinks come from the ``LogConsumers`` list in config.json, for example::

    [
        {"type": "console"},
        {"type": "file", "path": "session.log", "level": "DEBUG"},
        {"type": "file", "path": "storage.log", "modules": ["highlight_session.storage"]}
    ]

Relative file paths resolve against the data directory. ``modules`` limits a
sink to records logged from those module prefixes.
"""

from __future__ import annotations

import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable

from loguru import logger

CONSOLE_FORMAT = "<green>{time:HH:mm:ss}</green> <level>{level:<8}</level> <cyan>{name}</cyan> - <level>{message}</level>"
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level:<8} | {name}:{line} - {message}"
DEFAULT_LOG_FILE = "session.log"
SINK_KINDS = ("console", "file")


@dataclass
class SinkConfig:
    kind: str
    level: str
    modules: tuple[str, ...] = ()
    path: Path | None = None
    rotation: str = "5 MB"
    retention: int = 3

    def describe(self) -> str:
        where = "stderr" if self.kind == "console" else str(self.path)
        scope = f", {' '.join(self.modules)}" if self.modules else ""
        return f"{self.kind} ({where}, {self.level}{scope})"


def parse_sink_config(raw: dict[str, Any], *, default_level: str, log_dir: Path | None = None) -> SinkConfig:
    kind = str(raw.get("type", ""))
    if kind not in SINK_KINDS:
        raise ValueError(f"unknown type {kind!r}")

    modules = raw.get("modules") or ()
    if isinstance(modules, str):
        modules = (modules,)
    sink = SinkConfig(
        kind=kind,
        level=str(raw.get("level", default_level)).upper(),
        modules=tuple(str(m) for m in modules),
    )
    if kind == "file":
        path = Path(raw.get("path", DEFAULT_LOG_FILE))
        if not path.is_absolute() and log_dir is not None:
            path = log_dir / path
        sink.path = path
        sink.rotation = str(raw.get("rotation", sink.rotation))
        sink.retention = int(raw.get("retention", sink.retention))
    return sink


def _module_filter(modules: tuple[str, ...]) -> Callable[[dict], bool] | None:
    if not modules:
        return None

    def _filter(record: dict) -> bool:
        return record["name"].startswith(modules)

    return _filter


def _add_sink(sink: SinkConfig) -> None:
    if sink.kind == "console":
        logger.add(sys.stderr, level=sink.level, format=CONSOLE_FORMAT, filter=_module_filter(sink.modules))
        return
    sink.path.parent.mkdir(parents=True, exist_ok=True)
    logger.add(
        str(sink.path),
        level=sink.level,
        format=FILE_FORMAT,
        filter=_module_filter(sink.modules),
        rotation=sink.rotation,
        retention=sink.retention,
    )


def setup_logging(
    level: str = "INFO",
    consumers: list[dict[str, Any]] | None = None,
    *,
    log_dir: Path | None = None,
) -> list[str]:
    """Replace all loguru sinks with the configured ones and describe them.

    Invalid entries are skipped and reported once the valid sinks are in place.
    """
    logger.remove()

    descriptions: list[str] = []
    skipped: list[str] = []
    for raw in consumers if consumers is not None else [{"type": "console"}]:
        try:
            sink = parse_sink_config(raw, default_level=level, log_dir=log_dir)
        except (TypeError, ValueError) as ex:
            skipped.append(f"{raw!r}: {ex}")
            continue
        _add_sink(sink)
        descriptions.append(sink.describe())

    for entry in skipped:
        logger.warning(f"Skipped log consumer {entry}")
    return descriptions
