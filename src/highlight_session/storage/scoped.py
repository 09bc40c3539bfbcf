from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

SCOPE_FILE_NAME = "scope.json"


class ScopedStore:
    """Small key/value store whose lifetime is bound to a host-provided scope directory.

    Every call reads and rewrites the backing file synchronously, so a value is on
    disk before the call returns. Values must be JSON-serializable.
    """

    def __init__(self, scope_dir: str):
        self._scope_dir = Path(scope_dir)
        self._path = self._scope_dir / SCOPE_FILE_NAME

    @property
    def path(self) -> Path:
        return self._path

    def get(self, key: str) -> Any | None:
        return self._read().get(key)

    def put(self, key: str, value: Any) -> None:
        data = self._read()
        data[key] = value
        self._write(data)

    def remove(self, key: str) -> None:
        data = self._read()
        if key in data:
            del data[key]
            self._write(data)

    def keys(self) -> list[str]:
        return sorted(self._read())

    def _read(self) -> dict[str, Any]:
        if not self._path.exists():
            return {}
        with open(self._path, encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"Scope file is not a JSON object: {self._path}")
        return data

    def _write(self, data: dict[str, Any]) -> None:
        self._scope_dir.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=True)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, self._path)
