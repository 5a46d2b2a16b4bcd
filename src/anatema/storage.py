"""Durable key-value storage.

A tiny file-backed store with ``localStorage`` semantics: string keys map to
string values, each key lives in its own file under a root directory. Callers
serialise their own values (usually JSON).

An optional byte quota makes the store refuse writes that would grow it past
the limit, which lets callers exercise their degraded-save paths.
"""

from __future__ import annotations

import errno
import json
import os
from pathlib import Path
from typing import Any, Iterator
from urllib.parse import quote, unquote

from anatema import config
from anatema import logger as logger_mod

log = logger_mod.get_logger()

_QUOTA_ERRNOS = {errno.ENOSPC, getattr(errno, "EDQUOT", errno.ENOSPC)}


class StorageError(RuntimeError):
    """Base error for anatema.storage."""


class StorageQuotaError(StorageError):
    """Write refused because the store is full."""


class FileStore:
    """String key -> string value store persisted as one file per key."""

    def __init__(self, root: str | os.PathLike | None = None, *, quota_bytes: int = 0):
        self._root = Path(root or config.STORAGE_DIR)
        self._quota_bytes = max(0, int(quota_bytes))
        self._root.mkdir(parents=True, exist_ok=True)

    @classmethod
    def from_env(cls) -> "FileStore":
        return cls(config.STORAGE_DIR, quota_bytes=config.STORAGE_QUOTA_BYTES)

    @property
    def root(self) -> Path:
        return self._root

    def _path(self, key: str) -> Path:
        return self._root / f"{quote(key, safe='')}.json"

    def keys(self) -> Iterator[str]:
        for p in sorted(self._root.glob("*.json")):
            yield unquote(p.stem)

    def get_item(self, key: str) -> str | None:
        path = self._path(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

    def set_item(self, key: str, value: str) -> None:
        path = self._path(key)
        if self._quota_bytes:
            current = self.usage_bytes() - (path.stat().st_size if path.exists() else 0)
            needed = len(value.encode("utf-8"))
            if current + needed > self._quota_bytes:
                raise StorageQuotaError(
                    f"Storage quota exceeded writing {key!r}: "
                    f"{current + needed} > {self._quota_bytes} bytes"
                )

        tmp = path.with_suffix(".tmp")
        try:
            tmp.write_text(value, encoding="utf-8")
            os.replace(tmp, path)
        except OSError as e:
            tmp.unlink(missing_ok=True)
            if e.errno in _QUOTA_ERRNOS:
                raise StorageQuotaError(f"Storage full writing {key!r}: {e}") from e
            raise StorageError(f"Failed to write {key!r}: {e}") from e

    def remove_item(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)

    def usage_bytes(self) -> int:
        return sum(p.stat().st_size for p in self._root.glob("*.json"))

    def clear_temporary(self) -> int:
        """Remove cache-like keys (see ``config.TEMPORARY_KEY_MARKERS``)."""

        removed = [
            k
            for k in list(self.keys())
            if any(marker in k for marker in config.TEMPORARY_KEY_MARKERS)
        ]
        for key in removed:
            self.remove_item(key)
        log.info(f"Removed {len(removed)} temporary storage items")
        return len(removed)

    # JSON helpers

    def get_json(self, key: str, default: Any = None) -> Any:
        try:
            raw = self.get_item(key)
        except UnicodeDecodeError as e:
            log.warning(f"⚠️ Ignoring undecodable value stored under {key!r}: {e}")
            return default
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            log.warning(f"⚠️ Ignoring malformed JSON stored under {key!r}: {e}")
            return default

    def set_json(self, key: str, value: Any) -> None:
        self.set_item(key, json.dumps(value, ensure_ascii=False))
