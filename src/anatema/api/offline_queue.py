from __future__ import annotations

import threading
import time
import uuid
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Iterator, Optional

from anatema import config
from anatema import logger as logger_mod
from anatema.storage import FileStore, StorageError, StorageQuotaError

log = logger_mod.get_logger()

WRITE_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})


class Priority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return {"high": 3, "medium": 2, "low": 1}[self.value]


@dataclass
class RequestOptions:
    method: str = "GET"
    headers: dict[str, str] = field(default_factory=dict)
    body: Optional[str] = None
    timeout_s: Optional[float] = None
    retries: Optional[int] = None
    skip_retry: bool = False
    enable_offline_queue: bool = True

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RequestOptions":
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        return cls(**known)


def determine_priority(endpoint: str, options: RequestOptions) -> Priority:
    if "/auth" in endpoint or "/login" in endpoint:
        return Priority.HIGH
    if options.method.upper() in WRITE_METHODS:
        return Priority.MEDIUM
    return Priority.LOW


@dataclass
class OfflineOperation:
    id: str
    endpoint: str
    options: RequestOptions
    timestamp: int
    attempts: int = 0
    priority: Priority = Priority.LOW

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "endpoint": self.endpoint,
            "options": self.options.to_dict(),
            "timestamp": self.timestamp,
            "attempts": self.attempts,
            "priority": self.priority.value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "OfflineOperation":
        return cls(
            id=str(data["id"]),
            endpoint=str(data["endpoint"]),
            options=RequestOptions.from_dict(data.get("options") or {}),
            timestamp=int(data["timestamp"]),
            attempts=int(data.get("attempts", 0)),
            priority=Priority(data.get("priority", Priority.LOW.value)),
        )


def replay_order(op: OfflineOperation) -> tuple[int, int]:
    """Sort key: higher priority first, then oldest first."""

    return (-op.priority.rank, op.timestamp)


class OfflineQueue:
    """Durable list of requests waiting for connectivity.

    The whole queue is written to the store after every change and read back
    on construction, so it survives restarts. When the store is full the queue
    frees temporary keys and keeps only ``high`` priority operations.
    """

    def __init__(self, store: FileStore, key: str = config.OFFLINE_QUEUE_KEY):
        self._store = store
        self._key = key
        self._lock = threading.RLock()
        self._ops: list[OfflineOperation] = []
        self.load()

    def __len__(self) -> int:
        with self._lock:
            return len(self._ops)

    def __iter__(self) -> Iterator[OfflineOperation]:
        return iter(self.snapshot())

    def snapshot(self) -> list[OfflineOperation]:
        with self._lock:
            return list(self._ops)

    def load(self) -> None:
        raw = self._store.get_json(self._key, [])
        ops: list[OfflineOperation] = []
        if isinstance(raw, list):
            for item in raw:
                try:
                    ops.append(OfflineOperation.from_dict(item))
                except (KeyError, TypeError, ValueError) as e:
                    log.warning(f"⚠️ Dropping unreadable offline operation: {e}")
        else:
            log.warning(f"⚠️ Offline queue under {self._key!r} is not a list; starting empty")
        with self._lock:
            self._ops = ops
        if ops:
            log.info(f"Loaded {len(ops)} operations from the offline queue")

    def _write(self) -> None:
        self._store.set_json(self._key, [op.to_dict() for op in self._ops])

    def save(self) -> bool:
        """Persist the queue. Returns False when the write failed.

        Storage errors are logged, never raised: the in-memory queue stays
        usable and the next mutation tries again.
        """

        with self._lock:
            try:
                self._write()
                return True
            except StorageQuotaError as e:
                log.warning(f"⚠️ {e}; keeping only high priority operations")
            except StorageError as e:
                log.error(f"❌ Failed to save the offline queue: {e}")
                return False

            self._store.clear_temporary()
            self._ops = [op for op in self._ops if op.priority is Priority.HIGH]
            try:
                self._write()
            except StorageError as e:
                log.error(f"❌ Failed to save the degraded offline queue: {e}")
                return False
            return True

    def enqueue(self, endpoint: str, options: RequestOptions) -> OfflineOperation:
        """Add a request to the queue and persist it.

        Raises :class:`StorageQuotaError` when the store is full and the new
        operation was dropped by the degraded save.
        """

        op = OfflineOperation(
            id=uuid.uuid4().hex,
            endpoint=endpoint,
            options=options,
            timestamp=int(time.time() * 1000),
            priority=determine_priority(endpoint, options),
        )
        with self._lock:
            self._ops.append(op)
            self.save()
            kept = op in self._ops
        if not kept:
            raise StorageQuotaError(
                f"Storage full: dropped offline operation {options.method} {endpoint}"
            )
        log.info(f"Queued offline operation: {options.method} {endpoint} ({op.priority.value})")
        return op

    def ordered(self) -> list[OfflineOperation]:
        with self._lock:
            return sorted(self._ops, key=replay_order)

    def remove(self, ids: set[str]) -> None:
        """Drop ``ids`` and persist (also saves any in-place attempt updates)."""

        with self._lock:
            self._ops = [op for op in self._ops if op.id not in ids]
            self.save()

    def clear(self) -> None:
        with self._lock:
            self._ops = []
            self.save()
