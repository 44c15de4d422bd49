"""
import_engine.staging - Token-addressed holding area for validated files.

A validate call stages its rows here and hands the caller an opaque
token; the matching commit call consumes it.  Entries are ephemeral: a
restart drops them and callers re-upload.

Lifecycle per token:  STAGED → CONSUMED  (first commit attempt)
                      STAGED → EXPIRED   (TTL passed)
Retired tokens keep a row-less tombstone for a while so late callers get
TokenAlreadyConsumed / TokenExpired instead of TokenNotFound.
"""

from __future__ import annotations

import enum
import logging
import secrets
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, MutableMapping, Optional, Sequence

from import_engine.errors import TokenAlreadyConsumed, TokenExpired, TokenNotFound
from import_engine.field_map import EntityKind
from import_engine.row_processor import ImportRow

logger = logging.getLogger(__name__)


class BatchState(enum.Enum):
    STAGED   = "staged"
    CONSUMED = "consumed"
    EXPIRED  = "expired"


@dataclass(frozen=True)
class ImportBatch:
    token: str
    entity_kind: EntityKind
    delimiter: str
    rows: tuple[ImportRow, ...]
    created_at: datetime
    expires_at: datetime
    create_missing_refs: bool = False

    @property
    def total(self) -> int:
        return len(self.rows)

    @property
    def valid_count(self) -> int:
        return sum(1 for r in self.rows if r.is_valid)

    @property
    def invalid_count(self) -> int:
        return self.total - self.valid_count


@dataclass
class _Entry:
    state: BatchState
    batch: Optional[ImportBatch]
    expires_at: datetime
    forget_at: Optional[datetime] = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_token() -> str:
    """128 random bits, hex encoded.  Carries no meaning."""
    return secrets.token_hex(16)


class StagingStore:
    """
    Thread-safe token → batch map.  One lock guards the whole backend;
    work done on a batch after consume() happens outside the lock.
    """

    def __init__(
        self,
        ttl: timedelta,
        *,
        tombstone_ttl: timedelta = timedelta(hours=24),
        backend: Optional[MutableMapping[str, _Entry]] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.ttl = ttl
        self.tombstone_ttl = tombstone_ttl
        self._entries: MutableMapping[str, _Entry] = backend if backend is not None else {}
        self._clock = clock
        self._lock = threading.Lock()

    # ── Public API ─────────────────────────────────────────────────────

    def put(
        self,
        entity_kind: EntityKind,
        delimiter: str,
        rows: Sequence[ImportRow],
        *,
        create_missing_refs: bool = False,
    ) -> ImportBatch:
        """Stage rows under a fresh token and return the batch."""
        now = self._clock()
        batch = ImportBatch(
            token=new_token(),
            entity_kind=entity_kind,
            delimiter=delimiter,
            rows=tuple(rows),
            created_at=now,
            expires_at=now + self.ttl,
            create_missing_refs=create_missing_refs,
        )
        with self._lock:
            self._entries[batch.token] = _Entry(BatchState.STAGED, batch, batch.expires_at)
        return batch

    def get(self, token: str) -> ImportBatch:
        """Peek without consuming.  Raises on unknown / expired / consumed."""
        with self._lock:
            return self._live_entry(token).batch

    def consume(self, token: str) -> ImportBatch:
        """
        Atomically fetch the batch and retire the token.  Of two
        concurrent callers with the same token exactly one gets the batch.
        """
        with self._lock:
            entry = self._live_entry(token)
            batch = entry.batch
            self._retire(token, entry, BatchState.CONSUMED)
            return batch

    def invalidate(self, token: str) -> None:
        """Retire a staged token.  Unknown or already retired tokens are ignored."""
        with self._lock:
            entry = self._entries.get(token)
            if entry is not None and entry.state is BatchState.STAGED:
                self._retire(token, entry, BatchState.CONSUMED)

    def sweep(self) -> int:
        """Expire overdue batches and forget old tombstones.  Returns count touched."""
        now = self._clock()
        touched = 0
        with self._lock:
            for token in list(self._entries):
                entry = self._entries[token]
                if entry.state is BatchState.STAGED and now >= entry.expires_at:
                    self._retire(token, entry, BatchState.EXPIRED)
                    touched += 1
                elif entry.forget_at is not None and now >= entry.forget_at:
                    del self._entries[token]
                    touched += 1
        if touched:
            logger.debug(f"Staging sweep touched {touched} token(s)")
        return touched

    def staged_count(self) -> int:
        with self._lock:
            return sum(1 for e in self._entries.values() if e.state is BatchState.STAGED)

    def state(self, token: str) -> Optional[BatchState]:
        with self._lock:
            entry = self._entries.get(token)
            return entry.state if entry else None

    # ── Private helpers (lock held) ────────────────────────────────────

    def _live_entry(self, token: str) -> _Entry:
        entry = self._entries.get(token or "")
        if entry is None:
            raise TokenNotFound()

        now = self._clock()
        if entry.state is BatchState.STAGED and now >= entry.expires_at:
            self._retire(token, entry, BatchState.EXPIRED)

        if entry.state is BatchState.EXPIRED:
            raise TokenExpired()
        if entry.state is BatchState.CONSUMED:
            raise TokenAlreadyConsumed()
        return entry

    def _retire(self, token: str, entry: _Entry, state: BatchState) -> None:
        entry.state = state
        entry.batch = None
        entry.forget_at = self._clock() + self.tombstone_ttl
        # Write back so non-dict backends see the change
        self._entries[token] = entry


class StagingSweeper(threading.Thread):
    """Daemon that calls store.sweep() every `interval` seconds."""

    def __init__(self, store: StagingStore, interval: float):
        super().__init__(name="staging-sweeper", daemon=True)
        self.store = store
        self.interval = interval
        self._stop_event = threading.Event()

    def run(self) -> None:
        while not self._stop_event.wait(self.interval):
            try:
                self.store.sweep()
            except Exception:
                logger.exception("Staging sweep failed")

    def stop(self) -> None:
        self._stop_event.set()
