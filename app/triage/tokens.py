"""
In-memory token and session stores.

Each store maps an opaque identifier to a record with a ``created_at``
timestamp and expires it after a fixed TTL. Stores are built once by the app
factory and injected into the guards; nothing here is module-global.

All read-check-then-write sequences must run under ``store.lock`` so that the
request path and the background sweep never interleave on the same record.
The lock is re-entrant, so helpers that take it can be called by code that
already holds it.
"""
from __future__ import annotations

import logging
import secrets
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Generic, Protocol, TypeVar

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


class _Record(Protocol):
    created_at: float


R = TypeVar("R", bound=_Record)


@dataclass
class CsrfTokenRecord:
    token: str
    created_at: float
    used: bool = False


@dataclass
class SessionRecord:
    session_id: str
    principal: str
    created_at: float
    authenticated: bool = True


def new_identifier() -> str:
    return secrets.token_urlsafe(32)


class TokenStore(Generic[R]):
    def __init__(self, *, name: str, ttl_seconds: float, clock: Clock = time.time) -> None:
        self.name = name
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self.lock = threading.RLock()
        self._records: dict[str, R] = {}

    def now(self) -> float:
        return self.clock()

    def is_expired(self, record: R, now: float | None = None) -> bool:
        if now is None:
            now = self.now()
        return now - record.created_at > self.ttl_seconds

    def allocate(self, factory: Callable[[str, float], R]) -> R:
        """Create and store a record under a fresh identifier.

        ``factory`` receives ``(identifier, created_at)``. An identifier that
        is already present is never handed out again.
        """
        with self.lock:
            ident = new_identifier()
            while ident in self._records:
                ident = new_identifier()
            record = factory(ident, self.now())
            self._records[ident] = record
            return record

    def get(self, ident: str) -> R | None:
        with self.lock:
            return self._records.get(ident)

    def pop(self, ident: str) -> R | None:
        with self.lock:
            return self._records.pop(ident, None)

    def values(self) -> list[R]:
        with self.lock:
            return list(self._records.values())

    def sweep(self) -> int:
        """Remove every expired record. Returns how many were removed."""
        with self.lock:
            now = self.now()
            expired = [ident for ident, rec in self._records.items() if self.is_expired(rec, now)]
            for ident in expired:
                del self._records[ident]
            remaining = len(self._records)
        if expired:
            logger.info("%s sweep: removed %d expired record(s), %d remaining", self.name, len(expired), remaining)
        return len(expired)

    def __contains__(self, ident: object) -> bool:
        with self.lock:
            return ident in self._records

    def __len__(self) -> int:
        with self.lock:
            return len(self._records)
