from __future__ import annotations

import logging

from app.triage.constants import CSRF_FIELD
from app.triage.router import ResponseSink, RoutedRequest
from app.triage.tokens import CsrfTokenRecord, TokenStore

logger = logging.getLogger(__name__)


class CsrfGuard:
    """Single-use CSRF tokens bound to renders of the public form."""

    def __init__(self, store: TokenStore[CsrfTokenRecord], *, field_name: str = CSRF_FIELD) -> None:
        self.store = store
        self.field_name = field_name

    def issue(self) -> str:
        """Create a fresh token; every form render gets its own."""
        record = self.store.allocate(lambda token, now: CsrfTokenRecord(token=token, created_at=now))
        return record.token

    def validate(self, token: str | None) -> bool:
        """True if the token is known, inside its window and unused. Never mutates the store."""
        if not token or not isinstance(token, str):
            return False
        with self.store.lock:
            record = self.store.get(token)
            if record is None:
                return False
            if self.store.is_expired(record):
                return False
            return not record.used

    def consume(self, token: str | None) -> bool:
        """Validate and burn the token in one locked step.

        The token is marked used and removed before the caller is told it is
        valid, so it stays burned even if the protected handler fails later.
        """
        with self.store.lock:
            if not self.validate(token):
                return False
            record = self.store.get(token)  # type: ignore[arg-type]
            record.used = True  # type: ignore[union-attr]
            self.store.pop(token)  # type: ignore[arg-type]
            return True

    def sweep(self) -> int:
        return self.store.sweep()

    def stats(self) -> dict[str, int]:
        records = self.store.values()
        used = sum(1 for r in records if r.used)
        return {"total": len(records), "active": len(records) - used, "used": used}

    # ---------- guards ----------
    def issue_token(self, request: RoutedRequest, response: ResponseSink) -> None:
        request.csrf_token = self.issue()

    def require_token(self, request: RoutedRequest, response: ResponseSink) -> None:
        token = request.form.get(self.field_name)
        if not self.consume(token):
            logger.info(
                "CSRF rejection: %s %s (request_id=%s)", request.method, request.path, request.request_id
            )
            response.error(403, "The security token is invalid or has expired. Reload the form and try again.")
