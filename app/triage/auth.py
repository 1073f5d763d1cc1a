from __future__ import annotations

import logging
import secrets
from collections.abc import Callable

from flask import current_app, render_template
from werkzeug.security import check_password_hash

from app.triage.audit import record_event
from app.triage.constants import LOGIN_PATH, SESSION_COOKIE
from app.triage.db import db_session
from app.triage.router import ResponseSink, RoutedRequest
from app.triage.tokens import SessionRecord, TokenStore

logger = logging.getLogger(__name__)


def parse_cookie_header(header: str | None) -> dict[str, str]:
    """Parse a ``Cookie`` header into a dict.

    Pairs are split on ``;`` and trimmed; anything that is not exactly one
    ``key=value`` pair is ignored.
    """
    cookies: dict[str, str] = {}
    for chunk in (header or "").split(";"):
        parts = chunk.strip().split("=")
        if len(parts) != 2:
            continue
        key, value = parts[0].strip(), parts[1].strip()
        if key:
            cookies[key] = value
    return cookies


class AuthGuard:
    """Server-side login sessions referenced by an opaque cookie."""

    def __init__(
        self,
        store: TokenStore[SessionRecord],
        *,
        cookie_name: str = SESSION_COOKIE,
        login_path: str = LOGIN_PATH,
        secure_cookie: bool = False,
    ) -> None:
        self.store = store
        self.cookie_name = cookie_name
        self.login_path = login_path
        self.secure_cookie = secure_cookie

    @property
    def max_age(self) -> int:
        return int(self.store.ttl_seconds)

    def login(self, principal: str, credential_check: Callable[[], bool]) -> str | None:
        """Run the credential check; on success open a session and return its id."""
        if not credential_check():
            return None
        record = self.store.allocate(
            lambda sid, now: SessionRecord(session_id=sid, principal=principal, created_at=now)
        )
        logger.info("Session opened for %s (%s...)", principal, record.session_id[:8])
        return record.session_id

    def lookup(self, session_id: str | None) -> SessionRecord | None:
        """Return the live, authenticated session or None. Expired sessions are evicted here."""
        if not session_id:
            return None
        with self.store.lock:
            record = self.store.get(session_id)
            if record is None or not record.authenticated:
                return None
            if self.store.is_expired(record):
                self.store.pop(session_id)
                logger.info("Session %s... expired; evicted on lookup", session_id[:8])
                return None
            return record

    def logout(self, session_id: str | None) -> None:
        if session_id:
            self.store.pop(session_id)

    def sweep(self) -> int:
        return self.store.sweep()

    def stats(self) -> dict[str, int]:
        records = self.store.values()
        return {"total": len(records), "active": sum(1 for r in records if r.authenticated)}

    def session_id_from(self, request: RoutedRequest) -> str | None:
        return parse_cookie_header(request.headers.get("Cookie")).get(self.cookie_name)

    def set_session_cookie(self, response: ResponseSink, session_id: str) -> None:
        response.set_cookie(
            self.cookie_name,
            session_id,
            max_age=self.max_age,
            httponly=True,
            path="/",
            samesite="Lax",
            secure=self.secure_cookie,
        )

    def clear_session_cookie(self, response: ResponseSink) -> None:
        response.delete_cookie(self.cookie_name, path="/")

    # ---------- guards ----------
    def require_auth(self, request: RoutedRequest, response: ResponseSink) -> None:
        request.auth = self
        session_id = self.session_id_from(request)
        record = self.lookup(session_id)
        if record is None:
            response.redirect(self.login_path)
            return
        request.session_id = session_id
        request.user = record.principal

    def public_route(self, request: RoutedRequest, response: ResponseSink) -> None:
        request.auth = self


def check_admin_credentials(username: str, password: str) -> bool:
    cfg = current_app.config
    expected_hash = cfg.get("ADMIN_PASSWORD_HASH") or ""
    if not expected_hash:
        return False
    username_ok = secrets.compare_digest(username.encode(), str(cfg.get("ADMIN_USERNAME") or "").encode())
    # Hash check runs even when the username is wrong.
    password_ok = check_password_hash(expected_hash, password)
    return username_ok and password_ok


# ---------- handlers ----------
def login_get(request: RoutedRequest, response: ResponseSink) -> None:
    response.send(render_template("auth/login.html"))


def login_post(request: RoutedRequest, response: ResponseSink) -> None:
    raw_username = request.form.get("username")
    raw_password = request.form.get("password")
    username = raw_username.strip() if isinstance(raw_username, str) else ""
    password = raw_password if isinstance(raw_password, str) else ""
    if not username or not password:
        html = render_template("auth/login.html", username=username, error="Username and password are required.")
        response.send(html, 400)
        return

    auth: AuthGuard = request.auth
    s = db_session()
    session_id = auth.login(username, lambda: check_admin_credentials(username, password))
    if session_id is None:
        logger.warning("Login failed for %s (request_id=%s)", username, request.request_id)
        record_event(
            s,
            actor=None,
            action="auth.login_failed",
            entity_type="User",
            entity_id=username,
            reason="Invalid credentials",
            request_id=request.request_id,
            client_ip=request.remote_addr,
        )
        s.commit()
        html = render_template("auth/login.html", username=username, error="Invalid username or password.")
        response.send(html, 401)
        return

    record_event(
        s,
        actor=username,
        action="auth.login",
        entity_type="User",
        entity_id=username,
        request_id=request.request_id,
        client_ip=request.remote_addr,
    )
    s.commit()
    auth.set_session_cookie(response, session_id)
    response.redirect("/feedbacks")


def logout(request: RoutedRequest, response: ResponseSink) -> None:
    auth: AuthGuard = request.auth
    auth.logout(request.session_id)

    s = db_session()
    record_event(
        s,
        actor=request.user,
        action="auth.logout",
        entity_type="User",
        entity_id=request.user,
        request_id=request.request_id,
        client_ip=request.remote_addr,
    )
    s.commit()
    auth.clear_session_cookie(response)
    response.redirect(auth.login_path)
