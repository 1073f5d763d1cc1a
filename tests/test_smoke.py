import pytest
from sqlalchemy import event

from app.triage import create_app
from app.triage.db import _log_checkout, session_scope
from app.triage.models import AuditEvent, Base


class FakeClock:
    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def app(tmp_path, monkeypatch, clock):
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("ADMIN_USERNAME", "admin")
    monkeypatch.setenv("ADMIN_PASSWORD", "pw")
    monkeypatch.delenv("ADMIN_PASSWORD_HASH", raising=False)

    app = create_app(clock=clock)

    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)
    return app


@pytest.fixture()
def client(app):
    return app.test_client()


def _login(client, password="pw"):
    return client.post("/login", data={"username": "admin", "password": password}, follow_redirects=False)


def test_health_ok(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json["ok"] is True

    r = client.get("/healthz")
    assert r.status_code == 200
    assert r.get_data(as_text=True) == "ok"


def test_unknown_path_renders_not_found(client):
    r = client.get("/does/not/exist")
    assert r.status_code == 404


def test_sweeper_not_started_in_test_env(app):
    sweeper = app.extensions["triage_sweeper"]
    assert [job.name for job in sweeper.jobs] == ["csrf", "sessions"]
    assert not sweeper.running


def test_login_page_renders(client):
    r = client.get("/login")
    assert r.status_code == 200
    assert 'name="username"' in r.get_data(as_text=True)


def test_login_and_admin_access(client):
    # Anonymous is sent to the login page
    r = client.get("/feedbacks")
    assert r.status_code == 302
    assert r.headers["Location"].endswith("/login")

    r = _login(client)
    assert r.status_code == 302
    assert r.headers["Location"].endswith("/feedbacks")
    cookie = r.headers["Set-Cookie"]
    assert cookie.startswith("sessionId=")
    assert "HttpOnly" in cookie
    assert "Path=/" in cookie
    assert "Max-Age=3600" in cookie

    r = client.get("/feedbacks")
    assert r.status_code == 200


def test_login_with_missing_fields_is_bad_request(client, app):
    r = client.post("/login", data={"username": "admin"})
    assert r.status_code == 400
    assert len(app.extensions["triage_auth"].store) == 0


def test_login_with_wrong_password_is_rejected_and_audited(client, app):
    r = _login(client, password="wrong")
    assert r.status_code == 401
    assert "Set-Cookie" not in r.headers
    assert len(app.extensions["triage_auth"].store) == 0

    with session_scope(app) as s:
        actions = [e.action for e in s.query(AuditEvent).all()]
    assert actions == ["auth.login_failed"]


def test_session_expires_after_an_hour(client, app, clock):
    assert _login(client).status_code == 302
    assert client.get("/feedbacks").status_code == 200

    clock.advance(61 * 60)

    r = client.get("/feedbacks")
    assert r.status_code == 302
    assert r.headers["Location"].endswith("/login")
    assert len(app.extensions["triage_auth"].store) == 0


def test_logout_ends_session_and_clears_cookie(client, app):
    _login(client)

    r = client.post("/logout")
    assert r.status_code == 302
    assert r.headers["Location"].endswith("/login")
    assert "Max-Age=0" in r.headers["Set-Cookie"]
    assert len(app.extensions["triage_auth"].store) == 0

    assert client.get("/feedbacks").status_code == 302

    with session_scope(app) as s:
        actions = [e.action for e in s.query(AuditEvent).order_by(AuditEvent.id).all()]
    assert actions == ["auth.login", "auth.logout"]


def test_forged_session_cookie_is_rejected(client):
    client.set_cookie("sessionId", "forged-session-id")
    r = client.get("/feedbacks")
    assert r.status_code == 302


def test_login_with_non_text_fields_is_bad_request(client, app):
    r = client.post("/login", json={"username": 1, "password": ["pw"]})
    assert r.status_code == 400
    assert len(app.extensions["triage_auth"].store) == 0


@pytest.mark.parametrize("env", ["prod", "production", "PROD"])
def test_production_engine_skips_checkout_debug_listener(tmp_path, monkeypatch, env):
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'prod.db'}")
    monkeypatch.setenv("ENV", env)
    monkeypatch.setenv("ADMIN_PASSWORD", "pw")
    monkeypatch.setenv("SWEEPER_ENABLED", "0")

    app = create_app()

    assert app.config["AUTH_COOKIE_SECURE"] is True
    assert not event.contains(app.extensions["sqlalchemy_engine"], "checkout", _log_checkout)


def test_development_engine_logs_checkouts(app):
    assert event.contains(app.extensions["sqlalchemy_engine"], "checkout", _log_checkout)
