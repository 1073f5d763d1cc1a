import re

import pytest

from app.triage import create_app
from app.triage.db import session_scope
from app.triage.models import AuditEvent, Base
from app.triage.modules.feedbacks.models import Feedback
from app.triage.modules.feedbacks.service import (
    InvalidStatusError,
    create_feedback,
    delete_feedback,
    find_feedback,
    list_feedbacks,
    update_status,
    validate_feedback_payload,
)

TOKEN_RE = re.compile(r'name="_csrf" value="([^"]+)"')


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


@pytest.fixture()
def admin_client(client):
    r = client.post("/login", data={"username": "admin", "password": "pw"})
    assert r.status_code == 302
    return client


def _form_token(client) -> str:
    r = client.get("/")
    assert r.status_code == 200
    m = TOKEN_RE.search(r.get_data(as_text=True))
    assert m, "form should carry a hidden _csrf field"
    return m.group(1)


def _submission(token, **overrides):
    data = {
        "_csrf": token,
        "title": "Export button does nothing",
        "description": "Clicking export on the report page has no effect.",
        "category": "bug",
    }
    data.update(overrides)
    return data


def _count(app) -> int:
    with session_scope(app) as s:
        return s.query(Feedback).count()


def _seed(app, n=1) -> list[int]:
    ids = []
    with session_scope(app) as s:
        for i in range(n):
            fb = create_feedback(s, f"Item {i}", f"Description {i}", "suggestion")
            ids.append(fb.id)
    return ids


# ---------- service ----------
def test_validate_feedback_payload():
    assert validate_feedback_payload({"title": "t", "description": "d", "category": "bug"}) == []
    assert validate_feedback_payload({"title": "t", "description": "", "category": "bug"})
    assert validate_feedback_payload({"title": " ", "description": "d", "category": "bug"})
    errors = validate_feedback_payload({"title": "t", "description": "d", "category": "rant"})
    assert errors and "Invalid category" in errors[0]
    assert validate_feedback_payload({"title": 1, "description": "d", "category": "bug"})
    assert validate_feedback_payload({"title": "t", "description": None, "category": "bug"})


def test_service_create_list_update_delete(app):
    with session_scope(app) as s:
        first = create_feedback(s, "  First  ", "one", "bug")
        second = create_feedback(s, "Second", "two", "complaint")
        assert first.status == "received"
        assert first.title == "First"

        listed = list_feedbacks(s)
        assert [f.id for f in listed] == [second.id, first.id]

        assert update_status(s, first.id, "in-analysis") == 1
        assert update_status(s, 9999, "completed") == 0
        assert find_feedback(s, first.id).status == "in-analysis"

        assert delete_feedback(s, second.id) == 1
        assert delete_feedback(s, second.id) == 0
        assert [f.id for f in list_feedbacks(s)] == [first.id]


def test_invalid_status_raises_before_any_write(app):
    (fid,) = _seed(app)

    with session_scope(app) as s:
        with pytest.raises(InvalidStatusError) as exc:
            update_status(s, fid, "archived")
        assert exc.value.status == "archived"

    with session_scope(app) as s:
        assert find_feedback(s, fid).status == "received"


# ---------- public form ----------
def test_submit_then_resubmit_same_token(client, app):
    token = _form_token(client)

    r = client.post("/feedback/submit", data=_submission(token))
    assert r.status_code == 200
    assert "Thank you" in r.get_data(as_text=True)

    with session_scope(app) as s:
        items = s.query(Feedback).all()
        assert len(items) == 1
        assert items[0].status == "received"
        assert items[0].category == "bug"
        events = s.query(AuditEvent).filter(AuditEvent.action == "feedback.create").all()
        assert len(events) == 1
        assert events[0].entity_id == str(items[0].id)

    r = client.post("/feedback/submit", data=_submission(token))
    assert r.status_code == 403
    assert _count(app) == 1


def test_each_form_render_issues_a_new_token(client):
    assert _form_token(client) != _form_token(client)


def test_submit_without_token_is_forbidden(client, app):
    data = _submission("")
    del data["_csrf"]
    r = client.post("/feedback/submit", data=data)
    assert r.status_code == 403
    assert _count(app) == 0


def test_submit_with_forged_token_is_forbidden(client, app):
    r = client.post("/feedback/submit", data=_submission("forged"))
    assert r.status_code == 403
    assert _count(app) == 0


def test_submit_with_expired_token_is_forbidden(client, app, clock):
    token = _form_token(client)
    clock.advance(16 * 60)

    r = client.post("/feedback/submit", data=_submission(token))
    assert r.status_code == 403
    assert _count(app) == 0


def test_invalid_submission_still_burns_token(client, app):
    token = _form_token(client)

    r = client.post("/feedback/submit", data=_submission(token, category="rant"))
    assert r.status_code == 400
    assert _count(app) == 0

    r = client.post("/feedback/submit", data=_submission(token))
    assert r.status_code == 403


@pytest.mark.parametrize("field, value", [("title", 1), ("description", ["x"]), ("category", {"c": "bug"})])
def test_json_submit_with_non_text_field_is_bad_request(client, app, field, value):
    token = _form_token(client)
    payload = _submission(token)
    payload[field] = value

    r = client.post("/feedback/submit", json=payload)
    assert r.status_code == 400
    assert _count(app) == 0


def test_json_submit_with_text_fields_is_accepted(client, app):
    token = _form_token(client)

    r = client.post("/feedback/submit", json=_submission(token))
    assert r.status_code == 200
    assert _count(app) == 1


def test_form_shows_failure_notice(client):
    r = client.get("/?error=1")
    assert r.status_code == 200
    assert "could not be saved" in r.get_data(as_text=True)


# ---------- admin ----------
def test_admin_list_is_most_recent_first(admin_client, app):
    ids = _seed(app, 3)

    r = admin_client.get("/feedbacks")
    assert r.status_code == 200
    html = r.get_data(as_text=True)
    positions = [html.index(f"/feedbacks/{i}\"") for i in ids]
    assert positions == sorted(positions, reverse=True)


def test_admin_detail(admin_client, app):
    (fid,) = _seed(app)

    r = admin_client.get(f"/feedbacks/{fid}")
    assert r.status_code == 200
    assert "Item 0" in r.get_data(as_text=True)

    assert admin_client.get("/feedbacks/abc").status_code == 400
    assert admin_client.get("/feedbacks/9999").status_code == 404


def test_admin_pages_require_login(client, app):
    (fid,) = _seed(app)

    for path in ("/feedbacks", f"/feedbacks/{fid}"):
        r = client.get(path)
        assert r.status_code == 302
        assert r.headers["Location"].endswith("/login")

    r = client.put("/feedback/status", json={"id": fid, "status": "completed"})
    assert r.status_code == 302
    with session_scope(app) as s:
        assert find_feedback(s, fid).status == "received"


def test_update_status(admin_client, app):
    (fid,) = _seed(app)

    r = admin_client.put("/feedback/status", json={"id": fid, "status": "in-development"})
    assert r.status_code == 200
    assert r.json == {"id": fid, "status": "in-development"}

    with session_scope(app) as s:
        assert find_feedback(s, fid).status == "in-development"
        event = s.query(AuditEvent).filter(AuditEvent.action == "feedback.status_change").one()
        assert event.actor == "admin"
        assert '"old": "received"' in event.metadata_json


def test_update_status_rejects_unknown_status(admin_client, app):
    (fid,) = _seed(app)

    r = admin_client.put("/feedback/status", json={"id": fid, "status": "archived"})
    assert r.status_code == 400
    assert "Invalid status" in r.json["error"]

    with session_scope(app) as s:
        assert find_feedback(s, fid).status == "received"


def test_update_status_bad_requests(admin_client, app):
    _seed(app)

    r = admin_client.put("/feedback/status", json={"status": "completed"})
    assert r.status_code == 400
    r = admin_client.put("/feedback/status", json={"id": "x1", "status": "completed"})
    assert r.status_code == 400
    r = admin_client.put("/feedback/status", json={"id": 9999, "status": "completed"})
    assert r.status_code == 404


@pytest.mark.parametrize("status", [5, ["completed"], {"s": "completed"}, True])
def test_update_status_rejects_non_text_status(admin_client, app, status):
    (fid,) = _seed(app)

    r = admin_client.put("/feedback/status", json={"id": fid, "status": status})
    assert r.status_code == 400
    assert "error" in r.json

    with session_scope(app) as s:
        assert find_feedback(s, fid).status == "received"


@pytest.mark.parametrize("raw_id", ["²", "١٢", "9" * 30, str(2**63)])
def test_update_status_rejects_out_of_range_ids(admin_client, app, raw_id):
    _seed(app)

    r = admin_client.put("/feedback/status", json={"id": raw_id, "status": "completed"})
    assert r.status_code == 400


@pytest.mark.parametrize("raw_id", ["²", "١٢", "9" * 30, str(2**63)])
def test_admin_detail_rejects_non_ascii_and_huge_ids(admin_client, raw_id):
    r = admin_client.get(f"/feedbacks/{raw_id}")
    assert r.status_code == 400


def test_admin_detail_largest_id_is_not_found(admin_client):
    r = admin_client.get(f"/feedbacks/{2**63 - 1}")
    assert r.status_code == 404


def test_update_status_accepts_form_encoding(admin_client, app):
    (fid,) = _seed(app)

    r = admin_client.put("/feedback/status", data={"id": str(fid), "status": "completed"})
    assert r.status_code == 200
    assert r.json["status"] == "completed"
