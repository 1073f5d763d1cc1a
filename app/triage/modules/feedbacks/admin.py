from __future__ import annotations

from flask import render_template

from app.triage.audit import record_event
from app.triage.constants import CATEGORY_LABELS, STATUS_LABELS, STATUSES
from app.triage.db import db_session
from app.triage.modules.feedbacks.service import (
    InvalidStatusError,
    find_feedback,
    list_feedbacks,
    update_status,
)
from app.triage.router import ResponseSink, RoutedRequest


MAX_ID = 2**63 - 1


def _parse_id(raw: object) -> int | None:
    """ASCII digits only, within the signed 64-bit INTEGER range."""
    s = str(raw if raw is not None else "").strip()
    if not (s.isascii() and s.isdigit()):
        return None
    value = int(s)
    if value > MAX_ID:
        return None
    return value


def _render(template: str, request: RoutedRequest, **context) -> str:
    return render_template(
        template,
        current_user=request.user,
        category_labels=CATEGORY_LABELS,
        status_labels=STATUS_LABELS,
        statuses=STATUSES,
        **context,
    )


# ---------- List ----------
def feedbacks_list(request: RoutedRequest, response: ResponseSink) -> None:
    s = db_session()
    feedbacks = list_feedbacks(s)
    response.send(_render("feedbacks/list.html", request, feedbacks=feedbacks))


# ---------- Detail ----------
def feedback_detail(request: RoutedRequest, response: ResponseSink) -> None:
    feedback_id = _parse_id(request.params.get("id"))
    if feedback_id is None:
        response.error(400, "Invalid feedback id.")
        return

    s = db_session()
    fb = find_feedback(s, feedback_id)
    if fb is None:
        response.error(404, "Feedback not found.")
        return
    response.send(_render("feedbacks/show.html", request, feedback=fb))


# ---------- Status update ----------
def feedback_update_status(request: RoutedRequest, response: ResponseSink) -> None:
    raw_id = request.form.get("id")
    raw_status = request.form.get("status")
    if raw_status is not None and not isinstance(raw_status, str):
        response.json({"error": "status must be a string."}, 400)
        return
    status = (raw_status or "").strip()
    if raw_id in (None, "") or not status:
        response.json({"error": "id and status are required."}, 400)
        return
    feedback_id = _parse_id(raw_id)
    if feedback_id is None:
        response.json({"error": "Invalid feedback id."}, 400)
        return

    s = db_session()
    before = find_feedback(s, feedback_id)
    old_status = before.status if before else None
    try:
        changed = update_status(s, feedback_id, status)
    except InvalidStatusError as e:
        s.rollback()
        response.json({"error": str(e)}, 400)
        return

    if changed == 0:
        s.rollback()
        response.json({"error": "Feedback not found."}, 404)
        return

    record_event(
        s,
        actor=request.user,
        action="feedback.status_change",
        entity_type="Feedback",
        entity_id=str(feedback_id),
        metadata={"changes": {"status": {"old": old_status, "new": status}}},
        request_id=request.request_id,
        client_ip=request.remote_addr,
    )
    s.commit()
    response.json({"id": feedback_id, "status": status})
