from __future__ import annotations

import logging

from flask import render_template
from sqlalchemy.exc import SQLAlchemyError

from app.triage.audit import record_event
from app.triage.constants import CATEGORIES, CATEGORY_LABELS, CSRF_FIELD
from app.triage.db import db_session
from app.triage.modules.feedbacks.service import create_feedback, validate_feedback_payload
from app.triage.router import ResponseSink, RoutedRequest

logger = logging.getLogger(__name__)


# ---------- Form ----------
def feedback_form(request: RoutedRequest, response: ResponseSink) -> None:
    html = render_template(
        "public/form.html",
        csrf_token=request.csrf_token,
        csrf_field=CSRF_FIELD,
        categories=CATEGORIES,
        category_labels=CATEGORY_LABELS,
        failed=request.query.get("error") == "1",
    )
    response.send(html)


# ---------- Submit ----------
def feedback_submit(request: RoutedRequest, response: ResponseSink) -> None:
    payload = {
        "title": request.form.get("title"),
        "description": request.form.get("description"),
        "category": request.form.get("category"),
    }
    errors = validate_feedback_payload(payload)
    if errors:
        response.error(400, " ".join(errors))
        return

    s = db_session()
    try:
        fb = create_feedback(s, payload["title"], payload["description"], payload["category"])
        record_event(
            s,
            actor=None,
            action="feedback.create",
            entity_type="Feedback",
            entity_id=str(fb.id),
            metadata={"title": fb.title, "category": fb.category},
            request_id=request.request_id,
            client_ip=request.remote_addr,
        )
        s.commit()
    except SQLAlchemyError:
        s.rollback()
        logger.exception("Feedback insert failed (request_id=%s)", request.request_id)
        response.redirect("/?error=1")
        return

    logger.info("Feedback %s received (category=%s)", fb.id, fb.category)
    response.send(render_template("public/thanks.html", feedback=fb))
