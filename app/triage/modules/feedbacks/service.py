from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import delete, select, update

from app.triage.constants import CATEGORIES, STATUS_RECEIVED, STATUSES

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.triage.modules.feedbacks.models import Feedback


class InvalidStatusError(ValueError):
    def __init__(self, status: str) -> None:
        super().__init__(f"Invalid status: {status!r}. Must be one of: {', '.join(STATUSES)}")
        self.status = status


def validate_feedback_payload(payload: dict) -> list[str]:
    """Validate a public form submission. Returns list of errors."""
    errors = []
    fields = ("title", "description", "category")
    if any(payload.get(k) is not None and not isinstance(payload.get(k), str) for k in fields):
        return ["Title, description and category must be text."]
    title = (payload.get("title") or "").strip()
    description = (payload.get("description") or "").strip()
    category = (payload.get("category") or "").strip()
    if not title or not description or not category:
        errors.append("Title, description and category are required.")
    elif category not in CATEGORIES:
        errors.append(f"Invalid category. Must be one of: {', '.join(CATEGORIES)}")
    return errors


def create_feedback(s: "Session", title: str, description: str, category: str) -> "Feedback":
    """Insert a new feedback item with status 'received'."""
    from app.triage.modules.feedbacks.models import Feedback

    fb = Feedback(
        title=title.strip(),
        description=description.strip(),
        category=category.strip(),
        status=STATUS_RECEIVED,
        created_at=datetime.utcnow(),
    )
    s.add(fb)
    s.flush()
    return fb


def find_feedback(s: "Session", feedback_id: int) -> "Feedback | None":
    from app.triage.modules.feedbacks.models import Feedback

    return s.get(Feedback, feedback_id)


def list_feedbacks(s: "Session") -> list["Feedback"]:
    """All feedback, most recent first."""
    from app.triage.modules.feedbacks.models import Feedback

    stmt = select(Feedback).order_by(Feedback.created_at.desc(), Feedback.id.desc())
    return list(s.scalars(stmt))


def update_status(s: "Session", feedback_id: int, status: str) -> int:
    """Set the status of one item. Returns the number of rows changed (0 or 1)."""
    from app.triage.modules.feedbacks.models import Feedback

    if status not in STATUSES:
        raise InvalidStatusError(status)
    result = s.execute(
        update(Feedback).where(Feedback.id == feedback_id).values(status=status).execution_options(synchronize_session="fetch")
    )
    return result.rowcount


def delete_feedback(s: "Session", feedback_id: int) -> int:
    from app.triage.modules.feedbacks.models import Feedback

    result = s.execute(delete(Feedback).where(Feedback.id == feedback_id).execution_options(synchronize_session="fetch"))
    return result.rowcount
