import argparse
import sys
from pathlib import Path
import os

from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import Session, sessionmaker
from contextlib import contextmanager

# Ensure repo root is on sys.path when running as a script (Windows-friendly).
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.triage.models import Base, Feedback
from app.triage.modules.feedbacks.service import create_feedback, update_status

SAMPLE_FEEDBACKS = [
    ("Error saving profile", "Saving my profile makes the system return a 500 error", "bug", "received"),
    ("Report suggestion", "Add a date filter to the sales report", "suggestion", "in-analysis"),
    ("Slow screens", "The app takes a long time to load screens", "complaint", "in-development"),
    ("UI feedback", "Button labels could be larger", "feedback", "received"),
    ("Login bug", "I cannot log in on Firefox", "bug", "completed"),
]


@contextmanager
def _session_scope(database_url: str):
    engine = create_engine(database_url, future=True)
    sm = sessionmaker(bind=engine, class_=Session, autoflush=False, autocommit=False, expire_on_commit=False, future=True)
    s: Session = sm()
    try:
        yield s
        s.commit()
    except Exception:
        s.rollback()
        raise
    finally:
        s.close()


def create_tables(*, database_url: str | None = None) -> None:
    """
    Create tables straight from the models (local development without alembic).
    """
    db_url = (database_url or os.environ.get("DATABASE_URL") or "sqlite:///feedbacks.db").strip()
    engine = create_engine(db_url, future=True)
    Base.metadata.create_all(bind=engine)
    print(f"Created tables on {db_url}")


def seed_only(*, database_url: str | None = None) -> None:
    """
    Seed sample feedback items in an idempotent way.
    Does nothing if the feedbacks table already has rows.
    """
    db_url = (database_url or os.environ.get("DATABASE_URL") or "sqlite:///feedbacks.db").strip()

    with _session_scope(db_url) as s:
        existing = s.scalar(select(func.count()).select_from(Feedback)) or 0
        if existing:
            print(f"Seed skipped: {existing} feedback item(s) already present.")
            return
        for title, description, category, status in SAMPLE_FEEDBACKS:
            fb = create_feedback(s, title, description, category)
            if status != fb.status:
                update_status(s, fb.id, status)
            print(f"Feedback created: id={fb.id} - {title}")

    print(f"Seed complete: {len(SAMPLE_FEEDBACKS)} feedback item(s) inserted.")


def main() -> None:
    parser = argparse.ArgumentParser(description="Create tables and/or seed sample feedback.")
    parser.add_argument("--create-tables", action="store_true", help="Create tables from the models before seeding.")
    parser.add_argument("--no-seed", action="store_true", help="Skip inserting sample feedback.")
    args = parser.parse_args()

    if args.create_tables:
        create_tables(database_url=None)
    if not args.no_seed:
        seed_only(database_url=None)


if __name__ == "__main__":
    main()
