"""
Central constants for the Triage Desk application.
"""
from __future__ import annotations

# Feedback categories accepted by the public form
CATEGORIES = ("bug", "suggestion", "complaint", "feedback")

# Feedback lifecycle, in triage order
STATUS_RECEIVED = "received"
STATUSES = (STATUS_RECEIVED, "in-analysis", "in-development", "completed")

CATEGORY_LABELS = {
    "bug": "Bug",
    "suggestion": "Suggestion",
    "complaint": "Complaint",
    "feedback": "Feedback",
}

STATUS_LABELS = {
    "received": "Received",
    "in-analysis": "In analysis",
    "in-development": "In development",
    "completed": "Completed",
}

# Hidden form field carrying the CSRF token
CSRF_FIELD = "_csrf"

# Cookie carrying the opaque session id
SESSION_COOKIE = "sessionId"

LOGIN_PATH = "/login"

# Token / session lifetimes (seconds)
CSRF_TOKEN_TTL = 15 * 60
CSRF_SWEEP_INTERVAL = 5 * 60
SESSION_TTL = 60 * 60
SESSION_SWEEP_INTERVAL = 10 * 60
