from __future__ import annotations

from app.triage import auth as auth_views
from app.triage.auth import AuthGuard
from app.triage.modules.feedbacks import admin as feedback_admin
from app.triage.modules.feedbacks import public as feedback_public
from app.triage.router import ResponseSink, RoutedRequest, Router
from app.triage.security import CsrfGuard


def health(request: RoutedRequest, response: ResponseSink) -> None:
    """Health check endpoint. Returns JSON."""
    response.json({"ok": True})


def healthz(request: RoutedRequest, response: ResponseSink) -> None:
    """
    Fast health check for container probes. No DB access, minimal overhead.
    """
    response.send("ok", content_type="text/plain; charset=utf-8")


def register_routes(router: Router, *, csrf: CsrfGuard, auth: AuthGuard) -> Router:
    # Public
    router.register("GET", "/", feedback_public.feedback_form, [csrf.issue_token])
    router.register("GET", "/login", auth_views.login_get, [auth.public_route])
    router.register("POST", "/login", auth_views.login_post, [auth.public_route])

    # Public, single-use CSRF token required
    router.register("POST", "/feedback/submit", feedback_public.feedback_submit, [csrf.require_token])

    # Admin (login session required)
    router.register("POST", "/logout", auth_views.logout, [auth.require_auth])
    router.register("GET", "/feedbacks", feedback_admin.feedbacks_list, [auth.require_auth])
    router.register("GET", "/feedbacks/:id", feedback_admin.feedback_detail, [auth.require_auth])
    router.register("PUT", "/feedback/status", feedback_admin.feedback_update_status, [auth.require_auth])

    # Probes
    router.register("GET", "/health", health)
    router.register("GET", "/healthz", healthz)
    return router
