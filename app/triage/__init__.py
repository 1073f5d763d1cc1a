import logging
import uuid

from flask import Flask, g, render_template, request
from dotenv import load_dotenv

from app.triage.auth import AuthGuard
from app.triage.config import is_production, load_config
from app.triage.db import init_db, teardown_db_session
from app.triage.router import RoutedRequest, Router
from app.triage.routes import register_routes
from app.triage.security import CsrfGuard
from app.triage.sweeper import Sweeper
from app.triage.tokens import Clock, CsrfTokenRecord, SessionRecord, TokenStore

# Methods handed to the router; OPTIONS/HEAD stay with Flask.
ROUTER_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE"]

_ERROR_TITLES = {
    400: "Bad request",
    401: "Unauthorized",
    403: "Forbidden",
    404: "Page not found",
    413: "Request too large",
    500: "Internal server error",
}


def create_app(*, clock: Clock | None = None) -> Flask:
    load_dotenv()
    app = Flask(__name__, template_folder="templates", static_folder="static")
    app.config.from_mapping(load_config())
    app.logger.setLevel(app.config["LOG_LEVEL"])
    logging.getLogger("app.triage").setLevel(app.config["LOG_LEVEL"])

    # Production guardrails (fail fast with clear logs)
    if is_production(app.config.get("ENV")):
        if not app.config.get("ADMIN_PASSWORD_HASH"):
            raise RuntimeError("ADMIN_PASSWORD or ADMIN_PASSWORD_HASH must be set in production.")
        if str(app.config["DATABASE_URL"]).startswith("sqlite"):
            app.logger.warning("DATABASE_URL points at SQLite in production; prefer Postgres.")

    init_db(app)

    # Token and session stores live for the lifetime of the process.
    store_kwargs = {"clock": clock} if clock is not None else {}
    csrf_store = TokenStore[CsrfTokenRecord](name="csrf", ttl_seconds=app.config["CSRF_TOKEN_TTL"], **store_kwargs)
    session_store = TokenStore[SessionRecord](name="sessions", ttl_seconds=app.config["SESSION_TTL"], **store_kwargs)
    csrf = CsrfGuard(csrf_store)
    auth = AuthGuard(session_store, secure_cookie=app.config["AUTH_COOKIE_SECURE"])
    app.extensions["triage_csrf"] = csrf
    app.extensions["triage_auth"] = auth

    def _error_page(status: int, message: str | None) -> str:
        return render_template(
            [f"errors/{status}.html", "errors/error.html"],
            status=status,
            title=_ERROR_TITLES.get(status, "Error"),
            message=message,
        )

    router = Router(logger=app.logger, error_page=_error_page)
    register_routes(router, csrf=csrf, auth=auth)
    app.extensions["triage_router"] = router

    def _dispatch(path: str):
        routed = RoutedRequest.from_flask(request, request_id=getattr(g, "request_id", None))
        return router.dispatch(routed)

    app.add_url_rule("/", "dispatch", _dispatch, methods=ROUTER_METHODS, defaults={"path": ""})
    app.add_url_rule("/<path:path>", "dispatch", _dispatch, methods=ROUTER_METHODS)

    sweeper = Sweeper()
    sweeper.add("csrf", app.config["CSRF_SWEEP_INTERVAL"], csrf.sweep, stats=csrf.stats)
    sweeper.add("sessions", app.config["SESSION_SWEEP_INTERVAL"], auth.sweep, stats=auth.stats)
    app.extensions["triage_sweeper"] = sweeper
    if app.config["SWEEPER_ENABLED"]:
        sweeper.start()

    @app.template_filter("dateformat")
    def _dateformat_filter(value, format: str = "%Y-%m-%d %H:%M") -> str:
        if value is None:
            return "—"
        if hasattr(value, "strftime"):
            return value.strftime(format)
        return str(value)

    @app.before_request
    def _assign_request_id():
        if not getattr(g, "request_id", None):
            g.request_id = uuid.uuid4().hex

    app.teardown_appcontext(teardown_db_session)

    # Faults outside the router (body parsing, static files) land here.
    @app.errorhandler(500)
    def _err_500(e):  # type: ignore[no-redef]
        app.logger.exception("Unhandled 500 (request_id=%s)", getattr(g, "request_id", None))
        return _error_page(500, None), 500

    @app.errorhandler(404)
    def _err_404(e):  # type: ignore[no-redef]
        return _error_page(404, None), 404

    @app.errorhandler(413)
    def _err_413(e):  # type: ignore[no-redef]
        return _error_page(413, "The submitted form is too large."), 413

    logging.getLogger(__name__).info("create_app() complete; app ready to serve")

    return app
