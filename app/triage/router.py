"""
Request router with ordered guard chains.

Routes live in a plain list scanned in registration order. ``dispatch``
tries an exact ``(method, path)`` match first, then the first route whose
``/``-separated segments line up with the path (``:name`` segments bind a
parameter). Re-registering an existing ``(method, pattern)`` replaces that
route in place.

Guards and handlers share one signature::

    def guard(request: RoutedRequest, response: ResponseSink) -> None

A guard continues the chain by returning without sending, halts it by sending
a response, and signals a fault by raising. Once a response has been sent it
cannot be written again (``ResponseAlreadySent``).
"""
from __future__ import annotations

import html
import json
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

from flask import Request
from werkzeug.datastructures import Headers
from werkzeug.wrappers import Response

HTML = "text/html; charset=utf-8"

_ERROR_TITLES = {
    400: "Bad request",
    401: "Unauthorized",
    403: "Forbidden",
    404: "Page not found",
    500: "Internal server error",
}


class ResponseAlreadySent(RuntimeError):
    pass


def default_error_page(status: int, message: str | None = None) -> str:
    title = _ERROR_TITLES.get(status, "Error")
    detail = f"<p>{html.escape(message)}</p>" if message else ""
    return (
        "<!DOCTYPE html><html><head><meta charset=\"utf-8\">"
        f"<title>{status} - {title}</title></head><body>"
        f"<h1>{status} - {title}</h1>{detail}<p><a href=\"/\">Back to start</a></p>"
        "</body></html>"
    )


ErrorPage = Callable[[int, "str | None"], str]


@dataclass
class RoutedRequest:
    method: str
    path: str
    params: dict[str, str] = field(default_factory=dict)
    form: dict[str, Any] = field(default_factory=dict)
    query: dict[str, str] = field(default_factory=dict)
    headers: Headers = field(default_factory=Headers)
    remote_addr: str | None = None
    request_id: str | None = None

    # Bound by guards
    csrf_token: str | None = None
    session_id: str | None = None
    user: str | None = None
    auth: Any = None

    @classmethod
    def from_flask(cls, req: Request, *, request_id: str | None = None) -> "RoutedRequest":
        form: dict[str, Any] = req.form.to_dict() if req.form else {}
        if req.is_json:
            data = req.get_json(silent=True)
            if isinstance(data, dict):
                form.update(data)
        return cls(
            method=req.method.upper(),
            path=req.path,
            form=form,
            query=req.args.to_dict(),
            headers=Headers(list(req.headers.items())),
            remote_addr=req.remote_addr,
            request_id=request_id,
        )


class ResponseSink:
    """Collects exactly one terminal response."""

    def __init__(self, error_page: ErrorPage | None = None) -> None:
        self._error_page = error_page or default_error_page
        self._response: Response | None = None
        self._cookies: list[tuple[str, str, dict[str, Any]]] = []

    @property
    def sent(self) -> bool:
        return self._response is not None

    @property
    def response(self) -> Response | None:
        return self._response

    def _ensure_open(self) -> None:
        if self._response is not None:
            raise ResponseAlreadySent(f"response already sent (status={self._response.status_code})")

    def set_cookie(self, key: str, value: str = "", **kwargs: Any) -> None:
        self._ensure_open()
        self._cookies.append((key, value, kwargs))

    def delete_cookie(self, key: str, *, path: str = "/", httponly: bool = True) -> None:
        self.set_cookie(key, "", max_age=0, path=path, httponly=httponly)

    def send(
        self,
        body: str | bytes = "",
        status: int = 200,
        *,
        content_type: str = HTML,
        headers: dict[str, str] | None = None,
    ) -> Response:
        self._ensure_open()
        resp = Response(body, status=status, content_type=content_type, headers=headers)
        for key, value, kwargs in self._cookies:
            resp.set_cookie(key, value, **kwargs)
        self._response = resp
        return resp

    def json(self, payload: Any, status: int = 200) -> Response:
        return self.send(json.dumps(payload), status, content_type="application/json")

    def redirect(self, location: str, status: int = 302) -> Response:
        body = f"<!DOCTYPE html><html><body><p>Redirecting to <a href=\"{html.escape(location)}\">{html.escape(location)}</a>.</p></body></html>"
        return self.send(body, status, headers={"Location": location})

    def error(self, status: int, message: str | None = None) -> Response:
        self._ensure_open()
        return self.send(self._error_page(status, message), status)


Handler = Callable[[RoutedRequest, ResponseSink], None]
Guard = Handler


@dataclass(frozen=True)
class Route:
    method: str
    pattern: str
    handler: Handler
    guards: tuple[Guard, ...] = ()


def match_pattern(pattern: str, path: str) -> dict[str, str] | None:
    """Positional match of ``pattern`` against ``path``; returns bound params or None."""
    pattern_parts = pattern.split("/")
    path_parts = path.split("/")
    if len(pattern_parts) != len(path_parts):
        return None
    params: dict[str, str] = {}
    for pattern_part, path_part in zip(pattern_parts, path_parts):
        if pattern_part.startswith(":"):
            params[pattern_part[1:]] = path_part
            continue
        if pattern_part != path_part:
            return None
    return params


class Router:
    def __init__(self, *, logger: logging.Logger | None = None, error_page: ErrorPage | None = None) -> None:
        self._routes: list[Route] = []
        self.logger = logger or logging.getLogger(__name__)
        self.error_page = error_page or default_error_page

    @property
    def routes(self) -> tuple[Route, ...]:
        return tuple(self._routes)

    def register(self, method: str, pattern: str, handler: Handler, guards: Sequence[Guard] = ()) -> Route:
        route = Route(method=method.upper(), pattern=pattern, handler=handler, guards=tuple(guards))
        for i, existing in enumerate(self._routes):
            if existing.method == route.method and existing.pattern == route.pattern:
                # Last registration wins; keeps the original position.
                self._routes[i] = route
                return route
        self._routes.append(route)
        return route

    def match(self, method: str, path: str) -> tuple[Route, dict[str, str]] | None:
        method = method.upper()
        for route in self._routes:
            if route.method == method and route.pattern == path:
                return route, {}
        for route in self._routes:
            if route.method != method:
                continue
            params = match_pattern(route.pattern, path)
            if params is not None:
                return route, params
        return None

    def dispatch(self, request: RoutedRequest) -> Response:
        response = ResponseSink(self.error_page)
        self.handle(request, response)
        assert response.response is not None
        return response.response

    def handle(self, request: RoutedRequest, response: ResponseSink) -> None:
        request.method = request.method.upper()
        try:
            found = self.match(request.method, request.path)
            if found is None:
                self.logger.debug("No route for %s %s", request.method, request.path)
                response.error(404)
                return

            route, request.params = found
            for guard in route.guards:
                guard(request, response)
                if response.sent:
                    return
            route.handler(request, response)
            if not response.sent:
                raise RuntimeError(f"handler for {route.method} {route.pattern} sent no response")
        except Exception:
            self.logger.exception(
                "Unhandled error in %s %s (request_id=%s)", request.method, request.path, request.request_id
            )
            if not response.sent:
                self._internal_error(response)

    def _internal_error(self, response: ResponseSink) -> None:
        try:
            response.error(500)
        except Exception:
            self.logger.exception("Error page failed to render; sending plain 500")
            response.send(default_error_page(500), 500)
