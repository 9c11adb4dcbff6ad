"""WSGI middleware: CORS, request ids, gzip compression and security headers."""

from __future__ import annotations

import gzip
import io
import random
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable

WSGIApp = Callable[[dict, Callable[..., Any]], Iterable[bytes]]


def _with_default_headers(start_response: Callable[..., Any], defaults: list[tuple[str, str]]):
    """Wrap ``start_response`` so ``defaults`` are added unless the app set them."""

    def wrapped(status: str, headers: list[tuple[str, str]], exc_info: Any = None):
        present = {name.lower() for name, _ in headers}
        final = list(headers) + [(n, v) for n, v in defaults if n.lower() not in present]
        return start_response(status, final, exc_info)

    return wrapped


@dataclass
class CORSMiddleware:
    """Adds CORS headers and answers preflight requests."""

    allowed_origins: list[str] = field(default_factory=lambda: ["*"])
    allowed_methods: list[str] = field(
        default_factory=lambda: ["GET", "POST", "PUT", "DELETE", "OPTIONS"]
    )
    allowed_headers: list[str] = field(
        default_factory=lambda: ["Content-Type", "Authorization", "X-Request-ID"]
    )
    allow_credentials: bool = True
    max_age: int = 86400

    def is_origin_allowed(self, origin: str) -> bool:
        """Tell whether ``origin`` is allowed, "*" allowing any."""
        return any(allowed in ("*", origin) for allowed in self.allowed_origins)

    def _headers(self, origin: str) -> list[tuple[str, str]]:
        headers = []
        if self.is_origin_allowed(origin):
            headers.append(("Access-Control-Allow-Origin", origin))
        headers.append(("Access-Control-Allow-Methods", ", ".join(self.allowed_methods)))
        headers.append(("Access-Control-Allow-Headers", ", ".join(self.allowed_headers)))
        if self.allow_credentials:
            headers.append(("Access-Control-Allow-Credentials", "true"))
        if self.max_age > 0:
            headers.append(("Access-Control-Max-Age", str(self.max_age)))
        return headers

    def wrap(self, app: WSGIApp) -> WSGIApp:
        def wrapped(environ: dict, start_response: Callable[..., Any]) -> Iterable[bytes]:
            headers = self._headers(environ.get("HTTP_ORIGIN", ""))
            if environ.get("REQUEST_METHOD") == "OPTIONS":
                start_response("204 No Content", headers)
                return []
            return app(environ, _with_default_headers(start_response, headers))

        return wrapped


def generate_request_id() -> str:
    """Return an id made of the current time in nanoseconds and a random number."""
    return f"{time.time_ns()}-{random.getrandbits(63)}"


def _environ_key(header_name: str) -> str:
    return "HTTP_" + header_name.upper().replace("-", "_")


@dataclass
class RequestIDMiddleware:
    """Ensures every request carries an id and echoes it in the response."""

    header_name: str = "X-Request-ID"
    generator: Callable[[], str] = generate_request_id

    def wrap(self, app: WSGIApp) -> WSGIApp:
        def wrapped(environ: dict, start_response: Callable[..., Any]) -> Iterable[bytes]:
            key = _environ_key(self.header_name)
            request_id = environ.get(key, "")
            if not request_id:
                request_id = self.generator()
                environ[key] = request_id
            return app(
                environ,
                _with_default_headers(start_response, [(self.header_name, request_id)]),
            )

        return wrapped


@dataclass
class CompressionMiddleware:
    """Gzips the response body for clients that accept it."""

    level: int = 5

    def wrap(self, app: WSGIApp) -> WSGIApp:
        def wrapped(environ: dict, start_response: Callable[..., Any]) -> Iterable[bytes]:
            if "gzip" not in environ.get("HTTP_ACCEPT_ENCODING", ""):
                return app(environ, start_response)

            buffer = io.BytesIO()

            def compressing_start(status: str, headers: list[tuple[str, str]], exc_info: Any = None):
                kept = [
                    (name, value)
                    for name, value in headers
                    if name.lower() not in ("content-length", "content-encoding")
                ]
                kept.append(("Content-Encoding", "gzip"))
                start_response(status, kept, exc_info)
                return buffer.write

            result = app(environ, compressing_start)
            try:
                for chunk in result:
                    buffer.write(chunk)
            finally:
                close = getattr(result, "close", None)
                if callable(close):
                    close()
            return [gzip.compress(buffer.getvalue(), compresslevel=self.level)]

        return wrapped


@dataclass
class SecurityHeadersMiddleware:
    """Adds common security headers to every response."""

    frame_options: str = "DENY"
    content_type_options: str = "nosniff"
    xss_protection: str = "1; mode=block"
    referrer_policy: str = "strict-origin-when-cross-origin"

    def wrap(self, app: WSGIApp) -> WSGIApp:
        headers = [
            ("X-Frame-Options", self.frame_options),
            ("X-Content-Type-Options", self.content_type_options),
            ("X-XSS-Protection", self.xss_protection),
            ("Referrer-Policy", self.referrer_policy),
        ]

        def wrapped(environ: dict, start_response: Callable[..., Any]) -> Iterable[bytes]:
            return app(environ, _with_default_headers(start_response, headers))

        return wrapped


def chain_wsgi(*args: Callable[[WSGIApp], WSGIApp]) -> Callable[[WSGIApp], WSGIApp]:
    """Compose WSGI wrappers so that the first one given is outermost."""

    def wrap(app: WSGIApp) -> WSGIApp:
        for middleware in reversed(args):
            app = middleware(app)
        return app

    return wrap