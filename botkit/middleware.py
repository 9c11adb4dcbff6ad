"""Middleware for the update pipeline: logging, recovery, auth, limits and more."""

from __future__ import annotations

import logging
import time
from typing import Any, Callable

from botkit.interfaces import Handler, Message, Middleware
from botkit.security import RateLimiter

MiddlewareHandler = Callable[[Any, Handler], Any]


class FunctionMiddleware(Middleware):
    """Middleware built from a plain ``handler(ctx, next_handler)`` function."""

    def __init__(self, handler: MiddlewareHandler, name: str = "func", priority: int = 50) -> None:
        self.handler = handler
        self.name = name
        self.priority = priority

    def process(self, ctx: Any, next_handler: Handler) -> Any:
        return self.handler(ctx, next_handler)


class LoggingMiddleware(Middleware):
    """Logs every request and how long it took."""

    name = "logging"

    def __init__(self, logger: logging.Logger | None = None, priority: int = 0) -> None:
        self.logger = logger if logger is not None else logging.getLogger(__name__)
        self.priority = priority

    def process(self, ctx: Any, next_handler: Handler) -> Any:
        start = time.monotonic()
        self.logger.info(
            "Request received: user_id=%s chat_id=%s text=%r is_command=%s is_callback=%s",
            ctx.user_id,
            ctx.chat_id,
            ctx.text,
            ctx.is_command,
            ctx.is_callback,
        )
        response = next_handler(ctx)
        duration_ms = int((time.monotonic() - start) * 1000)
        self.logger.info(
            "Request processed: user_id=%s duration_ms=%d response_type=%s",
            ctx.user_id,
            duration_ms,
            type(response).__name__,
        )
        return response


class RecoveryMiddleware(Middleware):
    """Turns an exception raised further down into an error reply."""

    name = "recovery"

    def __init__(self, logger: logging.Logger | None = None, priority: int = 0) -> None:
        self.logger = logger if logger is not None else logging.getLogger(__name__)
        self.priority = priority

    def process(self, ctx: Any, next_handler: Handler) -> Any:
        try:
            return next_handler(ctx)
        except Exception as error:
            self.logger.error(
                "Panic recovered: error=%s user_id=%s text=%r",
                error,
                ctx.user_id,
                ctx.text,
                exc_info=True,
            )
            return Message("❌ Произошла внутренняя ошибка. Попробуйте позже.")


class AuthMiddleware(Middleware):
    """Rejects requests for which ``check_auth(ctx)`` is false."""

    name = "auth"

    def __init__(self, check_auth: Callable[[Any], bool], priority: int = 0) -> None:
        self.check_auth = check_auth
        self.priority = priority

    def process(self, ctx: Any, next_handler: Handler) -> Any:
        if not self.check_auth(ctx):
            return Message("🔒 Доступ запрещен. Требуется аутентификация.")
        return next_handler(ctx)


class RateLimitMiddleware(Middleware):
    """Rejects requests beyond the limiter's allowance."""

    name = "rate_limit"

    def __init__(self, limiter: RateLimiter, priority: int = 0) -> None:
        self.limiter = limiter
        self.priority = priority

    def process(self, ctx: Any, next_handler: Handler) -> Any:
        if not self.limiter.allow(ctx):
            return Message("⏱️ Слишком много запросов. Подождите немного.")
        return next_handler(ctx)


class MetricsMiddleware(Middleware):
    """Counts requests and times them.

    ``metrics`` needs ``counter(name, value, **tags)`` and
    ``timing(name, milliseconds, **tags)``; it may be None.
    """

    name = "metrics"

    def __init__(self, metrics: Any = None, priority: int = 0) -> None:
        self.metrics = metrics
        self.priority = priority

    def process(self, ctx: Any, next_handler: Handler) -> Any:
        start = time.monotonic()
        if self.metrics is not None:
            self.metrics.counter("requests.total", 1, type=request_type(ctx))
        response = next_handler(ctx)
        if self.metrics is not None:
            duration_ms = int((time.monotonic() - start) * 1000)
            self.metrics.timing("requests.duration", duration_ms, type=request_type(ctx))
        return response


def request_type(ctx: Any) -> str:
    """Classify an update as ``command``, ``callback`` or ``message``."""
    if ctx.is_command:
        return "command"
    if ctx.is_callback:
        return "callback"
    return "message"


def _is_done(request_context: Any) -> bool:
    for attribute in ("is_set", "done"):
        check = getattr(request_context, attribute, None)
        if callable(check):
            return bool(check())
    return False


class ContextMiddleware(Middleware):
    """Attaches a per-request context object under the ``_context`` parameter.

    The object may be a ``threading.Event`` or anything with ``done()``; when
    it is already set or done the request is answered with a timeout reply.
    """

    name = "context"

    def __init__(self, context_func: Callable[[Any], Any], priority: int = 0) -> None:
        self.context_func = context_func
        self.priority = priority

    def process(self, ctx: Any, next_handler: Handler) -> Any:
        request_context = self.context_func(ctx)
        ctx.set_param("_context", request_context)
        if _is_done(request_context):
            return Message("⏱️ Время обработки запроса истекло.")
        return next_handler(ctx)


class ValidationMiddleware(Middleware):
    """Runs ``validator(ctx)``; an exception it raises becomes an error reply."""

    name = "validation"

    def __init__(self, validator: Callable[[Any], None], priority: int = 0) -> None:
        self.validator = validator
        self.priority = priority

    def process(self, ctx: Any, next_handler: Handler) -> Any:
        try:
            self.validator(ctx)
        except Exception as error:
            return Message(f"❌ Ошибка валидации: {error}")
        return next_handler(ctx)


def chain(*args: Middleware) -> Callable[[Handler], Handler]:
    """Compose middleware so that the first one given runs outermost."""

    def wrap(final: Handler) -> Handler:
        handler = final
        for middleware in reversed(args):
            handler = _bind(middleware, handler)
        return handler

    return wrap


def _bind(middleware: Middleware, next_handler: Handler) -> Handler:
    def handler(ctx: Any) -> Any:
        return middleware.process(ctx, next_handler)

    return handler