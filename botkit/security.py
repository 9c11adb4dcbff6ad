"""Security rules, errors and rate limiting for routes."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable

from botkit.interfaces import Handler, Message, Middleware


class SecurityError(Exception):
    """Base class for failed security checks."""

    default_message = "security check failed"

    def __init__(self, detail: str | None = None) -> None:
        message = self.default_message if detail is None else f"{self.default_message}: {detail}"
        super().__init__(message)
        self.detail = detail


class NotAuthenticatedError(SecurityError):
    default_message = "authentication required"


class ProfileRequiredError(SecurityError):
    default_message = "profile required"


class InsufficientRoleError(SecurityError):
    default_message = "insufficient role"


class InsufficientPermissionError(SecurityError):
    default_message = "insufficient permission"


class SourceNotAllowedError(SecurityError):
    default_message = "source not allowed"


class RateLimitExceededError(SecurityError):
    default_message = "rate limit exceeded"


class ValidationFailedError(SecurityError):
    default_message = "validation failed"


@dataclass
class RateLimitConfig:
    """Allow ``requests`` requests per ``window`` seconds."""

    requests: int
    window: int
    burst_size: int = 0
    strategy: str = ""


Validator = Callable[[Any], None]
FailureHandler = Callable[[Any, Exception], Any]


@dataclass
class SecurityRule:
    """Access requirements of a route."""

    require_auth: bool = False
    require_roles: list[str] = field(default_factory=list)
    require_permissions: list[str] = field(default_factory=list)
    require_profile: bool = False
    allowed_sources: list[str] = field(default_factory=list)
    rate_limit: RateLimitConfig | None = None
    validator: Validator | None = None
    on_failure: FailureHandler | None = None

    def check(self, ctx: Any) -> None:
        """Raise a ``SecurityError`` (or the validator's error) if ``ctx`` fails the rule."""
        if self.require_auth and not ctx.is_authenticated:
            raise NotAuthenticatedError()
        if self.require_profile and ctx.profile is None:
            raise ProfileRequiredError()
        if self.require_roles and not set(ctx.roles or ()) & set(self.require_roles):
            raise InsufficientRoleError()
        for permission in self.require_permissions:
            if not ctx.has_permission(permission):
                raise InsufficientPermissionError(permission)
        if self.allowed_sources and ctx.source not in self.allowed_sources:
            raise SourceNotAllowedError(ctx.source)
        if self.validator is not None:
            self.validator(ctx)

    def handle_failure(self, ctx: Any, error: Exception) -> Any:
        """Build the response for a failed check."""
        if self.on_failure is not None:
            return self.on_failure(ctx, error)
        return default_failure_response(ctx, error)


_FAILURE_MESSAGES: tuple[tuple[type[SecurityError], str], ...] = (
    (NotAuthenticatedError, "❌ Требуется авторизация"),
    (ProfileRequiredError, "❌ Требуется регистрация"),
    (InsufficientRoleError, "❌ Недостаточно прав для выполнения действия"),
    (InsufficientPermissionError, "❌ Нет доступа к этой функции"),
    (SourceNotAllowedError, "❌ Действие недоступно из этого источника"),
    (RateLimitExceededError, "⏱ Слишком много запросов. Попробуйте позже"),
)


def default_failure_response(ctx: Any, error: Exception) -> Message:
    """Map a security error to a user-facing message."""
    for error_type, text in _FAILURE_MESSAGES:
        if isinstance(error, error_type):
            return Message(text)
    return Message(f"❌ Ошибка безопасности: {error}")


@dataclass
class _Counter:
    count: int
    reset_at: float
    updated_at: float


class RateLimiter:
    """Fixed-window request counter keyed by user and chat."""

    def __init__(
        self,
        config: RateLimitConfig,
        storage: Any = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if not config.strategy:
            config.strategy = "sliding_window"
        self.config = config
        self.storage = storage
        self._clock = clock
        self._lock = threading.Lock()
        self._counters: dict[str, _Counter] = {}

    @staticmethod
    def _key(ctx: Any) -> str:
        return f"user:{ctx.user_id}:chat:{ctx.chat_id}"

    def allow(self, ctx: Any) -> bool:
        """Count a request and tell whether it is within the limit."""
        key = self._key(ctx)
        with self._lock:
            now = self._clock()
            counter = self._counters.get(key)
            if counter is None or now > counter.reset_at:
                self._counters[key] = _Counter(1, now + self.config.window, now)
                return True
            if counter.count >= self.config.requests:
                return False
            counter.count += 1
            counter.updated_at = now
            return True

    def reset(self, user_id: int) -> None:
        """Drop the counter stored for ``user_id``."""
        with self._lock:
            self._counters.pop(f"user:{user_id}", None)

    def get_limit(self, user_id: int) -> tuple[int, int, int]:
        """Return (current count, maximum, reset time as unix seconds)."""
        with self._lock:
            counter = self._counters.get(f"user:{user_id}")
            if counter is None:
                return 0, self.config.requests, 0
            return counter.count, self.config.requests, int(counter.reset_at)


class SecurityMiddleware(Middleware):
    """Applies a security rule, and its rate limit, before the handler."""

    name = "security"
    priority = 100

    def __init__(self, rule: SecurityRule) -> None:
        self.rule = rule
        self.rate_limiter = RateLimiter(rule.rate_limit) if rule.rate_limit is not None else None

    def process(self, ctx: Any, next_handler: Handler) -> Any:
        if self.rate_limiter is not None and not self.rate_limiter.allow(ctx):
            return self.rule.handle_failure(ctx, RateLimitExceededError())
        try:
            self.rule.check(ctx)
        except Exception as error:
            return self.rule.handle_failure(ctx, error)
        return next_handler(ctx)