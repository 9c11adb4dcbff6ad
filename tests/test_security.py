from dataclasses import dataclass, field

import pytest

from botkit.interfaces import Message
from botkit.security import (
    InsufficientPermissionError,
    InsufficientRoleError,
    NotAuthenticatedError,
    ProfileRequiredError,
    RateLimitConfig,
    RateLimiter,
    RateLimitExceededError,
    SecurityMiddleware,
    SecurityRule,
    SourceNotAllowedError,
    default_failure_response,
)


@dataclass
class FakeContext:
    user_id: int = 1
    chat_id: int = 1
    is_authenticated: bool = True
    profile: object = None
    roles: list = field(default_factory=list)
    permissions: set = field(default_factory=set)
    source: str = "telegram"

    def has_permission(self, name):
        return name in self.permissions


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


def test_empty_rule_passes():
    SecurityRule().check(FakeContext(is_authenticated=False))
    assert SecurityRule().handle_failure(FakeContext(), NotAuthenticatedError()).text


def test_require_auth():
    with pytest.raises(NotAuthenticatedError):
        SecurityRule(require_auth=True).check(FakeContext(is_authenticated=False))


def test_require_profile():
    rule = SecurityRule(require_profile=True)
    with pytest.raises(ProfileRequiredError):
        rule.check(FakeContext())
    rule.check(FakeContext(profile={"name": "x"}))
    assert rule.require_profile


def test_roles_any_match():
    rule = SecurityRule(require_roles=["admin", "mod"])
    rule.check(FakeContext(roles=["user", "mod"]))
    with pytest.raises(InsufficientRoleError):
        rule.check(FakeContext(roles=["user"]))


def test_permission_error_names_permission():
    rule = SecurityRule(require_permissions=["read", "write"])
    with pytest.raises(InsufficientPermissionError) as info:
        rule.check(FakeContext(permissions={"read"}))
    assert info.value.detail == "write"
    assert "write" in str(info.value)


def test_source_not_allowed():
    rule = SecurityRule(allowed_sources=["api"])
    with pytest.raises(SourceNotAllowedError) as info:
        rule.check(FakeContext(source="websocket"))
    assert info.value.detail == "websocket"


def test_validator_error_propagates():
    def validator(ctx):
        raise ValueError("bad")

    with pytest.raises(ValueError, match="bad"):
        SecurityRule(validator=validator).check(FakeContext())


def test_default_failure_messages():
    ctx = FakeContext()
    assert default_failure_response(ctx, NotAuthenticatedError()) == Message("❌ Требуется авторизация")
    assert default_failure_response(ctx, RateLimitExceededError()) == Message(
        "⏱ Слишком много запросов. Попробуйте позже"
    )
    assert default_failure_response(ctx, ValueError("boom")).text == "❌ Ошибка безопасности: boom"


def test_custom_failure_handler():
    rule = SecurityRule(on_failure=lambda ctx, err: ("custom", type(err)))
    assert rule.handle_failure(FakeContext(), InsufficientRoleError()) == ("custom", InsufficientRoleError)


def test_rate_limiter_default_strategy():
    limiter = RateLimiter(RateLimitConfig(requests=2, window=60))
    assert limiter.config.strategy == "sliding_window"


def test_rate_limiter_blocks_after_limit_and_recovers():
    clock = FakeClock()
    limiter = RateLimiter(RateLimitConfig(requests=2, window=60), clock=clock)
    ctx = FakeContext()
    assert [limiter.allow(ctx) for _ in range(3)] == [True, True, False]
    clock.now += 60
    assert limiter.allow(ctx) is False
    clock.now += 1
    assert limiter.allow(ctx) is True


def test_rate_limiter_keys_by_user_and_chat():
    limiter = RateLimiter(RateLimitConfig(requests=1, window=60), clock=FakeClock())
    assert limiter.allow(FakeContext(chat_id=1))
    assert not limiter.allow(FakeContext(chat_id=1))
    assert limiter.allow(FakeContext(chat_id=2))
    assert limiter.allow(FakeContext(user_id=2, chat_id=1))


def test_get_limit_for_unknown_user():
    limiter = RateLimiter(RateLimitConfig(requests=5, window=60))
    limiter.reset(42)
    assert limiter.get_limit(42) == (0, 5, 0)


def test_security_middleware_passes_through():
    mw = SecurityMiddleware(SecurityRule(require_auth=True))
    assert mw.process(FakeContext(), lambda ctx: "ok") == "ok"
    assert (mw.name, mw.priority) == ("security", 100)


def test_security_middleware_reports_check_failure():
    mw = SecurityMiddleware(SecurityRule(require_auth=True))
    reply = mw.process(FakeContext(is_authenticated=False), lambda ctx: "ok")
    assert reply == Message("❌ Требуется авторизация")


def test_security_middleware_rate_limit():
    mw = SecurityMiddleware(SecurityRule(rate_limit=RateLimitConfig(requests=1, window=60)))
    ctx = FakeContext()
    assert mw.process(ctx, lambda c: "ok") == "ok"
    assert mw.process(ctx, lambda c: "ok") == Message("⏱ Слишком много запросов. Попробуйте позже")