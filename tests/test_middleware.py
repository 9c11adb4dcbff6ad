import logging
import threading
from dataclasses import dataclass, field

from botkit.interfaces import Message
from botkit.middleware import (
    AuthMiddleware,
    ContextMiddleware,
    FunctionMiddleware,
    LoggingMiddleware,
    MetricsMiddleware,
    RateLimitMiddleware,
    RecoveryMiddleware,
    ValidationMiddleware,
    chain,
    request_type,
)
from botkit.security import RateLimitConfig, RateLimiter


@dataclass
class FakeContext:
    user_id: int = 1
    chat_id: int = 2
    text: str = "hello"
    is_command: bool = False
    is_callback: bool = False
    is_message: bool = True
    params: dict = field(default_factory=dict)

    def set_param(self, key, value):
        self.params[key] = value


def echo(ctx):
    return Message(ctx.text)


class FakeMetrics:
    def __init__(self):
        self.counters = []
        self.timings = []

    def counter(self, name, value, **tags):
        self.counters.append((name, value, tags))

    def timing(self, name, milliseconds, **tags):
        self.timings.append((name, milliseconds, tags))


def test_function_middleware_defaults_and_delegation():
    mw = FunctionMiddleware(lambda ctx, nxt: Message("short-circuit"))
    assert mw.name == "func"
    assert mw.priority == 50
    assert mw.process(FakeContext(), echo) == Message("short-circuit")


def test_function_middleware_can_pass_through():
    mw = FunctionMiddleware(lambda ctx, nxt: nxt(ctx), name="custom", priority=7)
    assert mw.name == "custom"
    assert mw.priority == 7
    assert mw.process(FakeContext(text="abc"), echo) == Message("abc")


def test_logging_middleware_logs_and_returns_response(caplog):
    logger = logging.getLogger("botkit.test.logging")
    mw = LoggingMiddleware(logger, 90)
    with caplog.at_level(logging.INFO, logger="botkit.test.logging"):
        response = mw.process(FakeContext(text="abc"), echo)
    assert response == Message("abc")
    assert "Request received" in caplog.text
    assert "Request processed" in caplog.text
    assert mw.name == "logging"
    assert mw.priority == 90


def test_recovery_middleware_catches_exceptions(caplog):
    def failing(ctx):
        raise RuntimeError("boom")

    mw = RecoveryMiddleware(logging.getLogger("botkit.test.recovery"), 100)
    with caplog.at_level(logging.ERROR, logger="botkit.test.recovery"):
        response = mw.process(FakeContext(), failing)
    assert response == Message("❌ Произошла внутренняя ошибка. Попробуйте позже.")
    assert "boom" in caplog.text


def test_recovery_middleware_passes_normal_response():
    mw = RecoveryMiddleware(priority=100)
    assert mw.process(FakeContext(text="ok"), echo) == Message("ok")


def test_auth_middleware_rejects_and_allows():
    ctx = FakeContext()
    denied = AuthMiddleware(lambda c: False, 10).process(ctx, echo)
    assert denied == Message("🔒 Доступ запрещен. Требуется аутентификация.")
    allowed = AuthMiddleware(lambda c: True, 10).process(ctx, echo)
    assert allowed == Message("hello")


def test_rate_limit_middleware_blocks_after_limit():
    limiter = RateLimiter(RateLimitConfig(requests=2, window=60))
    mw = RateLimitMiddleware(limiter, 80)
    ctx = FakeContext()
    results = [mw.process(ctx, echo) for _ in range(3)]
    assert results[:2] == [Message("hello"), Message("hello")]
    assert results[2] == Message("⏱️ Слишком много запросов. Подождите немного.")


def test_metrics_middleware_records_counter_and_timing():
    metrics = FakeMetrics()
    mw = MetricsMiddleware(metrics, 20)
    response = mw.process(FakeContext(is_command=True), echo)
    assert response == Message("hello")
    assert metrics.counters == [("requests.total", 1, {"type": "command"})]
    assert len(metrics.timings) == 1
    name, milliseconds, tags = metrics.timings[0]
    assert name == "requests.duration"
    assert milliseconds >= 0
    assert tags == {"type": "command"}


def test_metrics_middleware_without_metrics_passes_through():
    assert MetricsMiddleware(None).process(FakeContext(text="x"), echo) == Message("x")


def test_request_type_classification():
    assert request_type(FakeContext(is_command=True)) == "command"
    assert request_type(FakeContext(is_callback=True)) == "callback"
    assert request_type(FakeContext()) == "message"
    assert request_type(FakeContext(is_command=True, is_callback=True)) == "command"


def test_context_middleware_stores_context_and_continues():
    event = threading.Event()
    mw = ContextMiddleware(lambda ctx: event, 60)
    ctx = FakeContext()
    assert mw.process(ctx, echo) == Message("hello")
    assert ctx.params["_context"] is event


def test_context_middleware_reports_expired_context():
    event = threading.Event()
    event.set()
    ctx = FakeContext()
    response = ContextMiddleware(lambda c: event, 60).process(ctx, echo)
    assert response == Message("⏱️ Время обработки запроса истекло.")
    assert ctx.params["_context"] is event


def test_validation_middleware():
    def validator(ctx):
        if not ctx.text:
            raise ValueError("empty")

    mw = ValidationMiddleware(validator, 70)
    assert mw.process(FakeContext(text=""), echo) == Message("❌ Ошибка валидации: empty")
    assert mw.process(FakeContext(text="fine"), echo) == Message("fine")


def test_chain_runs_in_given_order():
    order = []

    def recorder(label):
        def handler(ctx, nxt):
            order.append(label)
            return nxt(ctx)

        return FunctionMiddleware(handler, name=label)

    wrapped = chain(recorder("first"), recorder("second"), recorder("third"))(echo)
    assert wrapped(FakeContext(text="done")) == Message("done")
    assert order == ["first", "second", "third"]


def test_chain_short_circuit_skips_rest():
    calls = []

    def stop(ctx, nxt):
        return Message("stopped")

    def record(ctx, nxt):
        calls.append(ctx)
        return nxt(ctx)

    wrapped = chain(FunctionMiddleware(stop), FunctionMiddleware(record))(echo)
    assert wrapped(FakeContext()) == Message("stopped")
    assert calls == []


def test_empty_chain_returns_final_handler_result():
    assert chain()(echo)(FakeContext(text="plain")) == Message("plain")