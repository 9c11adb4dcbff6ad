import pytest

from botkit.interfaces import Message, Middleware, SilentResponse


class Upper(Middleware):
    name = "upper"
    priority = 7

    def process(self, ctx, next_handler):
        response = next_handler(ctx)
        return Message(response.text.upper(), parse_mode=response.parse_mode)


def test_middleware_is_abstract():
    with pytest.raises(TypeError):
        Middleware()


def test_subclass_without_process_cannot_be_created():
    class Broken(Middleware):
        name = "broken"

    with pytest.raises(TypeError):
        Broken()
    assert Upper().process(Message("x"), lambda msg: msg) == Message("X")


def test_subclass_process_wraps_next_handler():
    mw = Upper()
    result = mw.process(
        Message("abc", parse_mode="HTML"),
        lambda msg: Message(msg.text + "d", parse_mode=msg.parse_mode),
    )
    assert result == Message("ABCD", parse_mode="HTML")
    assert (mw.name, mw.priority) == ("upper", 7)


def test_message_defaults():
    msg = Message("hello")
    assert msg.text == "hello"
    assert msg.parse_mode is None
    assert msg.keyboard is None


def test_message_equality():
    assert Message("a", parse_mode="HTML") == Message("a", parse_mode="HTML")
    assert Message("a") != Message("b")


def test_silent_responses_are_equal():
    assert SilentResponse() == SilentResponse()
    assert SilentResponse() != Message("")