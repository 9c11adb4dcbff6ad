"""Shared interfaces: middleware contract and response types.

Handlers and middleware receive a context object.  The routing and security
code reads these attributes from it: ``user_id``, ``chat_id``, ``text``,
``data``, ``is_command``, ``is_callback``, ``is_message``,
``is_authenticated``, ``profile``, ``roles`` and ``source``.  It calls
``has_permission(name)`` and ``set_param(key, value)`` on it.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable

Handler = Callable[[Any], Any]


class Middleware(ABC):
    """A step in the request pipeline; a higher priority runs earlier."""

    name: str = "middleware"
    priority: int = 0

    @abstractmethod
    def process(self, ctx: Any, next_handler: Handler) -> Any:
        """Handle ``ctx``, usually by calling ``next_handler(ctx)``."""


@dataclass
class Message:
    """A text reply to the user."""

    text: str
    parse_mode: str | None = None
    keyboard: Any = None


@dataclass(frozen=True)
class SilentResponse:
    """A response that sends nothing back."""