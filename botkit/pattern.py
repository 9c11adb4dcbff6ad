"""Route patterns, matching and a fluent route builder."""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

from botkit.interfaces import Handler, Message
from botkit.security import RateLimitConfig, SecurityRule


class RouteType(str, Enum):
    COMMAND = "command"
    CALLBACK = "callback"
    MESSAGE = "message"
    REGEX = "regex"
    WILDCARD = "wildcard"


@dataclass
class RouteMeta:
    """Descriptive data about a route."""

    name: str = ""
    description: str = ""
    category: str = ""
    tags: list[str] = field(default_factory=list)
    hidden: bool = False
    deprecated: bool = False
    version: str = ""
    examples: list[str] = field(default_factory=list)


_PLACEHOLDERS = {
    r"\{id\}": r"(?P<id>\d+)",
    r"\{user\}": r"(?P<user>\d+)",
    r"\{name\}": r"(?P<name>\w+)",
    r"\{text\}": r"(?P<text>.+)",
    r"\{amount\}": r"(?P<amount>\d+)",
    r"\{any\}": r"(?P<any>.+)",
}


def _pattern_to_regex(pattern: str) -> str:
    escaped = re.escape(pattern)
    for placeholder, group in _PLACEHOLDERS.items():
        escaped = escaped.replace(placeholder, group)
    return "^" + escaped + "$"


@dataclass
class RoutePattern:
    """Text patterns bound to a handler."""

    patterns: list[str] = field(default_factory=list)
    handler: Handler | None = None
    priority: int = 0
    type: RouteType = RouteType.COMMAND
    security: SecurityRule = field(default_factory=SecurityRule)
    meta: RouteMeta = field(default_factory=RouteMeta)
    module: str = ""
    _compiled: list[re.Pattern[str]] = field(
        default_factory=list, init=False, repr=False, compare=False
    )

    def compile(self) -> None:
        """Compile the patterns; raises ``re.error`` on a bad pattern."""
        compiled = []
        for pattern in self.patterns:
            if pattern == "*":
                compiled.append(re.compile(".*"))
            else:
                compiled.append(re.compile(_pattern_to_regex(pattern), re.ASCII))
        self._compiled = compiled

    def match(self, text: str) -> dict[str, str] | None:
        """Return the captured parameters, or None if no pattern matches."""
        text = text.lower().strip()
        if not self._compiled:
            try:
                self.compile()
            except re.error:
                return None
        for source, regex in zip(self.patterns, self._compiled):
            found = regex.search(text)
            if found is None:
                continue
            if not regex.groups:
                return {}
            params = {name: value or "" for name, value in found.groupdict().items()}
            for index, value in enumerate(found.groups(), start=1):
                params[chr(ord("0") + index)] = value or ""
            params["_pattern"] = source
            return params
        return None

    def match_type(self, ctx: Any) -> bool:
        """Tell whether the kind of update in ``ctx`` suits this route."""
        match self.type:
            case RouteType.COMMAND:
                return bool(ctx.is_command)
            case RouteType.CALLBACK:
                return bool(ctx.is_callback)
            case RouteType.MESSAGE:
                return bool(ctx.is_message)
            case RouteType.REGEX | RouteType.WILDCARD:
                return True
        return False

    def check_security(self, ctx: Any) -> None:
        """Raise if ``ctx`` does not satisfy the route's security rule."""
        self.security.check(ctx)

    def execute(self, ctx: Any) -> Any:
        """Run the handler, or reply with the security error."""
        try:
            self.check_security(ctx)
        except Exception as error:
            return Message("🚫 " + str(error))
        return self.handler(ctx)


class RouteBuilder:
    """Fluent construction of a ``RoutePattern``."""

    def __init__(self, *patterns: str) -> None:
        self._pattern = RoutePattern(
            patterns=list(patterns), priority=50, type=RouteType.COMMAND
        )

    def handler(self, func: Handler) -> RouteBuilder:
        self._pattern.handler = func
        return self

    def priority(self, value: int) -> RouteBuilder:
        self._pattern.priority = value
        return self

    def type(self, route_type: RouteType) -> RouteBuilder:
        self._pattern.type = route_type
        return self

    def require_auth(self) -> RouteBuilder:
        self._pattern.security.require_auth = True
        return self

    def require_roles(self, *args: str) -> RouteBuilder:
        self._pattern.security.require_roles = list(args)
        return self

    def require_permissions(self, *args: str) -> RouteBuilder:
        self._pattern.security.require_permissions = list(args)
        return self

    def rate_limit(self, requests: int, window: int) -> RouteBuilder:
        self._pattern.security.rate_limit = RateLimitConfig(requests=requests, window=window)
        return self

    def meta(self, name: str, description: str) -> RouteBuilder:
        self._pattern.meta.name = name
        self._pattern.meta.description = description
        return self

    def tags(self, *args: str) -> RouteBuilder:
        self._pattern.meta.tags = list(args)
        return self

    def hidden(self) -> RouteBuilder:
        self._pattern.meta.hidden = True
        return self

    def build(self) -> RoutePattern:
        """Return an independent copy of the route built so far."""
        source = self._pattern
        security = replace(
            source.security,
            require_roles=list(source.security.require_roles),
            require_permissions=list(source.security.require_permissions),
            allowed_sources=list(source.security.allowed_sources),
        )
        meta = replace(source.meta, tags=list(source.meta.tags), examples=list(source.meta.examples))
        return replace(source, patterns=list(source.patterns), security=security, meta=meta)


def new_route(*args: str) -> RouteBuilder:
    """Start building a route for the given patterns."""
    return RouteBuilder(*args)