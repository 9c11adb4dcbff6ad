"""Dispatch of incoming updates to module routes, wildcards and middleware."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Any

from botkit.interfaces import Handler, Middleware, SilentResponse
from botkit.pattern import RoutePattern


class RouterError(Exception):
    """Raised when registering, starting or configuring the router fails."""


@dataclass
class RouteInfo:
    """Summary of a registered route."""

    module: str
    patterns: list[str] = field(default_factory=list)
    type: str = ""
    priority: int = 0
    description: str = ""


@dataclass
class _RegisteredRoute:
    pattern: RoutePattern
    module: str
    compiled: bool = False


class Router:
    """Routes updates to the handlers of registered modules.

    A module has a ``name`` and the methods ``init(dependencies)``,
    ``start()``, ``stop()`` and ``routes()``.  A module that also has
    ``events()`` gets its subscriptions added to the event bus.  A wildcard
    module additionally has a ``priority`` and the methods
    ``should_handle(ctx)`` and ``handle_wildcard(ctx)``.
    """

    def __init__(
        self,
        event_bus: Any = None,
        logger: logging.Logger | None = None,
        config: Any = None,
    ) -> None:
        self.event_bus = event_bus
        self.config = config
        self.dependencies: Any = None
        self._logger = logger if logger is not None else logging.getLogger(__name__)
        self._modules: dict[str, Any] = {}
        self._routes: list[_RegisteredRoute] = []
        self._wildcards: list[Any] = []
        self._middlewares: list[Middleware] = []
        self._started = False
        self._lock = threading.RLock()

    @property
    def started(self) -> bool:
        return self._started

    def set_dependencies(self, dependencies: Any) -> None:
        """Set what is handed to each module's ``init``."""
        self.dependencies = dependencies

    def register_module(self, module: Any) -> None:
        """Initialise a module and add its routes and event subscriptions."""
        with self._lock:
            if self._started:
                raise RouterError("cannot register module after router started")
            name = module.name
            if name in self._modules:
                raise RouterError(f"module {name} already registered")

            if self.dependencies is not None:
                try:
                    module.init(self.dependencies)
                except Exception as error:
                    raise RouterError(f"failed to init module {name}: {error}") from error

            self._modules[name] = module

            routes = list(module.routes())
            self._routes.extend(
                _RegisteredRoute(pattern=route, module=name)
                for route in routes
                if isinstance(route, RoutePattern)
            )

            events = getattr(module, "events", None)
            if callable(events) and self.event_bus is not None:
                for subscription in events():
                    try:
                        self.event_bus.subscribe(subscription.event_type, subscription.handler)
                    except Exception as error:
                        raise RouterError(
                            f"failed to subscribe to event {subscription.event_type}: {error}"
                        ) from error

            self._logger.info("Module registered: name=%s routes=%d", name, len(routes))

    def register_wildcard(self, module: Any) -> None:
        """Register a module that may handle updates no route matched."""
        with self._lock:
            if self._started:
                raise RouterError("cannot register wildcard after router started")
            self.register_module(module)
            self._wildcards.append(module)
            self._wildcards.sort(key=lambda wildcard: wildcard.priority, reverse=True)
            self._logger.info(
                "Wildcard module registered: name=%s priority=%d", module.name, module.priority
            )

    def register_middleware(self, middleware: Middleware) -> None:
        """Add a middleware; those with a higher priority run first."""
        with self._lock:
            self._middlewares.append(middleware)
            self._middlewares.sort(key=lambda mw: mw.priority, reverse=True)
            self._logger.info(
                "Middleware registered: name=%s priority=%d", middleware.name, middleware.priority
            )

    def route(self, ctx: Any) -> Any:
        """Pass ``ctx`` through the middleware chain to the matching handler."""
        with self._lock:
            middlewares = list(self._middlewares)

        handler: Handler = self._route_internal
        for middleware in reversed(middlewares):
            handler = _bind(middleware, handler)
        return handler(ctx)

    def _route_internal(self, ctx: Any) -> Any:
        text = ctx.text
        if ctx.is_callback:
            data = ctx.data or {}
            if "callback_data" in data:
                text = data["callback_data"]

        with self._lock:
            self._compile_routes()
            routes = sorted(self._routes, key=lambda route: route.pattern.priority, reverse=True)
            wildcards = list(self._wildcards)

        for route in routes:
            if not route.pattern.match_type(ctx):
                continue
            params = route.pattern.match(text)
            if params is None:
                continue
            for key, value in params.items():
                ctx.set_param(key, value)
            self._logger.debug(
                "Route matched: module=%s pattern=%s user=%s",
                route.module,
                params.get("_pattern", ""),
                ctx.user_id,
            )
            return route.pattern.execute(ctx)

        for wildcard in wildcards:
            if wildcard.should_handle(ctx):
                self._logger.debug(
                    "Wildcard matched: module=%s user=%s", wildcard.name, ctx.user_id
                )
                return wildcard.handle_wildcard(ctx)

        self._logger.debug("No route matched: text=%s user=%s", text, ctx.user_id)
        return SilentResponse()

    def _compile_routes(self) -> None:
        for route in self._routes:
            if route.compiled:
                continue
            try:
                route.pattern.compile()
            except Exception as error:
                self._logger.error(
                    "Failed to compile route: error=%s module=%s", error, route.module
                )
            route.compiled = True

    def get_module(self, name: str) -> Any:
        """Return the module registered under ``name``, or None."""
        with self._lock:
            return self._modules.get(name)

    def list_modules(self) -> list[Any]:
        """Return all registered modules."""
        with self._lock:
            return list(self._modules.values())

    def start(self) -> None:
        """Start every module, then the event bus."""
        with self._lock:
            if self._started:
                raise RouterError("router already started")
            for name, module in self._modules.items():
                try:
                    module.start()
                except Exception as error:
                    raise RouterError(f"failed to start module {name}: {error}") from error
                self._logger.info("Module started: name=%s", name)

            if self.event_bus is not None:
                try:
                    self.event_bus.start()
                except Exception as error:
                    raise RouterError(f"failed to start event bus: {error}") from error

            self._started = True
            self._logger.info("Router started: modules=%d", len(self._modules))

    def stop(self) -> None:
        """Stop every module and the event bus; failures are logged."""
        with self._lock:
            if not self._started:
                return
            for name, module in self._modules.items():
                try:
                    module.stop()
                except Exception as error:
                    self._logger.error("Failed to stop module: name=%s error=%s", name, error)
                else:
                    self._logger.info("Module stopped: name=%s", name)

            if self.event_bus is not None:
                try:
                    self.event_bus.stop()
                except Exception as error:
                    self._logger.error("Failed to stop event bus: error=%s", error)

            self._started = False
            self._logger.info("Router stopped")

    def get_routes(self) -> list[RouteInfo]:
        """Describe every registered route, in registration order."""
        with self._lock:
            return [
                RouteInfo(
                    module=route.module,
                    patterns=list(route.pattern.patterns),
                    type=route.pattern.type.value,
                    priority=route.pattern.priority,
                    description=route.pattern.meta.description,
                )
                for route in self._routes
            ]


def _bind(middleware: Middleware, next_handler: Handler) -> Handler:
    def handler(ctx: Any) -> Any:
        return middleware.process(ctx, next_handler)

    return handler