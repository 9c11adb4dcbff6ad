# botkit

A small toolkit for building modular chat bots. Incoming messages, commands
and button callbacks are matched against text patterns and checked against
security rules. They pass through a chain of middleware and are then handed
to the module that owns the route. The package has no dependencies outside
the standard library.

## Modules

- `botkit.interfaces`: the `Middleware` base class and the response types
  `Message` (text, optional `parse_mode` and `keyboard`) and
  `SilentResponse`.
- `botkit.security`: `SecurityRule`, the `SecurityError` hierarchy,
  `default_failure_response`, `RateLimitConfig`, `RateLimiter` and
  `SecurityMiddleware`.
- `botkit.pattern`: `RouteType`, `RouteMeta`, `RoutePattern`, `RouteBuilder`
  and `new_route`.
- `botkit.router`: `Router`, `RouteInfo` and `RouterError`.
- `botkit.middleware`: ready-made middleware for the update pipeline, plus
  `chain` and `request_type`.
- `botkit.http_middleware`: WSGI wrappers, `chain_wsgi` and
  `generate_request_id`.

## The context object

Handlers and middleware receive a context object that you supply. The
package reads these attributes from it:

- `user_id` and `chat_id`
- `text` and `data` (a dict; callbacks put their payload under
  `"callback_data"`)
- `is_command`, `is_callback` and `is_message`
- `is_authenticated`, `profile`, `roles` and `source`

It also calls two methods on it: `has_permission(name)` and
`set_param(key, value)`.

```python
from dataclasses import dataclass, field


@dataclass
class Context:
    text: str = ""
    user_id: int = 0
    chat_id: int = 0
    data: dict = field(default_factory=dict)
    is_command: bool = False
    is_callback: bool = False
    is_message: bool = False
    is_authenticated: bool = False
    profile: object = None
    roles: list = field(default_factory=list)
    source: str = "api"
    params: dict = field(default_factory=dict)

    def has_permission(self, name):
        return False

    def set_param(self, key, value):
        self.params[key] = value
```

## Defining routes

```python
from botkit.interfaces import Message
from botkit.pattern import RouteType, new_route


def fight(ctx):
    return Message("Choose your opponent")


def select_opponent(ctx):
    return Message("Fight started")


routes = [
    new_route("бой", "/fight")
    .handler(fight)
    .require_auth()
    .rate_limit(5, 60)
    .meta("start_fight", "Start a fight")
    .build(),
    new_route("arena:opponent:{id}")
    .type(RouteType.CALLBACK)
    .handler(select_opponent)
    .require_auth()
    .build(),
]
```

A route built with `new_route` has priority 50 and type `RouteType.COMMAND`
unless you set something else. `build()` returns an independent copy, so the
builder can be reused.

### Pattern matching

Each pattern is escaped and anchored at both ends. The placeholders below
become named groups:

| Placeholder | Matches |
|-------------|---------|
| `{id}` | digits |
| `{user}` | digits |
| `{amount}` | digits |
| `{name}` | word characters |
| `{text}` | any text |
| `{any}` | any text |

The pattern `*` matches anything.

`RoutePattern.match(text)` lower-cases and strips the text before trying the
patterns, so the patterns themselves should be written in lower case. It
returns `None` when no pattern matches. When a pattern without groups
matches, it returns an empty dict. When a pattern with groups matches, the
dict holds:

- the named groups;
- the positional groups under `"1"`, `"2"` and so on;
- the pattern that matched under `"_pattern"`.

`RoutePattern.match_type(ctx)` tells whether the kind of update suits the
route. Regex and wildcard routes accept any kind.

`RoutePattern.execute(ctx)` checks the route's security rule first. If the
check fails, it replies with `Message("🚫 " + error message)`. Otherwise it
runs the handler.

## Security rules

`SecurityRule.check(ctx)` raises an error when the context fails the rule.
The checks run in this order:

1. authentication (`NotAuthenticatedError`)
2. a loaded profile (`ProfileRequiredError`)
3. any one of `require_roles` (`InsufficientRoleError`)
4. every one of `require_permissions` (`InsufficientPermissionError`)
5. `allowed_sources` (`SourceNotAllowedError`)
6. an optional `validator(ctx)`, whose own exception propagates

`SecurityRule.handle_failure(ctx, error)` calls `on_failure` if it is set.
Otherwise it falls back to `default_failure_response`, which maps each error
class to a user-facing `Message`.

A route's `rate_limit` is not applied by `RoutePattern.execute`. It takes
effect through `SecurityMiddleware(rule)`, which builds a `RateLimiter` from
the rule's `rate_limit` and checks it before the rule itself. That middleware
has the name `"security"` and priority 100.

### Rate limiting

`RateLimiter(config)` counts requests in memory with a fixed window of
`config.window` seconds. Counters are kept per user and chat. `allow(ctx)`
returns `False` once `config.requests` requests have been counted in the
current window. A `clock` callable can be passed in for testing.

`reset(user_id)` and `get_limit(user_id)` work on counters stored under the
key `user:<id>`. That is not the per-user-and-chat key that `allow` uses, so
they do not see the counters `allow` creates. `get_limit` returns
`(count, maximum, reset time in unix seconds)`, or `(0, maximum, 0)` when no
counter exists.

The `storage` argument is accepted but not used.

## Routing

A module needs:

- a `name`;
- the methods `init(dependencies)`, `start()`, `stop()` and `routes()`.

`routes()` returns `RoutePattern` objects. If the module also has `events()`
and the router has an event bus, each subscription's `event_type` and
`handler` are passed to `event_bus.subscribe`. The event bus itself only
needs `subscribe`, `start` and `stop`.

```python
from botkit.router import Router

router = Router(event_bus=None)
router.set_dependencies(deps)        # handed to each module's init()
router.register_module(arena_module)
router.register_middleware(logging_middleware)
router.start()

response = router.route(ctx)

router.stop()
```

`Router.route(ctx)` runs the middleware chain, with the highest priority
outermost, and then looks for a handler:

1. For callbacks, the text it matches is `ctx.data["callback_data"]` when
   that key is present.
2. Routes are tried from the highest priority to the lowest. On a match,
   the captured parameters are set on the context with `set_param`.
3. If no route matches, wildcard modules registered with
   `register_wildcard` are asked in priority order. The first whose
   `should_handle(ctx)` is true handles the update with
   `handle_wildcard(ctx)`.
4. If nothing handles the update, the result is `SilentResponse()`.

`RouterError` is raised in these cases:

- registering after start, or registering a duplicate module name;
- a failing `init`, `start` or event subscription;
- starting the router twice.

Failures during `stop()` are logged and do not raise.

`Router.get_routes()` lists every route as a `RouteInfo` in registration
order. `get_module(name)` and `list_modules()` give access to the registered
modules.

## Middleware

`botkit.middleware` provides:

- `FunctionMiddleware(handler, name="func", priority=50)`: wraps a plain
  `handler(ctx, next_handler)` function.
- `LoggingMiddleware`: logs each request and its duration.
- `RecoveryMiddleware`: turns an exception into an error message.
- `AuthMiddleware(check_auth)`: rejects requests that fail `check_auth`.
- `RateLimitMiddleware(limiter)`: applies a `RateLimiter`.
- `MetricsMiddleware(metrics)`: calls `metrics.counter(...)` and
  `metrics.timing(...)` with a `type` tag from `request_type`.
- `ContextMiddleware(context_func)`: stores the returned object under the
  `_context` parameter. If that object is already set or done (a
  `threading.Event`, or anything with `done()`), it replies with a timeout
  message.
- `ValidationMiddleware(validator)`: turns an exception raised by
  `validator` into an error message.

To compose middleware by hand:

```python
from botkit.middleware import chain

wrapped = chain(recovery, logging_mw, validation)(handler)
response = wrapped(ctx)
```

The first middleware given is the outermost.

## WSGI helpers

`botkit.http_middleware` wraps any WSGI application:

- `CORSMiddleware().wrap(app)`: adds CORS headers and answers `OPTIONS`
  with `204 No Content`.
- `RequestIDMiddleware().wrap(app)`: ensures every request has an
  `X-Request-ID` and echoes it in the response.
- `CompressionMiddleware(level=5).wrap(app)`: gzips the body when the
  client accepts gzip.
- `SecurityHeadersMiddleware().wrap(app)`: adds `X-Frame-Options`,
  `X-Content-Type-Options`, `X-XSS-Protection` and `Referrer-Policy`.

Headers that the application sets itself are not overridden.

```python
from botkit.http_middleware import (
    CORSMiddleware,
    SecurityHeadersMiddleware,
    chain_wsgi,
)

app = chain_wsgi(CORSMiddleware().wrap, SecurityHeadersMiddleware().wrap)(app)
```

## What it does not do

botkit is a library only. It has no command-line tool. It does not connect
to any chat platform, and it contains no WebSocket or HTTP server. It does
not implement an event bus, a configuration store, a dependency container or
persistent storage. You provide these, together with the context object,
the modules and the metrics sink. Rate-limit counters live in process memory
only.

## Running the tests

```
pip install -e ".[test]"
pytest
```