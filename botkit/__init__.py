"""Chat-bot toolkit: pattern routing, security rules, rate limiting, middleware and WSGI helpers."""

__version__ = "0.1.0"

__all__ = [
    "interfaces",
    "security",
    "pattern",
    "router",
    "middleware",
    "http_middleware",
]