"""Middleware registration."""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from earnloop.config import Settings
from earnloop.middleware.error_handler import setup_error_handlers
from earnloop.middleware.logging import setup_logging
from earnloop.middleware.rate_limit import RateLimitMiddleware
from earnloop.middleware.request_id import RequestIdMiddleware

_EXPOSED_HEADERS = ["X-Request-Id", "X-RateLimit-Remaining", "X-RateLimit-Limit", "Retry-After"]


def setup_middleware(app: FastAPI, settings: Settings) -> None:
    """Install logging, error handlers and the middleware stack.

    Starlette wraps in reverse-add order. CORS is added last so its headers
    also reach 429 responses produced by the rate limiter.
    """
    setup_logging(settings)
    setup_error_handlers(app)
    app.add_middleware(
        RateLimitMiddleware,
        requests_per_window=settings.rate_limit_requests,
        window_seconds=settings.rate_limit_window_seconds,
    )
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-Request-Id", "X-Device-Fingerprint", "X-Platform"],
        expose_headers=_EXPOSED_HEADERS,
    )
