"""FastAPI middleware components."""

from tryon_gateway.api.middleware.exception_handler import setup_exception_handlers
from tryon_gateway.api.middleware.logging import LoggingMiddleware
from tryon_gateway.api.middleware.metrics import MetricsMiddleware
from tryon_gateway.api.middleware.response_hooks import (
    POST_RESPONSE_TASKS_KEY,
    ResponseHooksMiddleware,
)

__all__ = [
    "POST_RESPONSE_TASKS_KEY",
    "LoggingMiddleware",
    "MetricsMiddleware",
    "ResponseHooksMiddleware",
    "setup_exception_handlers",
]
