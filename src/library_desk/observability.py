"""Logfire tracing for desk operations."""

import functools
import logging
import os
import time
from collections.abc import Callable
from typing import Any

import logfire
from pydantic import BaseModel, Field

from .errors import LibraryError

logger = logging.getLogger(__name__)


class ObservabilityConfig(BaseModel):
    """Configuration for Logfire observability."""

    token: str = Field(default_factory=lambda: os.getenv("LOGFIRE_TOKEN", ""))
    service_name: str = "library-desk"
    environment: str = Field(default_factory=lambda: os.getenv("ENVIRONMENT", "development"))

    enabled: bool = Field(
        default_factory=lambda: os.getenv("LOGFIRE_ENABLED", "true").lower() == "true"
    )
    console_output: bool = Field(
        default_factory=lambda: os.getenv("LOGFIRE_CONSOLE", "false").lower() == "true"
    )
    send_to_logfire: bool = Field(
        default_factory=lambda: os.getenv("LOGFIRE_SEND", "false").lower() == "true"
    )


def initialize_observability(config: ObservabilityConfig | None = None) -> None:
    """Configure Logfire once at startup."""
    config = config or ObservabilityConfig()

    if not config.enabled:
        logger.debug("Observability disabled via configuration")
        return

    logfire.configure(
        token=config.token or None,
        service_name=config.service_name,
        environment=config.environment,
        send_to_logfire=config.send_to_logfire,
        console=None if config.console_output else False,
    )

    if config.environment == "production":
        logfire.instrument_system_metrics()


def traced(operation: str):
    """Wrap a desk operation in a ``desk.<operation>`` span."""

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            with logfire.span(f"desk.{operation}", operation=operation) as span:
                start = time.perf_counter()
                try:
                    result = func(*args, **kwargs)
                except LibraryError as e:
                    span.set_attribute("desk.success", False)
                    span.set_attribute("desk.error_kind", e.kind)
                    raise
                except Exception as e:
                    span.set_attribute("desk.success", False)
                    span.set_attribute("desk.error", type(e).__name__)
                    raise
                span.set_attribute("desk.success", True)
                span.set_attribute("desk.duration_ms", (time.perf_counter() - start) * 1000)
                if isinstance(result, list):
                    span.set_attribute("result.item_count", len(result))
                return result

        return wrapper

    return decorator


__all__ = [
    "ObservabilityConfig",
    "initialize_observability",
    "traced",
]
