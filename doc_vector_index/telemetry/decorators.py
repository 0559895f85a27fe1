"""Tracing decorator and context manager.

@traced works on plain and ``async def`` functions alike, so index
coroutines get one span covering the whole awaited operation.
"""

from __future__ import annotations

import inspect
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from functools import wraps
from typing import TYPE_CHECKING, Any, TypeVar

from doc_vector_index.telemetry.service import TelemetryService

if TYPE_CHECKING:
    from opentelemetry.trace import Span

F = TypeVar("F", bound=Callable[..., Any])


def traced(
    name: str | None = None,
    attributes: dict[str, Any] | None = None,
) -> Callable[[F], F]:
    """Decorator to trace function execution.

    Exceptions are recorded on the span and re-raised.

    Example:
        >>> @traced("index.query")
        ... async def query_items(self, vector, top_k):
        ...     ...
    """

    def decorator(func: F) -> F:
        span_name = name or func.__qualname__

        if inspect.iscoroutinefunction(func):

            @wraps(func)
            async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
                with trace_span(span_name, attributes):
                    return await func(*args, **kwargs)

            return async_wrapper  # type: ignore[return-value]

        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            with trace_span(span_name, attributes):
                return func(*args, **kwargs)

        return wrapper  # type: ignore[return-value]

    return decorator


@contextmanager
def trace_span(
    name: str,
    attributes: dict[str, Any] | None = None,
) -> Iterator[Span | None]:
    """Context manager for tracing code blocks.

    Yields:
        The created span, or None if telemetry is disabled.

    Example:
        >>> with trace_span("document.embed", {"batches": 3}) as span:
        ...     if span:
        ...         span.set_attribute("chunks", 12)
    """
    service = TelemetryService.get_instance()

    if not service.is_enabled:
        yield None
        return

    with service.tracer.start_as_current_span(name, attributes=attributes) as span:
        try:
            yield span
        except Exception as e:
            _record_exception(span, e)
            raise


def _record_exception(span: Span, exception: Exception) -> None:
    from opentelemetry.trace import Status, StatusCode

    span.record_exception(exception)
    span.set_status(Status(StatusCode.ERROR, str(exception)))
