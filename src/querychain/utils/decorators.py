import functools
from typing import Any, Callable, Dict, Mapping, Optional, TypeVar, Union

from opentelemetry.trace import SpanKind

from querychain.__version__ import __version__
from querychain.telemetry import get_tracer


F = TypeVar('F', bound=Callable[..., Any])

SpanAttributes = Union[Mapping[str, Any], Callable[..., Optional[Mapping[str, Any]]]]


def _span_attributes(attributes: Optional[SpanAttributes], args: tuple, kwargs: dict) -> Dict[str, Any]:
    if attributes is None:
        return {}
    values = attributes(*args, **kwargs) if callable(attributes) else attributes
    return {key: value for key, value in (values or {}).items() if value is not None}


def traced(
    span_name: Optional[str] = None,
    *,
    kind: SpanKind = SpanKind.CLIENT,
    attributes: Optional[SpanAttributes] = None,
) -> Callable[[F], F]:
    """Run the decorated call inside an OpenTelemetry span.

    The span records any exception raised by the call, marks itself as
    failed and lets the exception propagate.

    Args:
        span_name: Span name. Defaults to the module-qualified function name.
        kind: Span kind, CLIENT unless told otherwise.
        attributes: Either a static mapping or a callable receiving the
            decorated function's arguments. ``None`` values are dropped.
    """

    def decorator(func: F) -> F:
        name = span_name or f"{func.__module__}.{func.__qualname__}"

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            tracer = get_tracer(func.__module__, __version__)
            with tracer.start_as_current_span(
                name,
                kind=kind,
                attributes=_span_attributes(attributes, args, kwargs),
                record_exception=True,
                set_status_on_exception=True,
            ):
                return func(*args, **kwargs)

        return wrapper  # type: ignore[return-value]

    return decorator
