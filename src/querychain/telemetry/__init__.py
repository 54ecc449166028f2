"""OpenTelemetry access point.

Only ``opentelemetry-api`` is required. Spans are no-ops until the host
application installs an SDK tracer provider.
"""

from typing import Optional

from opentelemetry import trace

__all__ = [
    "get_tracer",
]


def get_tracer(name: str, version: Optional[str] = None) -> trace.Tracer:
    return trace.get_tracer(name, version)
