"""Optional OpenTelemetry instrumentation for streamdoc.

Call ``streamdoc.instrument()`` once at startup to enable tracing.
Requires ``opentelemetry-api`` to be installed; the assembler works
identically without it.
"""

import importlib.util
import logging
from contextlib import asynccontextmanager

logger = logging.getLogger(__name__)

_tracer = None


def instrument(*, tracer_name: str = "streamdoc") -> None:
    """Enable OpenTelemetry tracing of streamed turns.

    Call once at startup, after configuring your TracerProvider.
    Requires ``opentelemetry-api``: ``pip install streamdoc[otel]``

    Example::

        from opentelemetry import trace
        from opentelemetry.sdk.trace import TracerProvider

        trace.set_tracer_provider(TracerProvider())

        import streamdoc
        streamdoc.instrument()

    Args:
        tracer_name: Name passed to ``trace.get_tracer()``.

    Raises:
        ImportError: If ``opentelemetry-api`` is not installed.
    """
    global _tracer
    if importlib.util.find_spec("opentelemetry.trace") is None:
        raise ImportError(
            "opentelemetry-api is required for instrumentation. "
            "Install it with: pip install streamdoc[otel]"
        )
    from opentelemetry import trace
    _tracer = trace.get_tracer(tracer_name)
    if isinstance(_tracer, trace.NoOpTracer):
        logger.info(
            "No TracerProvider configured, spans will be "
            "discarded. Set up a TracerProvider to export "
            "traces."
        )
    else:
        logger.info("streamdoc instrumentation enabled")


def uninstrument() -> None:
    """Disable OpenTelemetry tracing."""
    global _tracer
    _tracer = None


@asynccontextmanager
async def turn_span(backend: str, display_id: str):
    """Wrap one streamed turn in a ``stream_turn`` span."""
    if _tracer is None:
        yield None
        return
    with _tracer.start_as_current_span(
        f"stream_turn {backend}",
        attributes={
            "streamdoc.backend": backend,
            "streamdoc.display_id": display_id,
        },
    ) as span:
        yield span


def record_frames(span, frames: int, completed: bool) -> None:
    """Set the frame count and completion flag of a finished turn."""
    if span is None:
        return
    span.set_attribute("streamdoc.frames", frames)
    span.set_attribute("streamdoc.completed", completed)


def record_rename(span, old_id: str, new_id: str) -> None:
    """Add an ``identity_renamed`` event to the turn span."""
    if span is None:
        return
    span.add_event(
        "identity_renamed",
        attributes={"streamdoc.old_id": old_id, "streamdoc.new_id": new_id},
    )
    span.set_attribute("streamdoc.display_id", new_id)


def record_error(span, exception: BaseException) -> None:
    """Record an exception and set ERROR status on a span.

    No-ops when *span* is ``None`` (tracing disabled).
    """
    if span is None:
        return
    from opentelemetry.trace import StatusCode

    span.set_status(StatusCode.ERROR, str(exception))
    span.record_exception(exception)
    span.set_attribute(
        "error.type", type(exception).__qualname__
    )
