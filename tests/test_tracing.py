"""
Trace context tests
"""
import contextvars
import re

from opentelemetry.sdk.trace import TracerProvider

from volunteer_board.core import tracing

HEX32 = re.compile(r"^[0-9a-f]{32}$")
HEX16 = re.compile(r"^[0-9a-f]{16}$")


def in_fresh_context(fn):
    return contextvars.Context().run(fn)


def test_ids_come_from_active_span():
    tracer = TracerProvider().get_tracer("tests")

    def run():
        with tracer.start_as_current_span("unit") as span:
            context = span.get_span_context()
            return tracing.get_current_trace_span_ids(), (
                f"{context.trace_id:032x}", f"{context.span_id:016x}"
            )

    ids, expected = in_fresh_context(run)
    assert ids == expected


def test_request_context_wins_over_span():
    tracer = TracerProvider().get_tracer("tests")

    def run():
        tracing.set_trace_context("a" * 32, "b" * 16)
        with tracer.start_as_current_span("unit"):
            return tracing.get_current_trace_span_ids()

    assert in_fresh_context(run) == ("a" * 32, "b" * 16)


def test_local_ids_without_span():
    def run():
        first = tracing.get_current_trace_span_ids()
        return first, tracing.get_current_trace_span_ids()

    first, second = in_fresh_context(run)
    assert HEX32.match(first[0])
    assert HEX16.match(first[1])
    # generated once, then reused for the rest of the context
    assert first == second


def test_trace_context_dict():
    def run():
        tracing.set_trace_context("c" * 32, "d" * 16)
        return tracing.get_trace_context()

    assert in_fresh_context(run) == {"trace_id": "c" * 32, "span_id": "d" * 16}
