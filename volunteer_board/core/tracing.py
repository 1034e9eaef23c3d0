# volunteer_board/core/tracing.py - OpenTelemetry tracing and structured logging with trace IDs

import os
import socket
import traceback
import sys
import json
import random
from datetime import datetime
from typing import Optional, Dict, Any
from loguru import logger
from contextvars import ContextVar

from opentelemetry import context as otel_context
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.resources import SERVICE_NAME as RESOURCE_SERVICE_NAME
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from opentelemetry.sdk.trace.sampling import ALWAYS_ON

from volunteer_board.core.config import settings

# Context variables for trace propagation across awaits
_trace_id_context: ContextVar[str] = ContextVar('trace_id', default='no-trace')
_span_id_context: ContextVar[str] = ContextVar('span_id', default='no-span')

SERVICE_NAME = "volunteer-board"
SERVICE_VERSION = "1.0.0"

# Initialized once by setup_tracing
_tracer = None
_tracer_provider = None


# Local trace IDs, used when the OpenTelemetry exporter is disabled
def generate_trace_id() -> str:
    """Generate a 128-bit trace ID as 32-character hex string"""
    return f"{random.getrandbits(128):032x}"


def generate_span_id() -> str:
    """Generate a 64-bit span ID as 16-character hex string"""
    return f"{random.getrandbits(64):016x}"


def _span_ids(span) -> Optional[tuple[str, str]]:
    """Hex trace and span ids of ``span``, or None when it carries no real context"""
    if span is None:
        return None
    span_context = span.get_span_context()
    if not span_context.is_valid:
        return None
    return f"{span_context.trace_id:032x}", f"{span_context.span_id:016x}"


class TracingMiddleware:
    """
    ASGI middleware that gives every request a trace ID and echoes it back.

    The ID comes from the OpenTelemetry span the FastAPI instrumentation
    opened for the request; paths excluded from instrumentation get a span
    of their own. With the exporter disabled, IDs are generated locally
    (an incoming ``X-Trace-ID`` is reused).
    """

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] not in ("http", "websocket"):
            await self.app(scope, receive, send)
            return

        if settings.ENABLE_OTEL_EXPORTER and _tracer is not None:
            ids = _span_ids(trace.get_current_span())
            if ids is not None:
                await self._traced(scope, receive, send, *ids)
                return

            path = scope.get("path", "unknown")
            method = scope.get("method", "WEBSOCKET")
            with _tracer.start_as_current_span(f"{method} {path}") as span:
                span.set_attribute("http.method", method)
                span.set_attribute("http.url", path)
                span.set_attribute("http.scheme", scope.get("scheme", "http"))
                trace_id, span_id = _span_ids(span) or (generate_trace_id(), generate_span_id())
                token = otel_context.attach(trace.set_span_in_context(span))
                try:
                    await self._traced(scope, receive, send, trace_id, span_id)
                finally:
                    otel_context.detach(token)
            return

        # Fallback: local trace IDs
        incoming = None
        for name, value in scope.get("headers", []):
            if name == b"x-trace-id":
                incoming = value.decode("latin-1")
                break
        await self._traced(scope, receive, send, incoming or generate_trace_id(), generate_span_id())

    async def _traced(self, scope, receive, send, trace_id: str, span_id: str):
        trace_token = _trace_id_context.set(trace_id)
        span_token = _span_id_context.set(span_id)

        async def send_with_trace(message):
            if message["type"] == "http.response.start":
                headers = list(message.get("headers", []))
                headers.append((b"x-trace-id", trace_id.encode("latin-1")))
                message["headers"] = headers
            await send(message)

        try:
            await self.app(scope, receive, send_with_trace)
        finally:
            _trace_id_context.reset(trace_token)
            _span_id_context.reset(span_token)


def setup_tracing(app, db_engine=None) -> bool:
    """
    Install the tracing middleware, configure log sinks and, when enabled,
    the OpenTelemetry provider with FastAPI and SQLAlchemy instrumentation.

    Returns whether OpenTelemetry is active; local trace IDs work either way.
    """
    global _tracer, _tracer_provider

    app.add_middleware(TracingMiddleware)
    setup_structured_logging(enable_json=settings.should_use_json_logging)
    setup_logger = logger.bind(trace_id="startup", span_id="startup")

    if not settings.ENABLE_OTEL_EXPORTER:
        setup_logger.info("📍 OpenTelemetry disabled in config - using local trace IDs only")
        return False

    setup_logger.info("🔧 Setting up OpenTelemetry tracing...")
    resource = Resource.create({
        RESOURCE_SERVICE_NAME: SERVICE_NAME,
        "service.version": SERVICE_VERSION,
        "service.environment": settings.ENVIRONMENT,
        "board.name": settings.BOARD_NAME,
    })
    _tracer_provider = TracerProvider(resource=resource, sampler=ALWAYS_ON)
    trace.set_tracer_provider(_tracer_provider)
    _tracer = trace.get_tracer(__name__)

    if settings.ENABLE_OTEL_CONSOLE_EXPORT:
        _tracer_provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))
        setup_logger.info("✅ Console span exporter enabled")

    if settings.ENABLE_EXTERNAL_TRACING:
        _tracer_provider.add_span_processor(
            BatchSpanProcessor(OTLPSpanExporter(endpoint=settings.OTLP_ENDPOINT, insecure=True))
        )
        setup_logger.info(f"✅ OTLP exporter enabled: {settings.OTLP_ENDPOINT}")

    FastAPIInstrumentor.instrument_app(
        app,
        tracer_provider=_tracer_provider,
        excluded_urls="/health,/metrics,/docs,/redoc,/openapi.json"
    )
    setup_logger.info("✅ FastAPI instrumented")

    if db_engine is not None:
        instrument_database(db_engine)

    setup_logger.info("🎉 OpenTelemetry tracing setup complete")
    return True


def instrument_database(db_engine) -> bool:
    """Trace SQL statements of ``db_engine`` (async engines are instrumented through their sync engine)"""
    if _tracer_provider is None:
        return False

    SQLAlchemyInstrumentor().instrument(
        engine=getattr(db_engine, "sync_engine", db_engine),
        tracer_provider=_tracer_provider,
        enable_commenter=True
    )
    logger.bind(trace_id="startup", span_id="startup").info("✅ SQLAlchemy instrumented")
    return True

def format_stack_trace(exception_info) -> Optional[str]:
    """Format exception stack trace for logging"""
    if not exception_info:
        return None

    try:
        if hasattr(exception_info, 'type') and hasattr(exception_info, 'traceback'):
            if exception_info.traceback:
                return ''.join(traceback.format_exception(
                    exception_info.type,
                    exception_info.value,
                    exception_info.traceback
                ))
        return str(exception_info)
    except Exception:
        return "Error formatting stack trace"


def setup_structured_logging(enable_json: bool = None):
    """Replace loguru's default sink with a JSON or human-readable one"""
    if enable_json is None:
        enable_json = settings.should_use_json_logging

    logger.remove()

    hostname = socket.gethostname()
    pid = os.getpid()
    environment = settings.ENVIRONMENT
    board_name = settings.BOARD_NAME

    if enable_json:
        def json_sink(message):
            record = message.record

            trace_id = record["extra"].get("trace_id") or _trace_id_context.get()
            span_id = record["extra"].get("span_id") or _span_id_context.get()

            log_entry = {
                "@timestamp": datetime.utcnow().isoformat() + "Z",
                "level": record["level"].name,
                "message": record["message"],
                "service": {
                    "name": SERVICE_NAME,
                    "version": SERVICE_VERSION,
                    "environment": environment,
                    "board": board_name
                },
                "host": {"hostname": hostname},
                "process": {"pid": pid},
                "log": {
                    "origin": {
                        "file": record["file"].name,
                        "line": record["line"],
                        "function": record["function"]
                    },
                    "logger": record["name"]
                },
                "trace": {
                    "id": trace_id,
                    "span_id": span_id
                }
            }

            extra_filtered = {k: v for k, v in record["extra"].items()
                              if k not in ("trace_id", "span_id") and not k.startswith("_")}
            if extra_filtered:
                log_entry["custom"] = extra_filtered

            if record["exception"]:
                log_entry["error"] = {
                    "type": record["exception"].type.__name__ if record["exception"].type else "UnknownError",
                    "message": str(record["exception"].value),
                    "stack_trace": format_stack_trace(record["exception"]),
                }

            try:
                sys.stderr.write(json.dumps(log_entry, ensure_ascii=False, default=str) + "\n")
            except Exception as e:
                fallback = {
                    "@timestamp": datetime.utcnow().isoformat() + "Z",
                    "level": record["level"].name,
                    "message": str(record["message"]),
                    "error": f"JSON serialization failed: {e}"
                }
                sys.stderr.write(json.dumps(fallback) + "\n")
            sys.stderr.flush()

        logger.add(json_sink, level=settings.LOG_LEVEL, enqueue=True, catch=True)
    else:
        def format_with_trace(record):
            trace_id = record["extra"].get("trace_id") or _trace_id_context.get()
            trace_info = f" [trace:{trace_id[:8]}]" if trace_id != "no-trace" else ""
            return (
                "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
                "<cyan>{name}:{function}:{line}</cyan>" + trace_info + " - <level>{message}</level>\n{exception}"
            )

        logger.add(
            sys.stderr,
            format=format_with_trace,
            level=settings.LOG_LEVEL,
            colorize=True,
            enqueue=True,
            catch=True
        )


def get_current_trace_span_ids() -> tuple[str, str]:
    """
    Get current trace_id and span_id.

    Looks at the request context first, then at the active OpenTelemetry
    span, and generates local IDs when neither is available.
    """
    trace_id = _trace_id_context.get()
    span_id = _span_id_context.get()
    if trace_id != "no-trace" and span_id != "no-span":
        return trace_id, span_id

    ids = _span_ids(trace.get_current_span())
    if ids is not None:
        return ids

    trace_id = generate_trace_id()
    span_id = generate_span_id()
    _trace_id_context.set(trace_id)
    _span_id_context.set(span_id)
    return trace_id, span_id


def set_trace_context(trace_id: str, span_id: str):
    """Manually set trace context - useful for background tasks"""
    _trace_id_context.set(trace_id)
    _span_id_context.set(span_id)


def get_current_trace_id() -> str:
    """Get current trace ID"""
    trace_id, _ = get_current_trace_span_ids()
    return trace_id


def get_trace_context() -> Dict[str, str]:
    """Get trace context"""
    trace_id, span_id = get_current_trace_span_ids()
    return {"trace_id": trace_id, "span_id": span_id}


def log_with_trace(level: str, message: str, **kwargs: Any):
    """Log through loguru with the current trace context bound"""
    trace_id, span_id = get_current_trace_span_ids()
    extra_data = {
        "trace_id": trace_id,
        "span_id": span_id,
        **kwargs
    }

    try:
        log_func = getattr(logger.bind(**extra_data), level.lower())
    except AttributeError:
        logger.error(f"Invalid log level: {level}")
        return
    log_func(message)


# Convenience functions
def info(message: str, **kwargs):
    """Log info with trace context"""
    log_with_trace("info", message, **kwargs)


def debug(message: str, **kwargs):
    """Log debug with trace context"""
    log_with_trace("debug", message, **kwargs)


def warning(message: str, **kwargs):
    """Log warning with trace context"""
    log_with_trace("warning", message, **kwargs)


def error(message: str, **kwargs):
    """Log error with trace context"""
    log_with_trace("error", message, **kwargs)


__all__ = [
    'setup_tracing', 'instrument_database', 'setup_structured_logging', 'TracingMiddleware',
    'get_current_trace_span_ids', 'get_current_trace_id', 'get_trace_context', 'set_trace_context',
    'log_with_trace', 'info', 'debug', 'warning', 'error'
]
