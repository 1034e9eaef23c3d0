# volunteer_board/exceptions/handlers.py
from fastapi import Request, HTTPException
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from volunteer_board.core import tracing
import time


def get_client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def get_safe_headers(request: Request) -> dict:
    """Extract headers worth logging"""
    headers = request.headers
    return {
        "user_agent": headers.get("user-agent", "unknown"),
        "volunteer_id": headers.get("x-volunteer-id", "none"),
        "referer": headers.get("referer", "none")
    }


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    client_ip = get_client_ip(request)
    headers = get_safe_headers(request)

    log = tracing.error if exc.status_code >= 500 else tracing.warning
    log(
        f"🚨 HTTP {exc.status_code}: {exc.detail}",
        url=str(request.url),
        ip=client_ip,
        **headers
    )

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "detail": exc.detail,
            "status_code": exc.status_code,
            "trace_id": tracing.get_current_trace_id(),
            "timestamp": time.time(),
            "path": request.url.path
        },
        headers=getattr(exc, 'headers', None)
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    client_ip = get_client_ip(request)
    headers = get_safe_headers(request)

    errors = [
        {
            "field": " -> ".join(str(x) for x in error["loc"]),
            "message": error["msg"],
            "type": error["type"]
        }
        for error in exc.errors()
    ]

    tracing.warning(
        f"⚠️ Validation error: {len(errors)} errors",
        url=str(request.url),
        ip=client_ip,
        **headers
    )

    return JSONResponse(
        status_code=422,
        content={
            "detail": "Validation error",
            "errors": errors,
            "trace_id": tracing.get_current_trace_id(),
            "timestamp": time.time()
        }
    )


async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
    """Rejected input detected below the request schema (engines, sort specs)"""
    tracing.warning(
        f"⚠️ Bad request: {exc}",
        url=str(request.url),
        ip=get_client_ip(request),
        **get_safe_headers(request)
    )

    return JSONResponse(
        status_code=400,
        content={
            "detail": str(exc),
            "status_code": 400,
            "trace_id": tracing.get_current_trace_id(),
            "timestamp": time.time(),
            "path": request.url.path
        }
    )


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    client_ip = get_client_ip(request)
    headers = get_safe_headers(request)

    tracing.error(
        f"🔥 UNHANDLED EXCEPTION: {str(exc)}",
        url=str(request.url),
        ip=client_ip,
        **headers
    )

    return JSONResponse(
        status_code=500,
        content={
            "detail": "Internal server error",
            "trace_id": tracing.get_current_trace_id(),
            "timestamp": time.time(),
            "error_type": type(exc).__name__
        }
    )


async def starlette_http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    client_ip = get_client_ip(request)
    headers = get_safe_headers(request)

    tracing.warning(
        f"🔍 HTTP {exc.status_code}: {exc.detail}",
        url=str(request.url),
        ip=client_ip,
        **headers
    )

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "detail": exc.detail,
            "status_code": exc.status_code,
            "trace_id": tracing.get_current_trace_id(),
            "timestamp": time.time()
        }
    )
