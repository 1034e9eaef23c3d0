# volunteer_board/middleware/cors.py
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from volunteer_board.core.config import settings
from loguru import logger


def setup_cors_middleware(app: FastAPI) -> None:
    """
    Configure CORS for the board front-ends (volunteer pages, display, admin)
    """
    allowed_origins = settings.cors_origins_list
    if settings.ENVIRONMENT == "development":
        # Local front-end dev servers
        allowed_origins = allowed_origins + ["http://localhost:3000", "http://127.0.0.1:3000"]

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=[
            "Accept",
            "Content-Type",
            "X-Volunteer-Id",
            "X-Trace-ID"
        ],
        expose_headers=["X-Trace-ID"],
        max_age=600,
    )

    logger.info(f"✅ CORS configured for {len(allowed_origins)} origins")
