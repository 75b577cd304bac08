"""Middleware registration."""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from foodie.config import Settings
from foodie.middleware.error_handler import setup_error_handlers
from foodie.middleware.logging import setup_logging
from foodie.middleware.request_id import REQUEST_ID_HEADER, RequestIdMiddleware


def setup_middleware(app: FastAPI, settings: Settings) -> None:
    """Logging, error handlers, request ids and CORS.

    The last middleware added is the outermost one; CORS goes last so its
    headers are also set on error responses.
    """
    setup_logging(settings)
    setup_error_handlers(app)
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=[REQUEST_ID_HEADER],
    )
