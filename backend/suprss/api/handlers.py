import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from suprss.core.exceptions import SuprssError

logger = logging.getLogger(__name__)


async def suprss_error_handler(request: Request, exc: SuprssError) -> JSONResponse:
    """Render a domain error as ``{"detail": ...}`` with its own status code."""
    if exc.status_code >= 500:
        logger.error(f"{type(exc).__name__} on {request.url.path}: {exc.detail}")
    else:
        logger.info(f"{type(exc).__name__} on {request.url.path}: {exc.detail}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


def register_exception_handlers(app: FastAPI):
    app.add_exception_handler(SuprssError, suprss_error_handler)
