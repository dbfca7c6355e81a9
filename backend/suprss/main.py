from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from contextlib import asynccontextmanager
from suprss.core.config import settings
from suprss.core.database import engine, Base
from suprss.core.logging_config import (
    setup_logging,
    CorrelationIdMiddleware,
    log_security_event,
)
from suprss.api.handlers import register_exception_handlers
from suprss.api.endpoints import articles, collections, comments, feeds
from suprss.services.scheduler import scheduler
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
import logging

# Configure structured JSON logging
security_logger = setup_logging(logging.DEBUG if settings.DEBUG else logging.INFO)
logger = logging.getLogger(__name__)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Middleware to add security headers to all responses."""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)

        if settings.ENABLE_HSTS and settings.is_production:
            hsts_value = f"max-age={settings.HSTS_MAX_AGE}"
            if settings.HSTS_INCLUDE_SUBDOMAINS:
                hsts_value += "; includeSubDomains"
            response.headers["Strict-Transport-Security"] = hsts_value

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none';"

        return response


# Initialize rate limiter
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[settings.RATE_LIMIT_DEFAULT],
    enabled=settings.RATE_LIMIT_ENABLED,
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    logger.info("Starting SUPRSS application...")

    # Create database tables
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created")

    if settings.ENABLE_SCHEDULER:
        scheduler.start()
    else:
        logger.warning("Feed polling disabled (ENABLE_SCHEDULER=false)")

    yield

    logger.info("Shutting down SUPRSS application...")
    if settings.ENABLE_SCHEDULER:
        scheduler.shutdown()


app = FastAPI(
    title="SUPRSS - Collaborative Feed Reader",
    description="RSS/Atom aggregation into shared, role-based collections",
    version="1.0.0",
    lifespan=lifespan,
)

# Add correlation ID middleware (first, so all logs have correlation IDs)
app.add_middleware(CorrelationIdMiddleware)

# Add rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)

# Map domain errors to HTTP responses
register_exception_handlers(app)

app.add_middleware(SecurityHeadersMiddleware)

log_security_event(
    event_type="app.startup",
    message=f"SUPRSS application starting (production={settings.is_production})",
    event_category="system",
    production=settings.is_production,
    debug=settings.DEBUG,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(collections.router, prefix="/api/collections", tags=["collections"])
app.include_router(feeds.router, prefix="/api/feeds", tags=["feeds"])
app.include_router(articles.router, prefix="/api/articles", tags=["articles"])
app.include_router(comments.router, prefix="/api/comments", tags=["comments"])


@app.get("/")
def root():
    return {
        "name": "SUPRSS",
        "version": "1.0.0",
        "description": "Collaborative feed reader",
    }


@app.get("/health")
def health_check():
    return {
        "status": "healthy",
        "scheduler_running": scheduler.scheduler.running,
        "feeds_in_flight": len(scheduler.in_flight),
    }
