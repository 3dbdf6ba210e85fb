"""
AMC Engine API - Main Application

- Conditional API docs (disabled in production by default)
- RFC 7807 error responses for every engine failure
- Log lines carry correlation and request IDs
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException
import logging

from amc_engine.api.v2.router import api_router
from amc_engine.config import settings
from amc_engine.database import init_db
from amc_engine.exceptions import create_exception_handlers
from amc_engine.middleware import CorrelationIdMiddleware, CorrelationLogFilter, ServerTimingMiddleware
from amc_engine.services.amc import AMCError
# Import models to register them with SQLAlchemy metadata before init_db()
from amc_engine.models import AMCContract  # noqa: F401

APP_VERSION = "1.0.0"

# Configure logging
logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - [%(correlation_id)s/%(request_id)s] %(message)s",
)
for _handler in logging.getLogger().handlers:
    _handler.addFilter(CorrelationLogFilter())
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    logger.info("Starting AMC Engine API...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    # SECURITY: Don't log full database URL, just the driver
    logger.info(f"Database driver: {settings.DATABASE_URL.split('://', 1)[0]}")
    try:
        await init_db()
        logger.info("Database initialized successfully")
    except Exception as e:
        # SECURITY: Don't log full exception details which may contain credentials
        logger.error(f"Database initialization failed: {type(e).__name__}")
        logger.warning("App starting without database - contract endpoints will fail")
    yield
    logger.info("Shutting down AMC Engine API...")


# SECURITY: Conditionally enable docs based on settings
docs_url = "/docs" if settings.DOCS_ENABLED else None
redoc_url = "/redoc" if settings.DOCS_ENABLED else None

app = FastAPI(
    title="AMC Engine API",
    description="Annual maintenance contract lifecycle and visit scheduling",
    version=APP_VERSION,
    docs_url=docs_url,
    redoc_url=redoc_url,
    lifespan=lifespan,
)

# SECURITY: Restrict origins to known frontend URLs
allowed_origins = [settings.FRONTEND_URL]
if not settings.is_production:
    allowed_origins.extend([
        "http://localhost:5173",  # Vite dev server
        "http://localhost:3000",
    ])

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(ServerTimingMiddleware)
app.add_middleware(CorrelationIdMiddleware)

handlers = create_exception_handlers(allowed_origins)
app.add_exception_handler(AMCError, handlers["amc"])
app.add_exception_handler(StarletteHTTPException, handlers["http"])
app.add_exception_handler(RequestValidationError, handlers["validation"])
app.add_exception_handler(Exception, handlers["generic"])

app.include_router(api_router, prefix="/api/v2")


@app.get("/")
async def root():
    """Root endpoint - API info."""
    response = {
        "name": "AMC Engine API",
        "version": APP_VERSION,
        "health": "/health",
    }
    if settings.DOCS_ENABLED:
        response["docs"] = "/docs"
    return response


@app.get("/health")
async def health_check():
    return {
        "status": "healthy",
        "version": APP_VERSION,
        "environment": settings.ENVIRONMENT,
    }


# For running with uvicorn directly (development only)
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "amc_engine.main:app",
        host="0.0.0.0",
        port=5001,
        reload=settings.DEBUG,
    )
