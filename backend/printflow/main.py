"""FastAPI application."""
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging
from .config import settings
from .document_store import get_document_store
from .services.settings_store import MONDAY_SETTINGS_ID, SETTINGS_COLLECTION
from .domain_errors import DomainError
from .problem_details import domain_error_handler
from .routers import orders, product_types, webhooks
from .routers import settings as settings_router

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(_: FastAPI):
    # Builds the store; run `alembic upgrade head` first outside local runs.
    get_document_store()
    logger.info(f"🚀 {settings.APP_NAME} started ({settings.ENV})")
    yield


# Create app
app = FastAPI(
    title="PrintFlow Order Lifecycle",
    version=VERSION,
    description="Order lifecycle and Monday.com sync backend for the print shop",
    lifespan=lifespan,
)

# Production safety checks.
if settings.ENV.lower() == "production" and settings.JWT_SECRET_KEY == "change-me":
    raise RuntimeError("JWT_SECRET_KEY must be set in production.")
if settings.ENV.lower() == "production" and not settings.cors_origins:
    raise RuntimeError("ALLOWED_ORIGINS must be set in production (explicit frontend origin required).")

# CORS
cors_methods = ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]
cors_headers = ["Authorization", "Content-Type", "X-API-Key"]
if settings.ENV.lower() != "production":
    cors_headers = ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=cors_methods,
    allow_headers=cors_headers,
)

app.add_exception_handler(DomainError, domain_error_handler)

# Include routers
app.include_router(orders.router, prefix="/api")
app.include_router(product_types.router, prefix="/api")
app.include_router(settings_router.router, prefix="/api")
app.include_router(webhooks.router, prefix="/api")


@app.get("/api/system/health")
def health_check():
    """Health check endpoint."""
    try:
        get_document_store().get(SETTINGS_COLLECTION, MONDAY_SETTINGS_ID)
        database = "ok"
    except DomainError as e:
        logger.error(f"❌ Health check database error: {e}")
        database = "error"
    return {
        "status": "ok" if database == "ok" else "degraded",
        "version": VERSION,
        "database": database,
    }


@app.get("/")
def root():
    """Root endpoint."""
    return {
        "message": "PrintFlow Order Lifecycle API",
        "version": VERSION,
        "docs": "/docs"
    }
