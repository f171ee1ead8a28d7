"""
Optima Orders API
Multi-tenant cart, checkout and kitchen order engine
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.core.config import settings
from app.core.logging_config import setup_enhanced_logging, get_logger

# Setup enhanced logging first
setup_enhanced_logging(log_level=settings.LOG_LEVEL, enable_debug=settings.DEBUG)
logger = get_logger(__name__)

from app.api.v1.api import api_router
from app.core.dependency_injection import check_services_health, get_cache_service, get_container
from app.core.error_handlers import register_exception_handlers
from app.core.logging_middleware import RequestLoggingMiddleware


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start background cleanup; stop polling and close provider connections on shutdown"""
    logger.info(f"Starting {settings.APP_NAME}", extra=settings.get_env_info())
    get_cache_service().start_cleanup_task()

    yield

    logger.info(f"Shutting down {settings.APP_NAME}")
    container = get_container()

    sync_service = container.get_existing("order_sync_service")
    if sync_service is not None:
        await sync_service.stop_all()

    payment_service = container.get_existing("payment_service")
    if payment_service is not None:
        await payment_service.aclose()

    cache_service = container.get_existing("cache_service")
    if cache_service is not None:
        await cache_service.stop_cleanup_task()


# Create FastAPI application
docs_url = "/docs" if not settings.is_production else None
redoc_url = "/redoc" if not settings.is_production else None

app = FastAPI(
    title=settings.APP_NAME,
    description="Carts, checkout, kitchen status and payment tracking for multi-tenant restaurants",
    version=settings.APP_VERSION,
    lifespan=lifespan,
    docs_url=docs_url,
    redoc_url=redoc_url,
    redirect_slashes=False,
)
app.state.debug = settings.DEBUG

# =============================================================================
# MIDDLEWARE SETUP
# =============================================================================

app.add_middleware(RequestLoggingMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
    allow_methods=settings.CORS_ALLOW_METHODS,
    allow_headers=settings.CORS_ALLOW_HEADERS,
)

register_exception_handlers(app)

app.include_router(api_router, prefix="/api/v1")


# =============================================================================
# HEALTH CHECK ENDPOINTS (Required for Cloud Run)
# =============================================================================

@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "status": "healthy",
    }


@app.get("/health")
async def health_check():
    """Health check endpoint for Cloud Run"""
    return {
        "status": "healthy",
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "persistence_backend": settings.PERSISTENCE_BACKEND,
        "services": check_services_health(),
    }
