"""
NominaHub - FastAPI Application Entry Point

This is the main entry point for the FastAPI application.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from nominahub import __version__
from nominahub.config import settings
from nominahub.routers import payroll
from nominahub.services.payroll_engine.seed_catalog import get_default_catalog
from nominahub.utils.error_handling import setup_exception_handlers

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.debug else getattr(logging, settings.log_level.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for FastAPI.
    Handles startup and shutdown events.
    """
    # Startup
    logger.info(f"Starting {settings.app_name}...")
    logger.info(f"Environment: {settings.app_env}")
    logger.info(f"Batch executor: {settings.batch_executor} ({settings.batch_workers} workers)")

    # Compile the default catalog once so the first request does not pay for it
    catalog = get_default_catalog()
    logger.info(f"Default catalog ready: {len(catalog)} concepts ({catalog.fingerprint[:12]})")

    yield

    # Shutdown
    logger.info(f"Shutting down {settings.app_name}...")


# Create FastAPI application
app = FastAPI(
    title=settings.app_name,
    description="Mexican payroll calculation engine: ISR, employment subsidy, IMSS and catalog-driven concepts",
    version=__version__,
    docs_url="/api/docs" if settings.is_development else None,
    redoc_url="/api/redoc" if settings.is_development else None,
    lifespan=lifespan,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Global error handlers
setup_exception_handlers(app)


# ===========================================
# ROOT ENDPOINTS
# ===========================================

@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "version": __version__,
        "environment": settings.app_env,
    }


@app.get("/api/v1")
async def api_root():
    """API v1 root endpoint."""
    return {
        "message": f"Welcome to {settings.app_name} API v1",
        "endpoints": {
            "calculate": "/api/v1/payroll/calculate",
            "batch": "/api/v1/payroll/batch",
            "catalog": "/api/v1/payroll/catalog/default",
            "validate_catalog": "/api/v1/payroll/catalog/validate",
        }
    }


# ===========================================
# API ROUTERS
# ===========================================

app.include_router(payroll.router, prefix="/api/v1/payroll", tags=["Payroll"])


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.is_development,
    )
