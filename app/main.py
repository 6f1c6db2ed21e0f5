from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging

# Import database components
from app.database.database import engine, Base

# Import middleware
from app.common.middleware import TenantMiddleware
from app.common.exceptions import AppError

# Import routers
from app.modules.invoices.router import router as invoices_router

# Import models for table creation
import app.modules.businesses.models
import app.modules.customers.models
import app.modules.invoices.models

from app.core.config import settings

# Configure logging
logging.basicConfig(
    level=logging.INFO if settings.ENVIRONMENT == "production" else logging.DEBUG,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Invoicing API starting up...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Debug mode: {settings.DEBUG}")

    # Create database tables (only for development - use migrations in production)
    if settings.ENVIRONMENT == "development":
        Base.metadata.create_all(bind=engine)

    yield

    logger.info("Invoicing API shutting down...")


# FastAPI app
app = FastAPI(
    title="Invoicing API",
    description="Multi-tenant invoicing API: draft tax documents, finalization and gapless-on-success numbering",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs" if settings.ENVIRONMENT != "production" else None,
    redoc_url="/redoc" if settings.ENVIRONMENT != "production" else None
)

# Add middleware
app.add_middleware(TenantMiddleware)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(invoices_router)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    """Errores esperados: código estable para que el cliente no dependa del mensaje"""
    logger.debug(f"Request to {request.url.path} failed: {exc.code}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    """Catch-all exception handler for unhandled errors."""
    logger.exception(f"Unhandled error on {request.url.path}: {exc}")

    content = {"error": "internal_error"}
    # Don't expose internal errors in production
    if settings.DEBUG and settings.ENVIRONMENT != "production":
        content["message"] = str(exc)
    return JSONResponse(status_code=500, content=content)


@app.get("/")
async def read_root():
    return {
        "message": "Invoicing API is running",
        "version": "1.0.0",
        "environment": settings.ENVIRONMENT
    }


@app.get("/health")
async def health_check():
    return {"status": "healthy", "environment": settings.ENVIRONMENT}
