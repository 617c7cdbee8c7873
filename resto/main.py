from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
import logging

# Import database components
from resto.database.database import sync_engine, Base

# Import middleware
from resto.common.middleware import RequestLoggingMiddleware
from resto.core.exceptions import RestoAPIError

# Import routers
from resto.modules.inventory.router import inventory_router
from resto.modules.orders.router import orders_router
from resto.modules.purchases.router import purchase_orders_router
from resto.modules.transfers.router import stock_transfers_router

# Import models for table creation
import resto.modules.inventory.models
import resto.modules.orders.models
import resto.modules.purchases.models
import resto.modules.transfers.models

from resto.core.config import settings

# Configure logging
logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# FastAPI app
app = FastAPI(
    title="Resto Kardex API",
    description="Restaurant POS inventory ledger (Kardex) built with FastAPI and PostgreSQL",
    version="1.0.0",
    docs_url="/docs" if settings.ENVIRONMENT != "production" else None,
    redoc_url="/redoc" if settings.ENVIRONMENT != "production" else None
)

# Add middleware (order matters!)
app.add_middleware(GZipMiddleware, minimum_size=1000)
app.add_middleware(RequestLoggingMiddleware)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(inventory_router, prefix="/api")
app.include_router(orders_router, prefix="/api")
app.include_router(purchase_orders_router, prefix="/api")
app.include_router(stock_transfers_router, prefix="/api")


@app.exception_handler(RestoAPIError)
async def resto_exception_handler(request: Request, exc: RestoAPIError) -> JSONResponse:
    """Render application errors with their status and error code"""
    log = logger.error if exc.status_code >= 500 else logger.info
    log(f"{request.method} {request.url.path} failed: {type(exc).__name__}: {exc}")
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": exc.error_code,
            "message": str(exc),
            "detail": exc.to_detail(),
        },
    )


@app.get("/")
async def read_root():
    return {
        "message": "Resto Kardex API is running",
        "version": "1.0.0",
        "environment": settings.ENVIRONMENT
    }

@app.get("/health")
async def health_check():
    return {"status": "healthy", "environment": settings.ENVIRONMENT}

@app.on_event("startup")
async def startup_event():
    logger.info("Resto Kardex API starting up...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Debug mode: {settings.DEBUG}")

    # Create database tables (only for development - use migrations in production)
    if settings.ENVIRONMENT == "development":
        Base.metadata.create_all(bind=sync_engine)

@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Resto Kardex API shutting down...")
