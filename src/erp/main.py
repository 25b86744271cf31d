import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from tortoise import Tortoise
from tortoise.contrib.fastapi import tortoise_exception_handlers

from .common.errors import (
    ConflictError,
    ERPError,
    ExhaustedRetriesError,
    InvalidOperationError,
    NotFoundError,
    StoreError,
    ValidationError,
)
from .core import logging_config  # noqa: F401 installs the "erp" handlers
from .core.config import TORTOISE_ORM_CONFIG
from .core.container import build_erp
from .features.inventory.router import router as inventory_router
from .features.suppliers.router import router as suppliers_router
from .features.purchasing.router import router as purchasing_router
from .features.sales.router import router as sales_router
from .features.financials.router import router as financials_router
from .features.reports.router import router as reports_router

logger = logging.getLogger("erp.main")  # This logger will inherit from 'erp'

ERROR_STATUS_CODES = {
    ValidationError: status.HTTP_400_BAD_REQUEST,
    InvalidOperationError: status.HTTP_400_BAD_REQUEST,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    ConflictError: status.HTTP_409_CONFLICT,
    ExhaustedRetriesError: status.HTTP_503_SERVICE_UNAVAILABLE,
    StoreError: status.HTTP_502_BAD_GATEWAY,
}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan context manager.

    Connects to the database, then builds the repositories and loads their caches.
    """
    logger.info("Starting application...")
    await Tortoise.init(config=TORTOISE_ORM_CONFIG)
    logger.info("Tortoise-ORM has been initialized.")
    app.state.erp = build_erp()
    await app.state.erp.fetch_all()

    yield

    await Tortoise.close_connections()
    logger.info("Tortoise-ORM connections have been closed.")


async def erp_error_handler(request: Request, exc: ERPError) -> JSONResponse:
    status_code = next(
        (code for error_type, code in ERROR_STATUS_CODES.items() if isinstance(exc, error_type)),
        status.HTTP_500_INTERNAL_SERVER_ERROR,
    )
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=status_code, content={"detail": exc.message})


app = FastAPI(
    title="Small Business ERP API",
    description="API for inventory, purchasing, sales and financial records.",
    version="0.1.0",
    exception_handlers={**tortoise_exception_handlers(), ERPError: erp_error_handler},
    lifespan=lifespan,
)


@app.get("/")
async def read_root(request: Request):
    """
    Root endpoint for the API.
    """
    client_host = request.client.host if request.client else "unknown client"
    logger.info(f"Root endpoint '/' accessed by {client_host}")
    return {"message": "Welcome to the Small Business ERP API!"}


app.include_router(inventory_router, prefix="/api/v1")
app.include_router(suppliers_router, prefix="/api/v1")
app.include_router(purchasing_router, prefix="/api/v1")
app.include_router(sales_router, prefix="/api/v1")
app.include_router(financials_router, prefix="/api/v1")
app.include_router(reports_router, prefix="/api/v1")
