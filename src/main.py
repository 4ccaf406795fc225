"""Stock ledger API: warehouses, items, batches, serials, transactions and the daily ledger."""
import logging
from contextlib import asynccontextmanager

from fastapi import APIRouter, FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import IntegrityError

from src.core.audit.router import router as audit_router
from src.core.config import settings
from src.core.database.session import engine
from src.core.exceptions import AppException
from src.core.exceptions.handlers import (
    app_exception_handler,
    http_exception_handler,
    sqlalchemy_db_error_handler,
    validation_exception_handler,
)
from src.core.inventory_settings.router import router as inventory_settings_router
from src.modules.batches.router import router as batches_router
from src.modules.items.router import router as items_router
from src.modules.ledger.router import router as ledger_router
from src.modules.serials.router import router as serials_router
from src.modules.transactions.router import router as transactions_router

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Stock ledger starting (env=%s)", settings.app_env)
    yield
    await engine.dispose()


def _api_router() -> APIRouter:
    api = APIRouter(prefix=API_PREFIX)
    for router in (
        inventory_settings_router,
        items_router,
        batches_router,
        serials_router,
        transactions_router,
        ledger_router,
        audit_router,
    ):
        api.include_router(router)
    return api


def create_app() -> FastAPI:
    app = FastAPI(
        title="Stock Ledger",
        description="Multi-warehouse stock keeping with batches, serials and a daily ledger",
        version="0.1.0",
        debug=settings.debug,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(IntegrityError, sqlalchemy_db_error_handler)

    @app.get("/health")
    async def health_check():
        return {"status": "healthy"}

    app.include_router(_api_router())
    return app


app = create_app()
