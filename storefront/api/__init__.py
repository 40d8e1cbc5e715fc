# storefront/api/__init__.py
from contextlib import asynccontextmanager

from fastapi import FastAPI

from storefront.api.routers import carts, customers, health, integrity, orders
from storefront.data.database import init_db
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    logger.info("Database tables ready")
    yield


def create_app() -> FastAPI:
    app = FastAPI(title="Storefront", version="1.0.0", lifespan=lifespan)

    app.include_router(health.router)
    app.include_router(customers.router)
    app.include_router(carts.router)
    app.include_router(integrity.router)
    app.include_router(orders.router)

    return app
