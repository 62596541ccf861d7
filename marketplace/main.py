"""
ASGI entry point.

Run locally with:
    uvicorn marketplace.main:app --reload
"""

import logging

from fastapi import FastAPI

from marketplace import __version__
from marketplace.api.routes import access, catalog, health, prices, purchases
from marketplace.config import LOG_LEVEL
from marketplace.platform.errors import AppError, ErrorHandlerMiddleware, app_error_handler

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)


def create_app() -> FastAPI:
    app = FastAPI(title="Asset Marketplace", version=__version__)

    app.add_middleware(ErrorHandlerMiddleware)
    app.add_exception_handler(AppError, app_error_handler)

    app.include_router(health.router)
    app.include_router(access.router)
    app.include_router(prices.router)
    app.include_router(purchases.router)
    app.include_router(catalog.router)
    return app


app = create_app()
