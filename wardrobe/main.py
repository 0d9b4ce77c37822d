import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from dotenv import load_dotenv

# Load env from the repo root .env (tests configure their own)
root_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if "PYTEST_CURRENT_TEST" not in os.environ:
    load_dotenv(dotenv_path=os.path.join(root_dir, ".env"))

from fastapi import FastAPI
from starlette.exceptions import HTTPException as StarletteHTTPException
from fastapi.middleware.cors import CORSMiddleware

from wardrobe.api import admin, health, items, outfits, subscriptions, usage, webhooks
from wardrobe.core.config import settings, validate_config, cors_origins
from wardrobe.core.database import create_all_tables
from wardrobe.core.errors import (
    AppError,
    app_error_handler,
    http_error_handler,
    unhandled_exception_handler,
)
from wardrobe.core.logging import configure_logging
from wardrobe.core.middleware.request_id import RequestIdMiddleware
from wardrobe.services import Services, build_services


configure_logging(settings.ENV, settings.LOG_LEVEL)
validate_config(strict=settings.CONFIG_STRICT)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger = logging.getLogger("wardrobe")
    logger.info("Starting wardrobe backend...")
    create_all_tables()
    try:
        yield
    finally:
        logging.getLogger("wardrobe").info("Stopping wardrobe backend...")


def create_app(services: Optional[Services] = None) -> FastAPI:
    app = FastAPI(title="Wardrobe - Backend", lifespan=lifespan)
    app.state.services = services or build_services(settings)

    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins(settings),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    app.include_router(items.router)
    app.include_router(outfits.router)
    app.include_router(usage.router)
    app.include_router(subscriptions.router)
    app.include_router(webhooks.router)
    app.include_router(admin.router)
    app.include_router(health.router)
    return app


app = create_app()
