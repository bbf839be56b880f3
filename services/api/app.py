from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import APIRouter, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import config
from .logging_config import configure_logging
from .photo_check.deps import build_photo_check_application_deps, default_record_store_deps
from .photo_check_record_store import PhotoCheckRecordStoreDeps
from .request_context import request_id_middleware
from .routes.misc_health_routes import register_misc_health_routes
from .routes.photo_check_routes import build_router as build_photo_check_router

_log = logging.getLogger(__name__)


@asynccontextmanager
async def app_lifespan(_app):
    configure_logging()
    _log.info(
        "photo-check api starting; records at %s, %d prefer-latest provider(s)",
        config.PHOTO_CHECK_RECORDS_PATH,
        len(config.PHOTO_CHECK_PREFER_LATEST_PROVIDERS),
    )
    yield


def create_app(store_deps: Optional[PhotoCheckRecordStoreDeps] = None) -> FastAPI:
    store = store_deps or default_record_store_deps()
    app = FastAPI(title="Photo Check API", version="0.1.0", lifespan=app_lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_credentials=config.CORS_ALLOW_CREDENTIALS,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.middleware("http")(request_id_middleware)

    misc = APIRouter()
    register_misc_health_routes(misc, data_dir=config.DATA_DIR, records_path=store.records_path)
    app.include_router(misc)
    app.include_router(build_photo_check_router(build_photo_check_application_deps(store)))
    return app


app = create_app()
