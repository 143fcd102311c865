import logging

from fastapi import FastAPI

from . import api, pages
from .config import Settings, settings
from .logging_config import configure_logging
from .registry import FileRegistry
from .storage import Storage, create_storage

logger = logging.getLogger(__name__)


def create_app(app_settings: Settings | None = None, storage: Storage | None = None) -> FastAPI:
    app_settings = app_settings or settings
    configure_logging(app_settings.log_level)

    storage = storage or create_storage(app_settings)

    app = FastAPI(title="Report Share", version="1.0.0")
    app.state.settings = app_settings
    app.state.storage = storage
    app.state.registry = FileRegistry(storage, app_settings.slug_strategy)

    @app.on_event("startup")
    def _startup():
        storage.init()
        logger.info("Storage backend %s ready", storage.name)

    @app.on_event("shutdown")
    def _shutdown():
        storage.close()

    app.include_router(api.router)
    # the catch-all /{slug} viewer lives here, so pages go last
    app.include_router(pages.router)
    return app
