"""ASGI application factory."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from advanced_alchemy.config import EngineConfig
from advanced_alchemy.extensions.litestar import (
    AsyncSessionConfig,
    SQLAlchemyAsyncConfig,
    SQLAlchemyPlugin,
)
from litestar import Litestar
from litestar.types import ASGIApp

from damworks.auth import AuthService, TokenAuthService
from damworks.config import DatabaseConfig, Settings, get_settings
from damworks.controllers import AssetController, DownloadController, QueueController
from damworks.db.base import Base
from damworks.lib import observability
from damworks.lib.exceptions import EXCEPTION_HANDLERS
from damworks.lib.queue.base import JobQueue
from damworks.lib.queue.manager import create_job_queue
from damworks.lib.storage.manager import StorageManager
from damworks.middleware.storage import StorageFilesMiddleware

logger = logging.getLogger(__name__)

# Headroom for multipart framing on top of the largest allowed file
MULTIPART_OVERHEAD = 1024 * 1024


def create_db_config(db: DatabaseConfig) -> SQLAlchemyAsyncConfig:
    if "sqlite" in db.url:
        engine_config = EngineConfig(echo=db.echo)
    else:
        engine_config = EngineConfig(
            pool_size=db.pool_size,
            max_overflow=db.pool_overflow,
            pool_timeout=db.pool_timeout,
            pool_pre_ping=db.pool_pre_ping,
            echo=db.echo,
        )

    return SQLAlchemyAsyncConfig(
        connection_string=db.url,
        metadata=Base.metadata,
        create_all=db.create_all,
        session_config=AsyncSessionConfig(expire_on_commit=False),
        engine_config=engine_config,
    )


def create_app(
    settings: Settings | None = None,
    *,
    db_config: SQLAlchemyAsyncConfig | None = None,
    storage_manager: StorageManager | None = None,
    job_queue: JobQueue | None = None,
    auth: AuthService | None = None,
) -> Litestar:
    """Build the Litestar app. Collaborators may be injected for tests."""
    settings = settings or get_settings()
    db_config = db_config or create_db_config(settings.db)
    storage_manager = storage_manager or StorageManager(settings.storage, secret_key=settings.secret_key)
    job_queue = job_queue or create_job_queue(settings.queue, db_config.get_session)
    auth = auth or TokenAuthService(settings.auth)

    max_upload = max(
        (store.max_upload_size for store in settings.storage.stores.values()),
        default=0,
    )

    async def on_startup(_app: Litestar) -> None:
        observability.instrument_sqlalchemy(db_config.get_engine())
        observability.instrument_httpx(settings)
        for store_cfg in settings.storage.stores.values():
            if store_cfg.backend == "local":
                Path(store_cfg.local_path).mkdir(parents=True, exist_ok=True)

    async def on_shutdown(_app: Litestar) -> None:
        await storage_manager.close()

    app = Litestar(
        route_handlers=[AssetController, DownloadController, QueueController],
        plugins=[SQLAlchemyPlugin(config=db_config)],
        on_startup=[on_startup],
        on_shutdown=[on_shutdown],
        exception_handlers=EXCEPTION_HANDLERS,
        request_max_body_size=max_upload + MULTIPART_OVERHEAD,
        debug=settings.debug,
    )
    app.state.settings = settings
    app.state.storage_manager = storage_manager
    app.state.job_queue = job_queue
    app.state.auth = auth
    return app


def create_asgi_app(settings: Settings | None = None, **kwargs: Any) -> ASGIApp:
    """The Litestar app with tracing and signed local-storage delivery in front."""
    settings = settings or get_settings()
    observability.configure_logging(settings)
    observability.configure(settings)
    app = create_app(settings, **kwargs)
    return StorageFilesMiddleware(
        observability.instrument_app(app),
        storage_config=settings.storage,
        secret_key=settings.secret_key,
    )


app = create_asgi_app()
