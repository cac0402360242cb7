"""Shared pytest fixtures."""

import io
import sys

import pytest
import pytest_asyncio
import yaml
from PIL import Image
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from damworks.auth import Caller
from damworks.config import (
    ApiTokenConfig,
    AuthConfig,
    DatabaseConfig,
    Settings,
    StorageConfig,
    StoreConfig,
    WorkerConfig,
)
from damworks.db.base import Base
import damworks.db.models  # noqa: F401
from damworks.lib.hooks import hooks
from damworks.lib.queue.database import DatabaseJobQueue
from damworks.lib.storage.manager import StorageManager

ADMIN_TOKEN = "admin-token"
VIEWER_TOKEN = "viewer-token"


def make_image_bytes(width=800, height=600, fmt="PNG", mode="RGB", color=(200, 30, 30)):
    """Encode a solid-colour test image."""
    img = Image.new(mode, (width, height), color)
    buf = io.BytesIO()
    img.save(buf, format=fmt)
    return buf.getvalue()


@pytest.fixture
def temp_app_yaml(tmp_path):
    """Create a temporary app.yaml file for testing."""
    config_path = tmp_path / "app.yaml"

    def _create_config(config: dict):
        with open(config_path, "w") as f:
            yaml.safe_dump(config, f)
        return config_path

    return _create_config


@pytest.fixture(autouse=True)
def clean_sys_path():
    """Ensure sys.path is restored after each test."""
    original_path = sys.path.copy()
    yield
    sys.path = original_path


@pytest.fixture
def clean_hooks():
    """Save and restore lifecycle hook registrations around a test."""
    original = {event: list(handlers) for event, handlers in hooks._handlers.items()}
    yield hooks
    hooks._handlers.clear()
    hooks._handlers.update(original)


@pytest.fixture
def settings(tmp_path):
    return Settings(
        secret_key="test-secret",
        db=DatabaseConfig(url=f"sqlite+aiosqlite:///{tmp_path / 'dam.db'}"),
        storage=StorageConfig(
            stores={"default": StoreConfig(local_path=str(tmp_path / "storage"), max_upload_size=1024 * 1024)},
        ),
        worker=WorkerConfig(
            worker_id="test-worker",
            retry_delay=0,
            temp_dir=str(tmp_path / "scratch"),
        ),
        auth=AuthConfig(
            tokens=[
                ApiTokenConfig(token=ADMIN_TOKEN, caller_id="admin-1", role="admin"),
                ApiTokenConfig(token=VIEWER_TOKEN, caller_id="viewer-1", role="viewer"),
            ]
        ),
    )


@pytest_asyncio.fixture
async def engine(settings):
    engine = create_async_engine(settings.db.url)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
def storage(settings):
    return StorageManager(settings.storage, secret_key=settings.secret_key)


@pytest_asyncio.fixture
async def backend(storage):
    return await storage.get()


@pytest.fixture
def queue(session_maker):
    return DatabaseJobQueue(session_maker)


@pytest.fixture
def caller():
    return Caller(id="admin-1", role="admin")


@pytest.fixture
def plugin_module(tmp_path):
    """Write a throwaway importable module and return its name."""
    created = []

    def _write(name: str, source: str) -> str:
        (tmp_path / f"{name}.py").write_text(source)
        sys.path.insert(0, str(tmp_path))
        created.append(name)
        return name

    yield _write
    for name in created:
        sys.modules.pop(name, None)


@pytest.fixture
def image_factory():
    """Expose :func:`make_image_bytes` to tests."""
    return make_image_bytes
