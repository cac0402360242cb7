import os
import re
from functools import lru_cache
from pathlib import Path

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env file early so env vars are available for YAML interpolation
_env_file = Path.cwd() / ".env"
load_dotenv(_env_file)

# Pattern to match $VAR_NAME environment variable references
ENV_VAR_PATTERN = re.compile(r"\$([A-Z_][A-Z0-9_]*)")


def interpolate_env_vars(value):
    """Recursively replace $VAR_NAME with os.environ values."""
    if isinstance(value, str):

        def replace(match):
            var = match.group(1)
            val = os.environ.get(var)
            if val is None:
                raise ValueError(f"Environment variable ${var} not set")
            return val

        return ENV_VAR_PATTERN.sub(replace, value)
    elif isinstance(value, dict):
        return {k: interpolate_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [interpolate_env_vars(item) for item in value]
    return value


def get_config_path() -> Path:
    """Return the app.yaml path, overridable with DAMWORKS_CONFIG."""
    override = os.environ.get("DAMWORKS_CONFIG")
    if override:
        return Path(override)
    return Path.cwd() / "app.yaml"


def load_app_config(config_path: Path | None = None) -> dict:
    """Load and parse app.yaml with environment variable interpolation."""
    config_path = config_path or get_config_path()

    if not config_path.exists():
        raise FileNotFoundError(f"app.yaml not found at {config_path}")

    with open(config_path, "r") as f:
        config = yaml.safe_load(f) or {}

    return interpolate_env_vars(config)


class DatabaseConfig(BaseModel):
    """Database connection configuration."""

    url: str = "sqlite+aiosqlite:///./damworks.db"
    pool_size: int = 5
    pool_overflow: int = 10
    pool_timeout: int = 30
    pool_pre_ping: bool = True
    echo: bool = False
    create_all: bool = False


class S3Config(BaseModel):
    """Settings for an S3-protocol store."""

    bucket: str = ""
    region: str = "us-east-1"
    endpoint_url: str = ""
    access_key_id: str = ""
    secret_access_key: str = ""
    prefix: str = ""
    force_path_style: bool = False


class SupabaseStorageConfig(BaseModel):
    """Settings for the managed Supabase Storage service."""

    url: str = ""
    service_key: str = ""
    bucket: str = "dam-assets"
    timeout: float = 30.0


class StoreConfig(BaseModel):
    """A single named store."""

    backend: str = "local"
    local_path: str = "./storage"
    max_upload_size: int = 500 * 1024 * 1024
    s3: S3Config = S3Config()
    supabase: SupabaseStorageConfig = SupabaseStorageConfig()


class StorageConfig(BaseModel):
    """Named stores plus the one new uploads land in."""

    default: str = "default"
    stores: dict[str, StoreConfig] = {"default": StoreConfig()}
    signed_url_ttl: int = 300


class QueueConfig(BaseModel):
    """Job queue driver settings."""

    driver: str = "database"
    default_max_attempts: int = 5


class WorkerConfig(BaseModel):
    """Processing worker settings."""

    worker_id: str = ""
    poll_interval: float = 2.0
    retry_delay: float = 30.0
    stale_after: float = 900.0
    reclaim_interval: float = 60.0
    temp_dir: str = ""
    temp_max_age: float = 3600.0
    ffmpeg_binary: str = "ffmpeg"
    ffprobe_binary: str = "ffprobe"
    command_timeout: float = 120.0
    frame_offset: float = 1.0


class ThumbnailConfig(BaseModel):
    """Bounding box and encoder settings for generated thumbnails."""

    max_width: int = 400
    max_height: int = 400
    quality: int = 85


class ApiTokenConfig(BaseModel):
    """A static bearer token mapped to a caller identity."""

    token: str
    caller_id: str
    role: str = "viewer"


class AuthConfig(BaseModel):
    """Authentication configuration."""

    tokens: list[ApiTokenConfig] = []


class LoggingConfig(BaseModel):
    level: str = "INFO"
    format: str = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


class LogfireConfig(BaseModel):
    """Optional Pydantic Logfire tracing."""

    enabled: bool = False
    service_name: str = "damworks"
    environment: str = ""
    sample_rate: float = 1.0
    console: bool = False


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", env_prefix="DAMWORKS_", extra="ignore"
    )

    # Application
    debug: bool = False
    secret_key: str = "change-me"

    # Sections loaded from app.yaml
    db: DatabaseConfig = DatabaseConfig()
    storage: StorageConfig = StorageConfig()
    queue: QueueConfig = QueueConfig()
    worker: WorkerConfig = WorkerConfig()
    thumbnails: ThumbnailConfig = ThumbnailConfig()
    auth: AuthConfig = AuthConfig()
    logging: LoggingConfig = LoggingConfig()
    logfire: LogfireConfig = LogfireConfig()


_SECTIONS: dict[str, type[BaseModel]] = {
    "db": DatabaseConfig,
    "storage": StorageConfig,
    "queue": QueueConfig,
    "worker": WorkerConfig,
    "thumbnails": ThumbnailConfig,
    "auth": AuthConfig,
    "logging": LoggingConfig,
    "logfire": LogfireConfig,
}


def build_settings(app_config: dict | None = None) -> Settings:
    """Merge an app.yaml mapping over the environment-derived settings."""
    base_settings = Settings()
    if not app_config:
        return base_settings

    updates = {}
    for name, model in _SECTIONS.items():
        if name in app_config:
            updates[name] = model(**(app_config[name] or {}))

    for key in ("debug", "secret_key"):
        if key in app_config:
            updates[key] = app_config[key]

    if updates:
        return base_settings.model_copy(update=updates)

    return base_settings


@lru_cache
def get_settings() -> Settings:
    """Load settings from .env and app.yaml."""
    try:
        app_config = load_app_config()
    except FileNotFoundError:
        return build_settings()

    return build_settings(app_config)
