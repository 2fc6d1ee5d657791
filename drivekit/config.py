# drivekit/config.py
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

from drivekit.app_secrets import SECRETS_FILENAME
from drivekit.profile import DatabaseProfile


class Settings(BaseSettings):
    # Relational store (postgresql+..., mysql+..., sqlite:///...)
    database_url: str = "sqlite:///drivekit.db"
    # Takes precedence over database_url, e.g. '.env.postgres_prod' holding PG_USERNAME, PG_PASSWORD, ...
    database_env_file: Optional[str] = None

    # Filesystem layout
    storage_root: str = "storage"
    tmp_dir: str = "tmp"
    secrets_file: Optional[str] = None  # defaults to <storage_root>/<SECRETS_FILENAME>

    # Auth
    bearer_key: str = "Bearer"
    client_header: str = "x-drive-client"
    access_exp: int = 900  # seconds
    refresh_exp: int = 86400  # seconds

    # Server
    max_upload_size: int = 10  # MB
    port: int = 8000

    log_level: str = "INFO"
    log_file: Optional[str] = None

    model_config = SettingsConfigDict(
        env_prefix="DRIVEKIT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @property
    def secrets_path(self) -> Path:
        if self.secrets_file:
            return Path(self.secrets_file)
        return Path(self.storage_root) / SECRETS_FILENAME

    @property
    def database_profile(self) -> DatabaseProfile:
        if self.database_env_file:
            return DatabaseProfile.from_env_file(self.database_env_file)
        return DatabaseProfile.from_url(self.database_url)

    @property
    def max_upload_bytes(self) -> int:
        return mb_to_bytes(self.max_upload_size)


def mb_to_bytes(value: int) -> int:
    return value * 1024 * 1000


@lru_cache
def get_settings() -> Settings:
    return Settings()
