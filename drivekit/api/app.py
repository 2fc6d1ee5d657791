# drivekit/api/app.py
import logging
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from drivekit.api.assets import AssetAPI
from drivekit.api.clients import ClientAPI
from drivekit.app_secrets import AppSecrets
from drivekit.config import Settings, get_settings
from drivekit.connection import DatastoreConnection
from drivekit.exceptions import DriveError, ServerError

logger = logging.getLogger(__name__)


async def drive_error_handler(request: Request, exc: DriveError) -> JSONResponse:
    if isinstance(exc, ServerError):
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


def create_app(settings: Optional[Settings] = None, secrets: Optional[AppSecrets] = None,
               db: Optional[DatastoreConnection] = None) -> FastAPI:
    """Build the API application.

    Args:
        settings: Defaults to the cached environment settings.
        secrets: Defaults to the secrets file named by the settings.
        db: Defaults to a connection built from `settings.database_url`; its
            tables are created if missing.
    """
    settings = settings or get_settings()
    secrets = secrets or AppSecrets.load(settings.secrets_path)
    if db is None:
        db = DatastoreConnection(settings.database_profile)
        db.create_tables()

    Path(settings.storage_root).mkdir(parents=True, exist_ok=True)

    app = FastAPI(title="drivekit", version="0.1.0")
    app.state.settings = settings
    app.state.secrets = secrets
    app.state.db = db
    app.add_exception_handler(DriveError, drive_error_handler)

    # client routes first: the asset route matches any two-segment path
    app.include_router(ClientAPI().router)
    app.include_router(AssetAPI().router)

    logger.info(f"drivekit API ready (storage root: {settings.storage_root})")
    return app
