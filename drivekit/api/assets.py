# drivekit/api/assets.py
import logging
import mimetypes
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import FileResponse, HTMLResponse

from drivekit.access import AssetResolver, render_listing
from drivekit.api.dependencies import get_db, get_optional_user, get_settings
from drivekit.config import Settings
from drivekit.connection import DatastoreConnection
from drivekit.models.enums import AssetType
from drivekit.models.tables import User

logger = logging.getLogger(__name__)


class AssetAPI:
    """Read access to files and folder listings by path."""

    def __init__(self):
        self.router = APIRouter()
        self._register_routes()

    def _register_routes(self):
        self.router.get("/{asset_type}/{asset_path:path}")(self.get_asset)

    def get_asset(
        self,
        asset_type: str,
        asset_path: str,
        user: Optional[User] = Depends(get_optional_user),
        db: DatastoreConnection = Depends(get_db),
        settings: Settings = Depends(get_settings),
    ):
        resolver = AssetResolver(db, Path(settings.storage_root))
        resolved = resolver.resolve(AssetType.parse(asset_type), asset_path, user)

        if resolved.asset_type == AssetType.FOLDER:
            return HTMLResponse(render_listing(resolved.entries))

        media_type, _ = mimetypes.guess_type(resolved.location.name)
        return FileResponse(resolved.location, media_type=media_type or "application/octet-stream")
