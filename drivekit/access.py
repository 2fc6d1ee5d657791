# drivekit/access.py
"""Authorization of asset reads and writes.

`AssetResolver.resolve` decides, for a requester (or an anonymous caller) and
an asset type and path, whether the asset may be read, and returns it with its
physical location. Folders additionally get the list of direct children the
requester may see; every child is checked on its own record.
"""
import html
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional
from urllib.parse import quote

from drivekit.app_secrets import SECRETS_FILENAME
from drivekit.connection import DatastoreConnection
from drivekit.exceptions import NotFound, PermissionDenied
from drivekit.models.asset import Assets
from drivekit.models.enums import AssetType
from drivekit.models.tables import Asset, User
from drivekit.models.user import Users
from drivekit.paths import physical_path

logger = logging.getLogger(__name__)


@dataclass
class FolderEntry:
    """A visible child of a folder: the path it is addressed by and its display label."""
    path: str
    name: str
    asset_type: AssetType

    def html(self) -> str:
        return f"<li><a href='/{self.asset_type.value}/{quote(self.path)}'>{html.escape(self.name)}</a></li>"


@dataclass
class ResolvedAsset:
    asset: Asset
    location: Path
    entries: List[FolderEntry] = field(default_factory=list)

    @property
    def asset_type(self) -> AssetType:
        return AssetType(self.asset.asset_type)


class AssetResolver:
    def __init__(self, db: DatastoreConnection, storage_root: Path):
        self.db = db
        self.storage_root = Path(storage_root)
        self.assets = Assets(db)
        self.users = Users(db)

    def lookup(self, asset_type: AssetType, path: str) -> Asset:
        """Find the asset addressed by `path`, honoring path concealment.

        Raises:
            PermissionDenied: If the path is the reserved secrets filename.
            NotFound: If no asset matches, or the asset has a custom path and
                was addressed by its canonical one.
        """
        if path.endswith("/"):
            path = path[:-1]

        if path == SECRETS_FILENAME:
            logger.warning("Refused access to the secrets file")
            raise PermissionDenied("access denied")

        asset = self.assets.get_by_path(path, asset_type)

        # A custom path conceals the canonical one; don't confirm it exists.
        if asset.custom_path and asset.custom_path != path:
            raise NotFound("asset not found")
        return asset

    def can_read(self, asset: Asset, requester: Optional[User]) -> bool:
        if asset.public:
            return True
        if requester is None:
            return False
        if requester.id == asset.user_id:
            return True
        return self.users.can_read_asset(requester.id, asset.id)

    def can_manage(self, asset: Asset, requester: Optional[User]) -> bool:
        if requester is None:
            return False
        return requester.is_admin or requester.id == asset.user_id

    def can_write(self, asset: Asset, requester: Optional[User]) -> bool:
        """Managers of an asset, and users holding a write grant on it."""
        if self.can_manage(asset, requester):
            return True
        return requester is not None and self.users.can_write_asset(requester.id, asset.id)

    def resolve(self, asset_type: AssetType, path: str, requester: Optional[User] = None) -> ResolvedAsset:
        """Return the asset at `path` if `requester` may read it.

        Args:
            asset_type: Whether a file or a folder is requested.
            path: Canonical or custom path of the asset.
            requester: Authenticated user, or None for anonymous access.

        Returns:
            ResolvedAsset; for folders `entries` holds the visible children
            sorted by name.

        Raises:
            PermissionDenied: Reserved name, or a private asset the requester
                neither owns nor has been granted.
            NotFound: No matching record, a concealed canonical path, or a
                record whose file or folder is missing on disk.
        """
        asset = self.lookup(asset_type, path)

        if not self.can_read(asset, requester):
            logger.warning(f"Denied read of asset {asset.id} to {'user ' + str(requester.id) if requester else 'anonymous'}")
            raise PermissionDenied("permission denied")

        location = physical_path(self.storage_root, asset.asset_path)
        exists = location.is_file() if asset_type == AssetType.FILE else location.is_dir()
        if not exists:
            logger.error(f"Asset {asset.id} has a record but nothing at {location}")
            raise NotFound(
                f"asset record found but path '{path}' does not exist in filesystem for '{asset_type.value}'."
            )

        resolved = ResolvedAsset(asset=asset, location=location)
        if asset_type == AssetType.FOLDER:
            resolved.entries = self.list_folder(asset, location, requester)
        return resolved

    def list_folder(self, folder: Asset, location: Path, requester: Optional[User]) -> List[FolderEntry]:
        """Direct children of a folder that `requester` may read, sorted by name.

        Entries without a record are not assets and are skipped, as are
        concealed children (they are only reachable by their custom path) and
        entries removed while scanning.
        """
        try:
            names = sorted(os.listdir(location))
        except FileNotFoundError:
            return []

        entries = []
        for name in names:
            child = location / name
            if child.is_file():
                child_type = AssetType.FILE
            elif child.is_dir():
                child_type = AssetType.FOLDER
            else:
                continue

            child_path = f"{folder.asset_path}/{name}"
            try:
                asset = self.assets.get_by_asset_path(child_path, child_type)
            except NotFound:
                continue
            if asset.custom_path:
                continue
            if self.can_read(asset, requester):
                entries.append(FolderEntry(path=asset.url_path(), name=name, asset_type=child_type))
        return entries


def render_listing(entries: List[FolderEntry]) -> str:
    """HTML page for a folder listing."""
    if entries:
        content = "<ul>{}</ul>".format("\n".join(entry.html() for entry in entries))
    else:
        content = "<p>No content found.</p>"
    return f"<!DOCTYPE html>\n<html>\n{content}\n</html>\n"
