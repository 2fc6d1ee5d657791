# drivekit/storage.py
"""Physical side of asset records: files and folders under the storage root.

Creation inserts the record inside an open transaction, performs the
filesystem operation, and only then commits. A failed filesystem step rolls
the record back; a failed commit removes what was just created. Path
uniqueness is left to the store's unique constraint, so two racing creates of
one path end in one success and one DatabaseError.

Uploads are moved into place with `os.replace`, which is atomic only when the
temporary folder and the storage root share a filesystem. Across filesystems
the move falls back to a copy, and a crash mid-copy can leave a partial file.
"""
import errno
import logging
import os
import shutil
from pathlib import Path
from typing import List, Optional

from drivekit.connection import DatastoreConnection
from drivekit.access import AssetResolver
from drivekit.exceptions import (
    DuplicateKeyError,
    NotFound,
    ParsingError,
    PermissionDenied,
    StorageIOError,
)
from drivekit.models.asset import Assets
from drivekit.models.bucket import Buckets
from drivekit.models.enums import AssetType
from drivekit.models.options import CreateAssetOptions
from drivekit.models.tables import Asset, User
from drivekit.models.user import Users
from drivekit.paths import check_folder_size, clean_path, parent_paths, physical_path, scoped_path

logger = logging.getLogger(__name__)


class AssetStorage:
    def __init__(self, db: DatastoreConnection, storage_root: Path):
        self.db = db
        self.storage_root = Path(storage_root)
        self.assets = Assets(db)
        self.users = Users(db)
        self.buckets = Buckets(db, self.storage_root)
        self.resolver = AssetResolver(db, self.storage_root)

    def create(self, opts: CreateAssetOptions) -> Asset:
        """Create an asset's file or folder and record it.

        Returns:
            The new asset record.

        Raises:
            ParsingError: For malformed paths, or sharing on a public asset.
            PermissionDenied: For paths using the reserved secrets name, paths
                the owner may not write to, or a full user folder or bucket.
            DuplicateKeyError: If the path or custom path is already in use.
            StorageIOError: If the filesystem operation fails.
        """
        if opts.sharing and opts.public:
            raise ParsingError("sharing can only be set on private assets")

        owner = self.users.get(opts.user)
        asset_path = scoped_path(opts.path, owner.root_folder)
        custom_path = clean_path(opts.custom_path) if opts.custom_path else None
        target = physical_path(self.storage_root, asset_path)

        self._authorize_destination(owner, asset_path)
        incoming = os.path.getsize(opts.tmp_file) if opts.tmp_file else 0
        self._check_quota(owner, asset_path, incoming)

        grantees = [(self.users.get_by_pid(grant.user_id), grant.permission) for grant in opts.sharing]

        with self.db.get_session() as session:
            for path in filter(None, (asset_path, custom_path)):
                if self.assets.path_taken(path, session=session):
                    raise DuplicateKeyError(f"path '{path}' is already used by another asset")

            asset_id = self.assets.insert(
                session, asset_path, opts.asset_type, owner.id, opts.public, custom_path=custom_path
            )
            for grantee, permission in grantees:
                self.assets.insert_grant(session, asset_id, grantee.id, permission)

            created = self._materialize(owner, target, opts)
            try:
                session.commit()
            except Exception:
                self._discard(created)
                raise

        asset = self.assets.get_by_asset_path(asset_path, opts.asset_type)
        logger.info(f"User {owner.pid} created {opts.asset_type.value} '{asset_path}'")
        return asset

    def _authorize_destination(self, owner: User, asset_path: str):
        """Refuse creating where the owner may not write.

        The nearest recorded ancestor folder decides: its owner, an admin, or a
        holder of a write grant on it may create inside. Without a recorded
        ancestor, paths at or under another user's root folder are refused.
        """
        if owner.is_admin:
            return

        for parent in parent_paths(asset_path):
            try:
                folder = self.assets.get_by_asset_path(parent, AssetType.FOLDER)
            except NotFound:
                continue
            if not self.resolver.can_write(folder, owner):
                logger.warning(f"User {owner.pid} denied writing into '{folder.asset_path}'")
                raise PermissionDenied("permission denied")
            return

        own_root = clean_path(owner.root_folder) if owner.root_folder else None
        for prefix in [asset_path] + parent_paths(asset_path):
            if prefix == own_root:
                continue
            if any(user.id != owner.id for user in self.users.with_root_folder(prefix)):
                logger.warning(f"User {owner.pid} denied writing into the root folder '{prefix}'")
                raise PermissionDenied("permission denied")

    def _check_quota(self, owner: User, asset_path: str, incoming: int):
        """Refuse a create that would overflow the owner's folder or the enclosing bucket."""
        if owner.root_folder and owner.folder_max_size is not None:
            root = physical_path(self.storage_root, clean_path(owner.root_folder))
            used = check_folder_size(str(root)) if root.is_dir() else 0
            if used + incoming > owner.folder_max_size:
                logger.warning(f"User {owner.pid} folder is full ({used} of {owner.folder_max_size} bytes)")
                raise PermissionDenied("not enough space in user folder")

        for parent in parent_paths(asset_path):
            try:
                bucket = self.buckets.for_partition(parent)
            except NotFound:
                continue
            if not self.buckets.has_room(bucket, incoming):
                logger.warning(f"Bucket {bucket.pid} has no room for {incoming} bytes")
                raise PermissionDenied("not enough space in bucket")
            return

    def _materialize(self, owner: User, target: Path, opts: CreateAssetOptions) -> Path:
        """Perform the filesystem side of a create. Returns the created path."""
        if owner.root_folder:
            try:
                physical_path(self.storage_root, clean_path(owner.root_folder)).mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise StorageIOError(f"unable to create root folder for user {owner.pid}: {e}") from e

        if target.exists():
            raise StorageIOError(f"'{target}' already exists on the filesystem")

        try:
            if opts.create_parents:
                target.parent.mkdir(parents=True, exist_ok=True)
            elif not target.parent.is_dir():
                raise StorageIOError(f"parent folder of '{opts.path}' does not exist")

            if opts.asset_type == AssetType.FOLDER:
                target.mkdir()
            elif opts.tmp_file:
                self._move_upload(opts.tmp_file, target)
            else:
                target.touch(exist_ok=False)
        except OSError as e:
            raise StorageIOError(f"unable to create '{opts.path}': {e}") from e
        return target

    def _move_upload(self, tmp_file: str, target: Path):
        try:
            os.replace(tmp_file, target)
        except OSError as e:
            if e.errno != errno.EXDEV:
                raise
            logger.warning(f"Upload folder and storage root are on different filesystems; copying into '{target}'")
            shutil.move(tmp_file, target)

    def _discard(self, created: Optional[Path]):
        if created is None or not created.exists():
            return
        try:
            if created.is_dir():
                shutil.rmtree(created)
            else:
                created.unlink()
        except OSError as e:
            logger.error(f"Failed to remove '{created}' after an aborted create: {e}")

    def _managed_asset(self, asset_type: AssetType, path: str, requester: User) -> Asset:
        """Look up an asset the requester may modify (owner or admin)."""
        asset = self.resolver.lookup(asset_type, path)
        if not self.resolver.can_manage(asset, requester):
            logger.warning(f"User {requester.pid} denied management of '{asset.asset_path}'")
            raise PermissionDenied("permission denied")
        return asset

    def delete(self, asset_type: AssetType, path: str, requester: User) -> int:
        """Delete an asset (a folder with everything recorded under it). Returns rows removed."""
        asset = self._managed_asset(asset_type, path, requester)
        ids: List[int] = [asset.id]
        if asset_type == AssetType.FOLDER:
            ids.extend(child.id for child in self.assets.descendants(asset.asset_path))

        target = physical_path(self.storage_root, asset.asset_path)
        with self.db.get_session() as session:
            deleted = self.assets.delete(session, ids)
            try:
                if target.is_dir():
                    shutil.rmtree(target)
                elif target.exists():
                    target.unlink()
                else:
                    logger.warning(f"Deleting record of '{asset.asset_path}' with no file behind it")
            except OSError as e:
                raise StorageIOError(f"unable to delete '{asset.asset_path}': {e}") from e
        logger.info(f"User {requester.pid} deleted {asset_type.value} '{asset.asset_path}'")
        return deleted

    def set_visibility(self, asset_type: AssetType, path: str, requester: User, public: bool) -> Asset:
        asset = self._managed_asset(asset_type, path, requester)
        if not self.assets.set_public(asset.id, public):
            raise NotFound("asset not found")
        asset.public = public
        logger.info(f"User {requester.pid} set '{asset.asset_path}' public={public}")
        return asset
