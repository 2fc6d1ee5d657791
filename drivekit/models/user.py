# drivekit/models/user.py
import logging
import shutil
import uuid
from pathlib import Path
from typing import List, Optional

import bcrypt

from drivekit.connection import DatastoreConnection
from drivekit.exceptions import NotFound, PermissionDenied
from drivekit.models.asset import Assets
from drivekit.models.enums import AssetType, SharingPermission, UserRole
from drivekit.models.options import CreateUserOptions
from drivekit.models.tables import Asset, AssetSharing, User
from drivekit.paths import clean_path, physical_path
from drivekit.query import Filters

logger = logging.getLogger(__name__)


class Users:
    def __init__(self, db: DatastoreConnection):
        self.db = db

    def get(self, user_id: int) -> User:
        where = Filters("id").to_query(self.db.backend)
        return self.db.fetch_one(User, f"SELECT * FROM users WHERE {where}", [user_id])

    def get_by_pid(self, pid: str) -> User:
        where = Filters("pid").to_query(self.db.backend)
        return self.db.fetch_one(User, f"SELECT * FROM users WHERE {where}", [pid])

    def create_by_client(self, client_id: int, opts: CreateUserOptions) -> str:
        """Create a user managed by a client and return its public id.

        The user's partition, if any, becomes the root folder every asset path
        of the user is scoped under.
        """
        root_folder = clean_path(opts.partition) if opts.partition else None
        user = User(
            pid=str(uuid.uuid4()),
            role=opts.role.value,
            client_id=client_id,
            root_folder=root_folder,
            folder_max_size=opts.partition_size,
        )
        with self.db.get_session() as session:
            session.add(user)
        logger.info(f"Client {client_id} created user {user.pid} with role {user.role}")
        return user.pid

    def create_admin(self, password: Optional[str] = None) -> User:
        """Create a standalone admin user, optionally with a bcrypt-hashed password."""
        hashed_password = None
        if password:
            hashed_password = bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")
        user = User(pid=str(uuid.uuid4()), role=UserRole.ADMIN.value, hashed_password=hashed_password)
        with self.db.get_session() as session:
            session.add(user)
        logger.info(f"Created admin user {user.pid}")
        return user

    def authenticate(self, pid: str, password: str) -> Optional[User]:
        """Check a user's password. Returns the user, or None on mismatch."""
        try:
            user = self.get_by_pid(pid)
        except NotFound:
            logger.warning(f"Authentication failed for unknown user: {pid}")
            return None
        if user.hashed_password and bcrypt.checkpw(password.encode("utf-8"), user.hashed_password.encode("utf-8")):
            return user
        logger.warning(f"Authentication failed for user: {pid}")
        return None

    def with_root_folder(self, root_folder: str) -> List[User]:
        where = Filters("root_folder").to_query(self.db.backend)
        return self.db.fetch_all(User, f"SELECT * FROM users WHERE {where}", [root_folder])

    def delete(self, user: User, storage_root: Optional[Path] = None):
        """Delete a user with its assets' records, its buckets and every grant involving it.

        With `storage_root`, the user's root folder and asset files are removed
        once the records are gone. Failures there are logged, not raised:
        the user no longer exists at that point.
        """
        backend = self.db.backend
        owned = self.db.fetch_all(
            Asset, f"SELECT * FROM assets WHERE {Filters('user_id').to_query(backend)}", [user.id]
        )
        assets = Assets(self.db)
        # written into the user's folders by grantees; their files go with the folder
        nested = sorted({
            child.id
            for folder in owned if folder.asset_type == AssetType.FOLDER.value
            for child in assets.descendants(folder.asset_path) if child.user_id != user.id
        })
        with self.db.get_session() as session:
            assets.delete(session, nested)
            self.db.execute(
                f"DELETE FROM asset_sharing WHERE {Filters('user_id').to_query(backend)}"
                f" OR asset_id IN (SELECT id FROM assets WHERE {Filters('user_id', 2).to_query(backend)})",
                [user.id, user.id],
                session=session,
            )
            self.db.execute(
                f"DELETE FROM assets WHERE {Filters('user_id').to_query(backend)}", [user.id], session=session
            )
            buckets = self.db.execute(
                f"DELETE FROM buckets WHERE {Filters('user_id').to_query(backend)}", [user.id], session=session
            )
            self.db.execute(
                f"DELETE FROM users WHERE {Filters('id').to_query(backend)}", [user.id], session=session
            )
        logger.info(f"Deleted user {user.pid} with {len(owned)} assets ({len(nested)} nested) and {buckets} buckets")

        if storage_root is not None:
            paths = [asset.asset_path for asset in owned]
            if user.root_folder:
                paths.append(clean_path(user.root_folder))
            self._remove_files(Path(storage_root), paths)

    def _remove_files(self, storage_root: Path, asset_paths: List[str]):
        # shortest first, so a removed folder takes its children with it
        for asset_path in sorted(asset_paths, key=len):
            target = physical_path(storage_root, asset_path)
            try:
                if target.is_dir():
                    shutil.rmtree(target)
                elif target.exists():
                    target.unlink()
            except OSError as e:
                logger.error(f"Failed to remove '{target}' of a deleted user: {e}")

    def delete_by_client(self, client_id: int, pid: str, storage_root: Optional[Path] = None):
        """Delete a user on behalf of a client.

        Raises:
            PermissionDenied: If the user belongs to another client or is an admin.
        """
        user = self.get_by_pid(pid)
        if user.client_id is not None and user.client_id != client_id:
            logger.warning(f"Client {client_id} attempted to delete user {pid} of client {user.client_id}")
            raise PermissionDenied("client cannot delete this user")
        if user.is_admin:
            raise PermissionDenied("client cannot delete admin")
        self.delete(user, storage_root)

    def can_read_asset(self, user_id: int, asset_id: int) -> bool:
        """True if a sharing grant gives the user read access to the asset."""
        return self._has_grant(user_id, asset_id, "read")

    def can_write_asset(self, user_id: int, asset_id: int) -> bool:
        return self._has_grant(user_id, asset_id, "write")

    def _has_grant(self, user_id: int, asset_id: int, operation: str) -> bool:
        where = Filters("asset_id").add("AND user_id").to_query(self.db.backend)
        try:
            grant = self.db.fetch_one(AssetSharing, f"SELECT * FROM asset_sharing WHERE {where}", [asset_id, user_id])
        except NotFound:
            return False
        return SharingPermission(grant.permission).grants(operation)
