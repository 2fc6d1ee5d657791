# drivekit/models/asset.py
import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from drivekit.connection import DatastoreConnection
from drivekit.models.enums import AssetType, SharingPermission
from drivekit.models.tables import Asset
from drivekit.query import Filters, Setters, Values

logger = logging.getLogger(__name__)

ASSET_COLUMNS = "asset_path, custom_path, asset_type, user_id, public"


class Assets:
    def __init__(self, db: DatastoreConnection):
        self.db = db

    def get_by_path(self, path: str, asset_type: AssetType, session: Optional[Session] = None) -> Asset:
        """Fetch an asset addressed by either its canonical or its custom path. Raises NotFound."""
        where = Filters("asset_path OR custom_path").add("AND asset_type").to_query(self.db.backend)
        return self.db.fetch_one(
            Asset, f"SELECT * FROM assets WHERE {where}", [path, path, asset_type.value], session=session
        )

    def get_by_asset_path(self, asset_path: str, asset_type: AssetType) -> Asset:
        """Fetch an asset by its canonical path only. Raises NotFound."""
        where = Filters("asset_path").add("AND asset_type").to_query(self.db.backend)
        return self.db.fetch_one(Asset, f"SELECT * FROM assets WHERE {where}", [asset_path, asset_type.value])

    def path_taken(self, path: str, session: Optional[Session] = None) -> bool:
        """True if any asset uses `path` as its canonical or custom path."""
        where = Filters("asset_path OR custom_path").to_query(self.db.backend)
        count = self.db.scalar(f"SELECT COUNT(*) FROM assets WHERE {where}", [path, path], session=session)
        return bool(count)

    def insert(self, session: Session, asset_path: str, asset_type: AssetType, user_id: int,
               public: bool, custom_path: Optional[str] = None) -> int:
        """Insert an asset row inside `session` and return its id."""
        values = Values(5).to_query(self.db.backend)
        self.db.execute(
            f"INSERT INTO assets ({ASSET_COLUMNS}) {values}",
            [asset_path, custom_path, asset_type.value, user_id, public],
            session=session,
        )
        where = Filters("asset_path").to_query(self.db.backend)
        return self.db.scalar(f"SELECT id FROM assets WHERE {where}", [asset_path], session=session)

    def insert_grant(self, session: Session, asset_id: int, user_id: int, permission: SharingPermission):
        values = Values(3).to_query(self.db.backend)
        self.db.execute(
            f"INSERT INTO asset_sharing (asset_id, user_id, permission) {values}",
            [asset_id, user_id, permission.value],
            session=session,
        )

    def set_public(self, asset_id: int, public: bool) -> int:
        backend = self.db.backend
        setters = Setters("public").to_query(backend)
        where = Filters("id", 2).to_query(backend)
        return self.db.execute(f"UPDATE assets SET {setters} WHERE {where}", [public, asset_id])

    def descendants(self, asset_path: str) -> List[Asset]:
        """Every asset whose canonical path lies under `asset_path`."""
        backend = self.db.backend
        sql = f"SELECT * FROM assets WHERE asset_path LIKE {backend.placeholder(1)} ESCAPE '!'"
        prefix = asset_path.replace("!", "!!").replace("%", "!%").replace("_", "!_")
        rows = self.db.fetch_all(Asset, sql, [f"{prefix}/%"])
        # LIKE is case-insensitive on some backends
        return [row for row in rows if row.asset_path.startswith(f"{asset_path}/")]

    def delete(self, session: Session, asset_ids: List[int]) -> int:
        """Delete asset rows and their sharing grants inside `session`."""
        backend = self.db.backend
        deleted = 0
        for asset_id in asset_ids:
            self.db.execute(
                f"DELETE FROM asset_sharing WHERE {Filters('asset_id').to_query(backend)}", [asset_id], session=session
            )
            deleted += self.db.execute(
                f"DELETE FROM assets WHERE {Filters('id').to_query(backend)}", [asset_id], session=session
            )
        return deleted
