# drivekit/models/bucket.py
import logging
import uuid
from pathlib import Path
from typing import Optional

from drivekit.connection import DatastoreConnection
from drivekit.exceptions import StorageIOError
from drivekit.models.options import CreateBucketOptions
from drivekit.models.tables import Bucket
from drivekit.paths import check_folder_size, clean_path, physical_path
from drivekit.query import Filters

logger = logging.getLogger(__name__)


class Buckets:
    def __init__(self, db: DatastoreConnection, storage_root: Path):
        self.db = db
        self.storage_root = Path(storage_root)

    def create(self, opts: CreateBucketOptions, client_id: Optional[int] = None,
               user_id: Optional[int] = None) -> str:
        """Create a bucket (and its partition folder, if any) and return its public id."""
        partition = clean_path(opts.partition) if opts.partition else None
        bucket = Bucket(
            pid=str(uuid.uuid4()),
            client_id=client_id,
            user_id=user_id,
            partition=partition,
            partition_size=opts.partition_size,
        )
        with self.db.get_session() as session:
            session.add(bucket)
            session.flush()
            if partition:
                try:
                    physical_path(self.storage_root, partition).mkdir(parents=True, exist_ok=True)
                except OSError as e:
                    raise StorageIOError(f"unable to create partition folder '{partition}': {e}") from e
        logger.info(f"Created bucket {bucket.pid} (partition={partition})")
        return bucket.pid

    def get(self, pid: str) -> Bucket:
        where = Filters("pid").to_query(self.db.backend)
        return self.db.fetch_one(Bucket, f"SELECT * FROM buckets WHERE {where}", [pid])

    def for_partition(self, partition: str) -> Bucket:
        """Fetch the bucket owning a partition folder. Raises NotFound."""
        where = Filters("partition").to_query(self.db.backend)
        return self.db.fetch_one(Bucket, f"SELECT * FROM buckets WHERE {where}", [partition])

    def usage(self, bucket: Bucket) -> int:
        """Bytes stored under the bucket's partition folder."""
        if not bucket.partition:
            return 0
        folder = physical_path(self.storage_root, bucket.partition)
        if not folder.exists():
            return 0
        return check_folder_size(str(folder))

    def has_room(self, bucket: Bucket, incoming: int) -> bool:
        if bucket.partition_size is None:
            return True
        return self.usage(bucket) + incoming <= bucket.partition_size
