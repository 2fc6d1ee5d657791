# drivekit/models/client.py
import logging

from drivekit.connection import DatastoreConnection
from drivekit.models.tables import Client
from drivekit.query import Filters

logger = logging.getLogger(__name__)


class Clients:
    def __init__(self, db: DatastoreConnection):
        self.db = db

    def create(self, pid: str, name: str) -> Client:
        client = Client(pid=pid, name=name)
        with self.db.get_session() as session:
            session.add(client)
        logger.info(f"Created client '{name}'")
        return client

    def get(self, pid: str) -> Client:
        """Fetch a client by its opaque identifier. Raises NotFound."""
        where = Filters("pid").to_query(self.db.backend)
        return self.db.fetch_one(Client, f"SELECT * FROM clients WHERE {where}", [pid])

