from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from drivekit.access import AssetResolver
from drivekit.api.app import create_app
from drivekit.app_secrets import AppSecrets
from drivekit.config import Settings
from drivekit.connection import DatastoreConnection
from drivekit.models.client import Clients
from drivekit.models.enums import UserRole
from drivekit.models.options import CreateUserOptions
from drivekit.models.user import Users
from drivekit.storage import AssetStorage
from drivekit.tokens import create_client, decrypt_token


@pytest.fixture
def settings(tmp_path):
    return Settings(
        database_url=f"sqlite:///{tmp_path / 'drivekit.db'}",
        storage_root=str(tmp_path / "storage"),
        tmp_dir=str(tmp_path / "tmp"),
        max_upload_size=1,
    )


@pytest.fixture
def secrets():
    return AppSecrets.generate()


@pytest.fixture
def db(settings):
    connection = DatastoreConnection(settings.database_profile)
    connection.create_tables()
    yield connection
    connection.stop()


@pytest.fixture
def storage_root(settings):
    root = Path(settings.storage_root)
    root.mkdir(parents=True, exist_ok=True)
    return root


@pytest.fixture
def client_token(db, secrets):
    return create_client(db, secrets, "acme")


@pytest.fixture
def client_record(db, secrets, client_token):
    return Clients(db).get(decrypt_token(secrets, client_token))


@pytest.fixture
def make_user(db, client_record):
    """Factory creating users of the test client."""
    def _make_user(role=UserRole.MANAGER, partition=None, client_id=None, partition_size=None):
        users = Users(db)
        opts = CreateUserOptions(role=role, partition=partition, partition_size=partition_size)
        pid = users.create_by_client(client_id or client_record.id, opts)
        return users.get_by_pid(pid)
    return _make_user


@pytest.fixture
def owner(make_user):
    return make_user()


@pytest.fixture
def other_user(make_user):
    return make_user(role=UserRole.BASIC)


@pytest.fixture
def storage(db, storage_root):
    return AssetStorage(db, storage_root)


@pytest.fixture
def resolver(db, storage_root):
    return AssetResolver(db, storage_root)


@pytest.fixture
def api(settings, secrets, db, storage_root):
    app = create_app(settings, secrets=secrets, db=db)
    with TestClient(app) as client:
        yield client
