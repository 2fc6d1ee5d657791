from pathlib import Path

import pytest

from drivekit.app_secrets import SECRETS_FILENAME
from drivekit.config import Settings, mb_to_bytes
from drivekit.connection import DatastoreConnection
from drivekit.exceptions import ConfigurationError
from drivekit.paths import clean_path, scoped_path
from drivekit.profile import DatabaseProfile
from drivekit.query import BackendKind


def test_settings_from_environment(monkeypatch, tmp_path):
    monkeypatch.setenv("DRIVEKIT_STORAGE_ROOT", str(tmp_path / "files"))
    monkeypatch.setenv("DRIVEKIT_BEARER_KEY", "Drive")
    monkeypatch.setenv("DRIVEKIT_ACCESS_EXP", "60")

    settings = Settings()
    assert settings.bearer_key == "Drive"
    assert settings.access_exp == 60
    assert settings.secrets_path == tmp_path / "files" / SECRETS_FILENAME


def test_explicit_secrets_file():
    assert Settings(secrets_file="/etc/drivekit/keys").secrets_path == Path("/etc/drivekit/keys")


def test_max_upload_bytes():
    assert mb_to_bytes(2) == 2048000
    assert Settings(max_upload_size=3).max_upload_bytes == 3072000


def test_postgres_profile(tmp_path):
    env_file = tmp_path / ".env.postgres_dev"
    env_file.write_text("PG_USERNAME=drive\nPG_PASSWORD=pw\nPG_DBNAME=drivekit\n")
    profile = Settings(database_env_file=str(env_file)).database_profile
    assert profile.connection_string == "postgresql+psycopg2://drive:pw@localhost:5432/drivekit"
    assert profile.db_type == "postgres"


def test_mysql_profile_requires_credentials(tmp_path):
    env_file = tmp_path / ".env.mysql"
    env_file.write_text("MYSQL_USERNAME=drive\n")
    with pytest.raises(ConfigurationError):
        DatabaseProfile.from_env_file(str(env_file))


def test_unknown_profile(tmp_path):
    with pytest.raises(ConfigurationError):
        DatabaseProfile.from_env_file(str(tmp_path / ".env.oracle"))


def test_profile_from_url():
    assert DatabaseProfile.from_url("postgresql+psycopg2://u:p@h/db").db_type == "postgres"
    assert DatabaseProfile.from_url("mysql+pymysql://u:p@h/db").db_type == "mysql"


def test_sqlite_connection_backend():
    db = DatastoreConnection(DatabaseProfile.sqlite())
    try:
        assert db.backend is BackendKind.SQLITE
        db.create_tables()
        assert db.scalar("SELECT COUNT(*) FROM assets") == 0
    finally:
        db.stop()


def test_clean_path():
    assert clean_path("/a/b/") == "a/b"
    assert clean_path("a\\b") == "a/b"
    assert scoped_path("x.txt", "tenant") == "tenant/x.txt"
    assert scoped_path("x.txt", None) == "x.txt"


def test_sqlite_profile_from_env_file(tmp_path):
    env_file = tmp_path / ".env.sqlite"
    env_file.write_text(f"SQLITE_PATH={tmp_path / 'drive.db'}\n")
    settings = Settings(database_url="postgresql+psycopg2://ignored/db", database_env_file=str(env_file))
    assert settings.database_profile.connection_string == f"sqlite:///{tmp_path / 'drive.db'}"
    assert settings.database_profile.db_type == "sqlite"
