# drivekit/profile.py
from dataclasses import dataclass
from typing import Optional
from dotenv import dotenv_values
import logging

from drivekit.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

# db_type -> (env var prefix, SQLAlchemy driver, default port)
SERVER_BACKENDS = {
    "postgres": ("PG", "postgresql+psycopg2", "5432"),
    "mysql": ("MYSQL", "mysql+pymysql", "3306"),
}


@dataclass
class DatabaseProfile:
    """Where the asset and user records live."""
    connection_string: Optional[str] = None
    host: Optional[str] = None
    port: Optional[str] = None
    username: Optional[str] = None
    dbname: Optional[str] = None
    db_type: Optional[str] = None

    @staticmethod
    def server(db_type: str, env_file: str) -> 'DatabaseProfile':
        """Profile for a networked store, read from `<PREFIX>_USERNAME`, `_PASSWORD`, `_HOST`, `_PORT`, `_DBNAME`."""
        if db_type not in SERVER_BACKENDS:
            raise ConfigurationError(f"unsupported datastore type {db_type}")
        prefix, driver, default_port = SERVER_BACKENDS[db_type]

        env_vars = dotenv_values(env_file)
        username = env_vars.get(f"{prefix}_USERNAME")
        password = env_vars.get(f"{prefix}_PASSWORD")
        dbname = env_vars.get(f"{prefix}_DBNAME")
        if not all([username, password, dbname]):
            raise ConfigurationError(
                f"{prefix}_USERNAME, {prefix}_PASSWORD and {prefix}_DBNAME must be provided in {env_file}"
            )
        host = env_vars.get(f"{prefix}_HOST", "localhost")
        port = env_vars.get(f"{prefix}_PORT", default_port)

        logger.info(f"Loaded {db_type} profile for {host}:{port}/{dbname}")
        return DatabaseProfile(
            connection_string=f"{driver}://{username}:{password}@{host}:{port}/{dbname}",
            host=host,
            port=port,
            username=username,
            dbname=dbname,
            db_type=db_type,
        )

    @staticmethod
    def sqlite(path: Optional[str] = None) -> 'DatabaseProfile':
        """SQLite file database, or in-memory when no path is given."""
        return DatabaseProfile(
            connection_string=f"sqlite:///{path}" if path else "sqlite:///:memory:",
            dbname=path or "memory",
            db_type="sqlite",
        )

    @staticmethod
    def from_url(url: str) -> 'DatabaseProfile':
        scheme = url.split(":", 1)[0].split("+", 1)[0]
        return DatabaseProfile(connection_string=url, db_type="postgres" if scheme == "postgresql" else scheme)

    @staticmethod
    def from_env_file(env_file: str) -> 'DatabaseProfile':
        """Pick the profile builder from the .env file name (e.g. '.env.postgres_dev')."""
        env_path_lower = env_file.lower()
        for db_type in SERVER_BACKENDS:
            if db_type in env_path_lower:
                return DatabaseProfile.server(db_type, env_file)
        if "sqlite" in env_path_lower:
            return DatabaseProfile.sqlite(dotenv_values(env_file).get("SQLITE_PATH"))
        raise ConfigurationError(f"Unknown datastore type for {env_file}")
