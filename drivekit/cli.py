# drivekit/cli.py
import argparse
import logging

import uvicorn

from drivekit.api.app import create_app
from drivekit.app_secrets import AppSecrets, generate_secrets
from drivekit.config import Settings, get_settings
from drivekit.connection import DatastoreConnection
from drivekit.logging import setup_logging
from drivekit.models.user import Users
from drivekit.paths import check_folder_size
from drivekit.tokens import create_client, regenerate_token

logger = logging.getLogger(__name__)


def get_connection(settings: Settings) -> DatastoreConnection:
    db = DatastoreConnection(settings.database_profile)
    db.create_tables()
    return db


def run(args: argparse.Namespace, settings: Settings):
    if args.command == "xgen":
        generate_secrets(settings.secrets_path)

    elif args.command == "create_client":
        secrets = AppSecrets.load(settings.secrets_path)
        db = get_connection(settings)
        try:
            token = create_client(db, secrets, args.name)
        finally:
            db.stop()
        print(f"CLIENT_TOKEN: {token}")

    elif args.command == "token":
        secrets = AppSecrets.load(settings.secrets_path)
        db = get_connection(settings)
        try:
            token = regenerate_token(db, secrets, args.client_id)
        finally:
            db.stop()
        print(f"CLIENT_TOKEN: {token}")

    elif args.command == "create_admin":
        db = get_connection(settings)
        try:
            admin = Users(db).create_admin(args.password)
        finally:
            db.stop()
        print(f"ADMIN_ID: {admin.pid}")

    elif args.command == "folder_size":
        logger.info(f"Measuring folder {args.path}")
        print(check_folder_size(args.path))

    elif args.command == "serve":
        uvicorn.run(create_app(settings), host=args.host, port=args.port or settings.port)


def main(argv=None):
    parser = argparse.ArgumentParser(description="Multi-tenant file storage server (drivekit)")
    subparsers = parser.add_subparsers(dest="command", help="Available commands", required=True)

    client_parser = subparsers.add_parser("create_client", help="Create a client and print its token")
    client_parser.add_argument("name", help="Display name of the client")

    token_parser = subparsers.add_parser("token", help="Re-issue the token of an existing client")
    token_parser.add_argument("client_id", help="Opaque identifier of the client")

    subparsers.add_parser("xgen", help="Generate the secrets file")

    admin_parser = subparsers.add_parser("create_admin", help="Create a standalone admin and print its id")
    admin_parser.add_argument("password", help="Password for POST /client/admin/login")

    size_parser = subparsers.add_parser("folder_size", help="Print the size in bytes of a folder")
    size_parser.add_argument("path", help="Folder to measure")

    serve_parser = subparsers.add_parser("serve", help="Run the HTTP API")
    serve_parser.add_argument("--host", default="0.0.0.0", help="Interface to bind")
    serve_parser.add_argument("--port", type=int, default=None, help="Port (defaults to DRIVEKIT_PORT)")

    args = parser.parse_args(argv)
    settings = get_settings()
    setup_logging(settings.log_file, settings.log_level)
    run(args, settings)


if __name__ == "__main__":
    main()
