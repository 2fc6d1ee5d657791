# drivekit/api/dependencies.py
import logging
from typing import Optional

from fastapi import Request

from drivekit.app_secrets import AppSecrets
from drivekit.config import Settings
from drivekit.connection import DatastoreConnection
from drivekit.exceptions import AuthorizationError, NotFound
from drivekit.models.tables import Client, User
from drivekit.models.user import Users
from drivekit.tokens import TokenType, decode_jwt, verify_client

logger = logging.getLogger(__name__)


def get_db(request: Request) -> DatastoreConnection:
    """Dependency to get the datastore connection of the running app."""
    return request.app.state.db


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_secrets(request: Request) -> AppSecrets:
    return request.app.state.secrets


def get_current_client(request: Request) -> Client:
    """Client authenticated by the token in the client header."""
    settings = get_settings(request)
    token = request.headers.get(settings.client_header)
    if not token:
        raise AuthorizationError(f"missing {settings.client_header} header")
    return verify_client(get_db(request), get_secrets(request), token)


def _user_from_header(request: Request, header_value: str) -> User:
    settings = get_settings(request)
    claims = decode_jwt(header_value, get_secrets(request).jwt_secret, settings.bearer_key)
    if claims.ty != TokenType.ACCESS:
        raise AuthorizationError("access token required")
    try:
        return Users(get_db(request)).get(claims.sub)
    except NotFound as e:
        logger.warning(f"Valid token for missing user {claims.sub}")
        raise AuthorizationError("no such user") from e


def get_optional_user(request: Request) -> Optional[User]:
    """User behind the Authorization header, or None for anonymous requests.

    A header that is present but invalid is still rejected.
    """
    header_value = request.headers.get("Authorization")
    if header_value is None:
        return None
    return _user_from_header(request, header_value)


def get_current_user(request: Request) -> User:
    header_value = request.headers.get("Authorization")
    if not header_value:
        raise AuthorizationError("missing authorization header")
    return _user_from_header(request, header_value)
