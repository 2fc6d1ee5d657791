# drivekit/tokens.py
"""Client and user credentials.

Two token families, both verified without a server-side session table:

* client tokens: the client's opaque identifier encrypted with
  ChaCha20-Poly1305 under the process-wide key and fixed nonce, hex-encoded.
  Encryption is deterministic, so re-issuing a token for a client yields the
  same string; this is acceptable because the identifier never changes.
* user session tokens: HS512-signed JWTs carrying ``sub`` (numeric user id),
  ``exp`` (unix seconds) and ``ty`` (``Access`` or ``Refresh``), sent in a
  header prefixed by a configurable bearer scheme.
"""
import logging
import uuid
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import ChaCha20Poly1305
from jose import JWTError, jwt
from pydantic import BaseModel, ValidationError

from drivekit.app_secrets import AppSecrets
from drivekit.config import Settings
from drivekit.connection import DatastoreConnection
from drivekit.exceptions import AuthorizationError, NotFound
from drivekit.models.client import Clients
from drivekit.models.options import LoginToken
from drivekit.models.tables import Client
from drivekit.models.user import Users

logger = logging.getLogger(__name__)

ALGORITHM = "HS512"


class TokenType(str, Enum):
    ACCESS = "Access"
    REFRESH = "Refresh"


class Claims(BaseModel):
    sub: int
    exp: int
    ty: TokenType


# ==================== Client tokens ====================

def generate_token(secrets: AppSecrets, client_id: str) -> str:
    """Encrypt a client identifier into an opaque hex token."""
    cipher = ChaCha20Poly1305(secrets.secret_key)
    encrypted = cipher.encrypt(secrets.nonce, client_id.encode("utf-8"), None)
    return encrypted.hex()


def decrypt_token(secrets: AppSecrets, token: str) -> str:
    """Recover the client identifier from a token.

    Raises:
        AuthorizationError: If the token is not hex, fails authentication, or is not UTF-8.
    """
    try:
        decoded = bytes.fromhex(token)
    except (TypeError, ValueError) as e:
        raise AuthorizationError(f"malformed client token: {e}") from e

    cipher = ChaCha20Poly1305(secrets.secret_key)
    try:
        decrypted = cipher.decrypt(secrets.nonce, decoded, None)
    except InvalidTag as e:
        raise AuthorizationError("invalid client token") from e

    try:
        return decrypted.decode("utf-8")
    except UnicodeDecodeError as e:
        raise AuthorizationError(f"invalid client token: {e}") from e


def create_client(db: DatastoreConnection, secrets: AppSecrets, name: str) -> str:
    """Create a new client and return its token."""
    client_id = str(uuid.uuid4())
    token = generate_token(secrets, client_id)
    Clients(db).create(client_id, name)
    return token


def verify_client(db: DatastoreConnection, secrets: AppSecrets, token: str) -> Client:
    """Return the client a token belongs to.

    Raises:
        AuthorizationError: If the token is invalid or names no existing client.
    """
    client_id = decrypt_token(secrets, token)
    try:
        return Clients(db).get(client_id)
    except NotFound as e:
        logger.warning("Client token decrypted to an unknown client")
        raise AuthorizationError("no such client") from e


def regenerate_token(db: DatastoreConnection, secrets: AppSecrets, client_id: str) -> str:
    """Re-issue the token of an existing client. The identifier is not rotated."""
    client = Clients(db).get(client_id)
    return generate_token(secrets, client.pid)


# ==================== User session tokens ====================

def create_jwt(user_id: int, secret: bytes, exp: int, ty: TokenType) -> str:
    """Sign a session token for `user_id` valid for `exp` seconds from now."""
    expires_at = datetime.now(timezone.utc) + timedelta(seconds=exp)
    claims = {"sub": user_id, "exp": int(expires_at.timestamp()), "ty": ty.value}
    try:
        return jwt.encode(claims, secret, algorithm=ALGORITHM)
    except JWTError as e:
        raise AuthorizationError(f"unable to create token: {e}") from e


def extract_jwt(header_value: Optional[str], bearer: str) -> str:
    prefix = f"{bearer} "
    if header_value and header_value.startswith(prefix):
        return header_value[len(prefix):]
    raise AuthorizationError("Error extracting jwt")


def decode_jwt(header_value: Optional[str], secret: bytes, bearer: str = "Bearer") -> Claims:
    """Validate an authorization header value and return its claims.

    Raises:
        AuthorizationError: On a missing/mismatched bearer prefix, a bad
            signature, an expired token or malformed claims.
    """
    token = extract_jwt(header_value, bearer)
    try:
        payload = jwt.decode(token, secret, algorithms=[ALGORITHM], options={"verify_sub": False})
        return Claims(**payload)
    except (JWTError, ValidationError, TypeError) as e:
        raise AuthorizationError(f"invalid token: {e}") from e


def issue_login_tokens(db: DatastoreConnection, settings: Settings, secrets: AppSecrets, user_pid: str,
                       access_exp: Optional[int] = None, refresh_exp: Optional[int] = None) -> LoginToken:
    """Issue an access and a refresh token for a user."""
    user = Users(db).get_by_pid(user_pid)
    access_exp = access_exp if access_exp is not None else settings.access_exp
    refresh_exp = refresh_exp if refresh_exp is not None else settings.refresh_exp

    access_token = create_jwt(user.id, secrets.jwt_secret, access_exp, TokenType.ACCESS)
    refresh_token = create_jwt(user.id, secrets.jwt_secret, refresh_exp, TokenType.REFRESH)
    logger.info(f"Issued login tokens for user {user.pid}")
    return LoginToken(access=(access_token, access_exp), refresh=(refresh_token, refresh_exp))
