# drivekit/app_secrets.py
"""Process-wide secret material.

The client-token key and nonce and the session-token signing secret are
generated once (`drivekit xgen`), stored in a JSON file of hex strings, and
loaded at startup into an immutable `AppSecrets` that is passed to every
component needing it.
"""
import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Union

from cryptography.hazmat.primitives.ciphers.aead import ChaCha20Poly1305

from drivekit.exceptions import ConfigurationError, StorageIOError

logger = logging.getLogger(__name__)

# Never addressable through the asset API.
SECRETS_FILENAME = ".drivekit_secrets"

KEY_SIZE = 32
NONCE_SIZE = 12
JWT_SECRET_SIZE = 64


@dataclass(frozen=True)
class AppSecrets:
    secret_key: bytes
    nonce: bytes
    jwt_secret: bytes

    def __post_init__(self):
        if len(self.secret_key) != KEY_SIZE:
            raise ConfigurationError(f"secret key must be {KEY_SIZE} bytes")
        if len(self.nonce) != NONCE_SIZE:
            raise ConfigurationError(f"nonce must be {NONCE_SIZE} bytes")
        if not self.jwt_secret:
            raise ConfigurationError("jwt secret must not be empty")

    def __repr__(self) -> str:
        return "AppSecrets(<redacted>)"

    @classmethod
    def generate(cls) -> "AppSecrets":
        return cls(
            secret_key=ChaCha20Poly1305.generate_key(),
            nonce=os.urandom(NONCE_SIZE),
            jwt_secret=os.urandom(JWT_SECRET_SIZE),
        )

    @classmethod
    def load(cls, path: Union[str, Path]) -> "AppSecrets":
        """Read secrets written by `generate_secrets`.

        Raises:
            ConfigurationError: If the file is missing or malformed.
        """
        path = Path(path)
        if not path.is_file():
            raise ConfigurationError(f"secrets file not found at {path}; run 'drivekit xgen' first")
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            return cls(
                secret_key=bytes.fromhex(data["secret_key"]),
                nonce=bytes.fromhex(data["nonce"]),
                jwt_secret=bytes.fromhex(data["jwt_secret"]),
            )
        except (ValueError, KeyError, TypeError) as e:
            raise ConfigurationError(f"malformed secrets file {path}: {e}") from e

    def to_json(self) -> str:
        return json.dumps({
            "secret_key": self.secret_key.hex(),
            "nonce": self.nonce.hex(),
            "jwt_secret": self.jwt_secret.hex(),
        })


def generate_secrets(path: Union[str, Path]) -> AppSecrets:
    """Generate fresh secrets and write them to `path` (owner read/write only)."""
    path = Path(path)
    secrets = AppSecrets.generate()
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(secrets.to_json(), encoding="utf-8")
        os.chmod(path, 0o600)
    except OSError as e:
        raise StorageIOError(f"unable to write secrets to {path}: {e}") from e
    logger.info(f"Secret keys generated and saved to {path}")
    return secrets
