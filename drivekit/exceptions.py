# drivekit/exceptions.py
class DriveError(Exception):
    """Base exception for drivekit errors."""
    status_code = 500

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class AuthorizationError(DriveError):
    """Raised for a bad, expired or forged token, or a malformed bearer header."""
    status_code = 401


class PermissionDenied(DriveError):
    """Raised when an authenticated caller is not entitled to the operation."""
    status_code = 403


class NotFound(DriveError):
    """Raised when no matching record exists, or a record has no file behind it."""
    status_code = 404


class ServerError(DriveError):
    """Base for failures reported to callers as a generic server error."""
    status_code = 500


class DatabaseError(ServerError):
    """Raised for store-level failures other than a missing row."""
    pass


class DuplicateKeyError(DatabaseError):
    """Raised when a unique constraint rejects an insert."""
    pass


class StorageIOError(ServerError):
    """Raised for filesystem failures."""
    pass


class ConfigurationError(ServerError):
    """Raised for malformed configuration, e.g. an unknown backend name."""
    pass


class InternalServerError(ServerError):
    """Raised for unexpected internal state."""
    pass


class ParsingError(ServerError):
    """Raised for malformed structured input."""
    pass
