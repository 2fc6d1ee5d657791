# drivekit/models/enums.py
from enum import Enum

from drivekit.exceptions import ParsingError


class AssetType(str, Enum):
    FILE = "file"
    FOLDER = "folder"

    @classmethod
    def parse(cls, value: str) -> "AssetType":
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            raise ParsingError(f"invalid asset type '{value}'")

    def __str__(self) -> str:
        return self.value


class UserRole(str, Enum):
    ADMIN = "admin"
    MANAGER = "manager"
    BASIC = "basic"

    @classmethod
    def parse(cls, value: str) -> "UserRole":
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            raise ParsingError(f"invalid user role '{value}'")


class SharingPermission(str, Enum):
    READ = "read"
    WRITE = "write"

    def grants(self, operation: str) -> bool:
        """'write' implies 'read'."""
        if operation == "read":
            return self in (SharingPermission.READ, SharingPermission.WRITE)
        return operation == "write" and self is SharingPermission.WRITE
