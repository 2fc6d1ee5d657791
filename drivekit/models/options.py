# drivekit/models/options.py
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from pydantic import BaseModel

from drivekit.models.enums import AssetType, SharingPermission, UserRole


class CreateUserOptions(BaseModel):
    role: UserRole = UserRole.BASIC
    partition: Optional[str] = None
    partition_size: Optional[int] = None


class LoginUserClient(BaseModel):
    id: str
    access_exp: Optional[int] = None
    refresh_exp: Optional[int] = None


class LoginToken(BaseModel):
    access: Tuple[str, int]
    refresh: Tuple[str, int]


class CreateBucketOptions(BaseModel):
    partition: Optional[str] = None
    partition_size: Optional[int] = None


class SharingGrant(BaseModel):
    """A grantee (by public user id) and the permission it receives."""
    user_id: str
    permission: SharingPermission = SharingPermission.READ


@dataclass
class CreateAssetOptions:
    # The asset owner
    user: int

    # Destination path, relative to the owner's root folder
    path: str

    asset_type: AssetType = AssetType.FILE

    # Public assets can be read by everyone; private ones only by the owner and grantees
    public: bool = False

    # Alternate path that replaces `path` for retrieval; unique across all assets
    custom_path: Optional[str] = None

    # Create missing parent folders instead of failing
    create_parents: bool = False

    # Uploaded bytes already written to a temporary file by the route handler
    tmp_file: Optional[str] = None

    # Only allowed on private assets
    sharing: List[SharingGrant] = field(default_factory=list)
