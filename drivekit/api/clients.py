# drivekit/api/clients.py
import json
import logging
import os
import uuid
from pathlib import Path
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from fastapi.responses import PlainTextResponse
from pydantic import TypeAdapter, ValidationError

from drivekit.api.dependencies import get_current_client, get_current_user, get_db, get_secrets, get_settings
from drivekit.app_secrets import AppSecrets
from drivekit.config import Settings
from drivekit.connection import DatastoreConnection
from drivekit.exceptions import AuthorizationError, ParsingError, PermissionDenied, StorageIOError
from drivekit.models.bucket import Buckets
from drivekit.models.enums import AssetType
from drivekit.models.options import (
    CreateAssetOptions,
    CreateBucketOptions,
    CreateUserOptions,
    LoginToken,
    LoginUserClient,
    SharingGrant,
)
from drivekit.models.tables import Client, User
from drivekit.models.user import Users
from drivekit.storage import AssetStorage
from drivekit.tokens import issue_login_tokens

logger = logging.getLogger(__name__)

COPY_CHUNK_SIZE = 1024 * 1024


class ClientAPI:
    """Routes for integrating clients and the users they manage.

    Administrative routes require the client header (except the admin
    password login); user routes require an access token in the
    Authorization header.
    """

    def __init__(self):
        self.router = APIRouter(prefix="/client")
        self._register_routes()

    def _register_routes(self):
        self.router.post("/user/register", response_class=PlainTextResponse)(self.register_user)
        self.router.post("/user/login")(self.login_user)
        self.router.post("/admin/login")(self.login_admin)
        self.router.delete("/user/{pid}", response_class=PlainTextResponse)(self.delete_user)
        self.router.post("/bucket", response_class=PlainTextResponse)(self.create_bucket)
        self.router.get("/user")(self.get_user)
        self.router.post("/user/asset")(self.create_asset)
        self.router.patch("/user/asset/{asset_type}/{asset_path:path}")(self.update_asset)
        self.router.delete("/user/asset/{asset_type}/{asset_path:path}", response_class=PlainTextResponse)(
            self.delete_asset
        )
        self.router.post("/user/bucket", response_class=PlainTextResponse)(self.create_user_bucket)

    # ==================== Client routes ====================

    def register_user(
        self,
        data: CreateUserOptions,
        client: Client = Depends(get_current_client),
        db: DatastoreConnection = Depends(get_db),
    ):
        return Users(db).create_by_client(client.id, data)

    def login_user(
        self,
        data: LoginUserClient,
        client: Client = Depends(get_current_client),
        db: DatastoreConnection = Depends(get_db),
        settings: Settings = Depends(get_settings),
        secrets: AppSecrets = Depends(get_secrets),
    ) -> LoginToken:
        return issue_login_tokens(db, settings, secrets, data.id, data.access_exp, data.refresh_exp)

    def login_admin(
        self,
        username: str = Form(...),
        password: str = Form(...),
        db: DatastoreConnection = Depends(get_db),
        settings: Settings = Depends(get_settings),
        secrets: AppSecrets = Depends(get_secrets),
    ) -> LoginToken:
        """Password login for standalone admins; no client header involved."""
        user = Users(db).authenticate(username, password)
        if user is None or not user.is_admin:
            raise AuthorizationError("invalid credentials")
        return issue_login_tokens(db, settings, secrets, user.pid)

    def delete_user(
        self,
        pid: str,
        client: Client = Depends(get_current_client),
        db: DatastoreConnection = Depends(get_db),
        settings: Settings = Depends(get_settings),
    ):
        Users(db).delete_by_client(client.id, pid, Path(settings.storage_root))
        return "operation successful"

    def create_bucket(
        self,
        data: CreateBucketOptions,
        client: Client = Depends(get_current_client),
        db: DatastoreConnection = Depends(get_db),
        settings: Settings = Depends(get_settings),
    ):
        return Buckets(db, Path(settings.storage_root)).create(data, client_id=client.id)

    # ==================== User routes ====================

    def get_user(self, user: User = Depends(get_current_user)):
        return {
            "id": user.pid,
            "role": user.role,
            "root_folder": user.root_folder,
            "folder_max_size": user.folder_max_size,
            "created_at": user.created_at.isoformat() if user.created_at else None,
        }

    def create_user_bucket(
        self,
        data: CreateBucketOptions,
        user: User = Depends(get_current_user),
        db: DatastoreConnection = Depends(get_db),
        settings: Settings = Depends(get_settings),
    ):
        if not user.can_create():
            raise PermissionDenied("user cannot create buckets")
        return Buckets(db, Path(settings.storage_root)).create(data, user_id=user.id)

    def create_asset(
        self,
        path: str = Form(...),
        asset_type: str = Form("file"),
        public: bool = Form(False),
        custom_path: Optional[str] = Form(None),
        create_parents: bool = Form(False),
        sharing: Optional[str] = Form(None),
        file: Optional[UploadFile] = File(None),
        user: User = Depends(get_current_user),
        db: DatastoreConnection = Depends(get_db),
        settings: Settings = Depends(get_settings),
    ):
        if not user.can_create():
            raise PermissionDenied("user cannot create assets")

        opts = CreateAssetOptions(
            user=user.id,
            path=path,
            asset_type=AssetType.parse(asset_type),
            public=public,
            custom_path=custom_path or None,
            create_parents=create_parents,
            sharing=self._parse_sharing(sharing),
        )

        if file is not None and opts.asset_type == AssetType.FILE:
            opts.tmp_file = self._save_upload(file, settings)

        try:
            asset = AssetStorage(db, Path(settings.storage_root)).create(opts)
        finally:
            if opts.tmp_file and os.path.exists(opts.tmp_file):
                os.remove(opts.tmp_file)

        return {"path": asset.url_path(), "asset_type": asset.asset_type, "public": asset.public}

    def update_asset(
        self,
        asset_type: str,
        asset_path: str,
        public: bool = Form(...),
        user: User = Depends(get_current_user),
        db: DatastoreConnection = Depends(get_db),
        settings: Settings = Depends(get_settings),
    ):
        storage = AssetStorage(db, Path(settings.storage_root))
        asset = storage.set_visibility(AssetType.parse(asset_type), asset_path, user, public)
        return {"path": asset.url_path(), "asset_type": asset.asset_type, "public": asset.public}

    def delete_asset(
        self,
        asset_type: str,
        asset_path: str,
        user: User = Depends(get_current_user),
        db: DatastoreConnection = Depends(get_db),
        settings: Settings = Depends(get_settings),
    ):
        AssetStorage(db, Path(settings.storage_root)).delete(AssetType.parse(asset_type), asset_path, user)
        return "operation successful"

    @staticmethod
    def _parse_sharing(raw: Optional[str]) -> List[SharingGrant]:
        if not raw:
            return []
        try:
            return TypeAdapter(List[SharingGrant]).validate_python(json.loads(raw))
        except (ValueError, ValidationError) as e:
            raise ParsingError(f"invalid sharing list: {e}") from e

    @staticmethod
    def _save_upload(upload: UploadFile, settings: Settings) -> str:
        """Copy an upload into the temporary folder, enforcing the size limit. Returns the temp path."""
        tmp_dir = Path(settings.tmp_dir)
        tmp_path = tmp_dir / str(uuid.uuid4())
        limit = settings.max_upload_bytes
        written = 0
        try:
            tmp_dir.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "wb") as out:
                while True:
                    chunk = upload.file.read(COPY_CHUNK_SIZE)
                    if not chunk:
                        break
                    written += len(chunk)
                    if written > limit:
                        raise HTTPException(status_code=413, detail="upload exceeds the maximum size")
                    out.write(chunk)
        except HTTPException:
            os.remove(tmp_path)
            raise
        except OSError as e:
            if tmp_path.exists():
                os.remove(tmp_path)
            raise StorageIOError(f"unable to store upload: {e}") from e
        logger.info(f"Received upload of {written} bytes into {tmp_path}")
        return str(tmp_path)
