import errno
import os
import threading

import pytest

from drivekit.exceptions import (
    DatabaseError,
    NotFound,
    ParsingError,
    PermissionDenied,
    ServerError,
    StorageIOError,
)
from drivekit.models.asset import Assets
from drivekit.models.bucket import Buckets
from drivekit.models.enums import AssetType, SharingPermission, UserRole
from drivekit.models.options import CreateAssetOptions, CreateBucketOptions, SharingGrant
from drivekit.paths import check_folder_size
from drivekit.query import Filters


def test_create_file_from_upload(storage, owner, storage_root, tmp_path):
    upload = tmp_path / "upload.bin"
    upload.write_bytes(b"hello drive")

    asset = storage.create(CreateAssetOptions(user=owner.id, path="hello.txt", tmp_file=str(upload)))

    assert asset.asset_path == "hello.txt"
    assert asset.public is False
    assert (storage_root / "hello.txt").read_bytes() == b"hello drive"
    assert not upload.exists()


def test_create_empty_file(storage, owner, storage_root):
    storage.create(CreateAssetOptions(user=owner.id, path="empty.txt"))
    assert (storage_root / "empty.txt").read_bytes() == b""


def test_create_scoped_under_root_folder(storage, make_user, storage_root):
    user = make_user(partition="tenant-a")
    asset = storage.create(CreateAssetOptions(user=user.id, path="reports/q1.csv", create_parents=True))
    assert asset.asset_path == "tenant-a/reports/q1.csv"
    assert (storage_root / "tenant-a" / "reports" / "q1.csv").is_file()


def test_create_folder_requires_parents(storage, owner, storage_root):
    with pytest.raises(StorageIOError):
        storage.create(CreateAssetOptions(user=owner.id, path="a/b", asset_type=AssetType.FOLDER))
    assert not Assets(storage.db).path_taken("a/b")

    storage.create(CreateAssetOptions(user=owner.id, path="a/b", asset_type=AssetType.FOLDER, create_parents=True))
    assert (storage_root / "a" / "b").is_dir()


def test_create_existing_target_rolls_back(storage, owner, storage_root):
    (storage_root / "taken.txt").write_text("already here")
    with pytest.raises(StorageIOError):
        storage.create(CreateAssetOptions(user=owner.id, path="taken.txt"))
    assert not Assets(storage.db).path_taken("taken.txt")
    assert (storage_root / "taken.txt").read_text() == "already here"


def test_duplicate_path(storage, owner):
    storage.create(CreateAssetOptions(user=owner.id, path="dup.txt"))
    with pytest.raises(DatabaseError):
        storage.create(CreateAssetOptions(user=owner.id, path="dup.txt"))


def test_duplicate_custom_path(storage, owner):
    storage.create(CreateAssetOptions(user=owner.id, path="one.txt", custom_path="shortcut"))
    with pytest.raises(DatabaseError):
        storage.create(CreateAssetOptions(user=owner.id, path="two.txt", custom_path="shortcut"))


@pytest.mark.parametrize("path", ["../escape.txt", "a/./b", "", "a//b"])
def test_invalid_paths(storage, owner, path):
    with pytest.raises(ParsingError):
        storage.create(CreateAssetOptions(user=owner.id, path=path, create_parents=True))


def test_reserved_name_refused(storage, owner):
    with pytest.raises(PermissionDenied):
        storage.create(CreateAssetOptions(user=owner.id, path="docs/.drivekit_secrets", create_parents=True))


def test_sharing_on_public_asset(storage, owner, other_user):
    grant = SharingGrant(user_id=other_user.pid, permission=SharingPermission.READ)
    with pytest.raises(ParsingError):
        storage.create(CreateAssetOptions(user=owner.id, path="x.txt", public=True, sharing=[grant]))


def test_check_folder_size(tmp_path):
    (tmp_path / "a").mkdir()
    (tmp_path / "a" / "b").mkdir()
    (tmp_path / "one").write_bytes(b"x" * 10)
    (tmp_path / "a" / "two").write_bytes(b"x" * 20)
    (tmp_path / "a" / "b" / "three").write_bytes(b"x" * 30)

    assert check_folder_size(str(tmp_path)) == 60
    assert check_folder_size(str(tmp_path / "a"), 5) == 55


def test_check_folder_size_on_file(tmp_path):
    path = tmp_path / "file"
    path.write_text("data")
    with pytest.raises(ServerError, match="not a folder path"):
        check_folder_size(str(path))


def test_delete_folder_removes_descendants(storage, owner, storage_root):
    storage.create(CreateAssetOptions(user=owner.id, path="docs", asset_type=AssetType.FOLDER))
    storage.create(CreateAssetOptions(user=owner.id, path="docs/a.txt"))
    storage.create(CreateAssetOptions(user=owner.id, path="docs/sub/b.txt", create_parents=True))
    storage.create(CreateAssetOptions(user=owner.id, path="docs_other.txt"))

    assert storage.delete(AssetType.FOLDER, "docs", owner) == 3

    assets = Assets(storage.db)
    assert not (storage_root / "docs").exists()
    assert not assets.path_taken("docs/a.txt")
    assert assets.path_taken("docs_other.txt")


def test_delete_requires_owner_or_admin(storage, make_user, owner, other_user):
    storage.create(CreateAssetOptions(user=owner.id, path="mine.txt", public=True))
    with pytest.raises(PermissionDenied):
        storage.delete(AssetType.FILE, "mine.txt", other_user)

    admin = make_user(role=UserRole.ADMIN)
    assert storage.delete(AssetType.FILE, "mine.txt", admin) == 1


def test_delete_missing(storage, owner):
    with pytest.raises(NotFound):
        storage.delete(AssetType.FILE, "missing.txt", owner)


def test_set_visibility(storage, resolver, owner, other_user):
    storage.create(CreateAssetOptions(user=owner.id, path="report.pdf"))
    with pytest.raises(PermissionDenied):
        resolver.resolve(AssetType.FILE, "report.pdf")

    assert storage.set_visibility(AssetType.FILE, "report.pdf", owner, True).public is True
    assert resolver.resolve(AssetType.FILE, "report.pdf").asset.public is True

    with pytest.raises(PermissionDenied):
        storage.set_visibility(AssetType.FILE, "report.pdf", other_user, False)


def test_check_folder_size_missing(tmp_path):
    with pytest.raises(StorageIOError, match="does not exist"):
        check_folder_size(str(tmp_path / "nowhere"))


def test_create_inside_other_tenant_folder_refused(storage, make_user, storage_root):
    tenant = make_user(partition="tenant-a")
    storage.create(CreateAssetOptions(user=tenant.id, path="inbox", asset_type=AssetType.FOLDER))
    intruder = make_user()

    with pytest.raises(PermissionDenied):
        storage.create(CreateAssetOptions(user=intruder.id, path="tenant-a/inbox/evil.txt"))
    with pytest.raises(PermissionDenied):
        storage.create(CreateAssetOptions(user=intruder.id, path="tenant-a/evil.txt"))

    assets = Assets(storage.db)
    assert not (storage_root / "tenant-a" / "inbox" / "evil.txt").exists()
    assert not (storage_root / "tenant-a" / "evil.txt").exists()
    assert not assets.path_taken("tenant-a/inbox/evil.txt")
    assert not assets.path_taken("tenant-a/evil.txt")


def test_write_grant_allows_creating_inside_folder(storage, make_user, storage_root):
    tenant = make_user(partition="tenant-a")
    writer = make_user()
    reader = make_user()
    storage.create(CreateAssetOptions(
        user=tenant.id, path="drop", asset_type=AssetType.FOLDER,
        sharing=[
            SharingGrant(user_id=writer.pid, permission=SharingPermission.WRITE),
            SharingGrant(user_id=reader.pid, permission=SharingPermission.READ),
        ],
    ))

    asset = storage.create(CreateAssetOptions(user=writer.id, path="tenant-a/drop/report.txt"))
    assert asset.user_id == writer.id
    assert (storage_root / "tenant-a" / "drop" / "report.txt").is_file()

    with pytest.raises(PermissionDenied):
        storage.create(CreateAssetOptions(user=reader.id, path="tenant-a/drop/other.txt"))


def test_user_folder_quota(storage, make_user, tmp_path):
    user = make_user(partition="small", partition_size=10)
    first = tmp_path / "first.bin"
    first.write_bytes(b"x" * 8)
    storage.create(CreateAssetOptions(user=user.id, path="first.bin", tmp_file=str(first)))

    second = tmp_path / "second.bin"
    second.write_bytes(b"x" * 5)
    with pytest.raises(PermissionDenied, match="not enough space"):
        storage.create(CreateAssetOptions(user=user.id, path="second.bin", tmp_file=str(second)))
    assert not Assets(storage.db).path_taken("small/second.bin")


def test_bucket_quota(storage, owner, storage_root, client_record, tmp_path):
    Buckets(storage.db, storage_root).create(
        CreateBucketOptions(partition="media", partition_size=10), client_id=client_record.id
    )
    clip = tmp_path / "clip.bin"
    clip.write_bytes(b"x" * 8)
    storage.create(CreateAssetOptions(user=owner.id, path="media/clip.bin", tmp_file=str(clip)))

    extra = tmp_path / "extra.bin"
    extra.write_bytes(b"x" * 5)
    with pytest.raises(PermissionDenied, match="not enough space in bucket"):
        storage.create(CreateAssetOptions(user=owner.id, path="media/extra.bin", tmp_file=str(extra)))
    assert not (storage_root / "media" / "extra.bin").exists()


def test_upload_moved_across_filesystems(storage, owner, storage_root, tmp_path, monkeypatch):
    def cross_device(src, dst):
        raise OSError(errno.EXDEV, "Invalid cross-device link")

    monkeypatch.setattr(os, "replace", cross_device)
    upload = tmp_path / "upload.bin"
    upload.write_bytes(b"moved")

    storage.create(CreateAssetOptions(user=owner.id, path="moved.bin", tmp_file=str(upload)))
    assert (storage_root / "moved.bin").read_bytes() == b"moved"
    assert not upload.exists()


def test_concurrent_creates_of_one_path(storage, owner, storage_root):
    barrier = threading.Barrier(2)
    created, failed = [], []

    def create():
        barrier.wait()
        try:
            created.append(storage.create(CreateAssetOptions(user=owner.id, path="race.txt")))
        except DatabaseError as e:
            failed.append(e)

    threads = [threading.Thread(target=create) for _ in range(2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(created) == 1
    assert len(failed) == 1
    assert [entry.name for entry in storage_root.iterdir()] == ["race.txt"]
    where = Filters("asset_path").to_query(storage.db.backend)
    assert storage.db.scalar(f"SELECT COUNT(*) FROM assets WHERE {where}", ["race.txt"]) == 1
