# drivekit/paths.py
import os
from pathlib import Path
from typing import List, Optional

from drivekit.app_secrets import SECRETS_FILENAME
from drivekit.exceptions import ParsingError, PermissionDenied, ServerError, StorageIOError


def clean_path(path: str) -> str:
    """Normalize a user-supplied relative path ('a/b/c').

    Raises:
        ParsingError: For empty paths or '.'/'..'/empty segments.
        PermissionDenied: If any segment is the reserved secrets filename.
    """
    parts = (path or "").replace("\\", "/").strip().strip("/").split("/")
    if any(part in ("", ".", "..") for part in parts):
        raise ParsingError(f"invalid path '{path}'")
    if SECRETS_FILENAME in parts:
        raise PermissionDenied(f"name {SECRETS_FILENAME} is not allowed")
    return "/".join(parts)


def scoped_path(path: str, root_folder: Optional[str]) -> str:
    """Prefix a cleaned path with the owner's root folder, if any."""
    path = clean_path(path)
    return f"{clean_path(root_folder)}/{path}" if root_folder else path


def physical_path(storage_root: Path, asset_path: str) -> Path:
    return Path(storage_root) / asset_path


def parent_paths(asset_path: str) -> List[str]:
    """Ancestors of a cleaned path, nearest first: 'a/b/c' -> ['a/b', 'a']."""
    parts = asset_path.split("/")
    return ["/".join(parts[:i]) for i in range(len(parts) - 1, 0, -1)]


def check_folder_size(folder_path: str, size: int = 0) -> int:
    """Compute the total size (in bytes) of the regular files under a folder.

    Args:
        folder_path: Folder to scan, depth first.
        size: Running total to add to.

    Returns:
        `size` plus the bytes found.

    Raises:
        ServerError: If `folder_path` is a file.
        StorageIOError: If `folder_path` does not exist or cannot be read.
    """
    path = Path(folder_path)
    if path.is_file():
        raise ServerError("provided path is not a folder path")
    if not path.is_dir():
        raise StorageIOError(f"folder '{folder_path}' does not exist")

    stack = [path]
    while stack:
        folder = stack.pop()
        try:
            entries = list(os.scandir(folder))
        except FileNotFoundError as e:
            if folder == path:
                raise StorageIOError(f"folder '{folder_path}' does not exist") from e
            # removed mid-scan
            continue
        except OSError as e:
            raise StorageIOError(f"unable to read folder {folder}: {e}") from e

        for entry in entries:
            try:
                if entry.is_file(follow_symlinks=False):
                    size += entry.stat(follow_symlinks=False).st_size
                elif entry.is_dir(follow_symlinks=False):
                    stack.append(Path(entry.path))
            except FileNotFoundError:
                continue
    return size
