from __future__ import annotations

import logging
import os
import shutil
import time
from dataclasses import dataclass
from pathlib import Path

from fastapi import UploadFile

from .config import (
    EXTRACTED_ROOT,
    MAX_UPLOAD_BYTES,
    RETENTION_HOURS,
    UPLOADS_ROOT,
)
from .errors import NotFoundError, UploadTooLargeError
from .security import (
    check_relative_path,
    is_valid_folder_id,
    new_folder_id,
    normalize_folder_id,
    safe_join,
)

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 1024 * 1024


@dataclass(frozen=True)
class ExtractionFolder:
    folder_id: str
    root: Path
    upload_path: Path
    zip_path: Path


@dataclass(frozen=True)
class FileEntry:
    absolute_path: Path
    relative_path: str


def _now_epoch() -> float:
    return time.time()


def get_folder(folder_id: str) -> ExtractionFolder:
    fid = normalize_folder_id(folder_id)
    return ExtractionFolder(
        folder_id=fid,
        root=(EXTRACTED_ROOT / fid).resolve(),
        upload_path=(UPLOADS_ROOT / fid).resolve(),
        zip_path=(EXTRACTED_ROOT / f"{fid}.zip").resolve(),
    )


def create_folder() -> ExtractionFolder:
    UPLOADS_ROOT.mkdir(parents=True, exist_ok=True)
    return get_folder(new_folder_id())


def ensure_output_dir(folder: ExtractionFolder) -> Path:
    folder.root.mkdir(parents=True, exist_ok=True)
    return folder.root


async def save_upload(folder: ExtractionFolder, upload: UploadFile) -> Path:
    """Stream an UploadFile to uploads/<folder_id>, enforcing the size limit."""
    written = 0
    with folder.upload_path.open("wb") as out:
        while True:
            chunk = await upload.read(_CHUNK_SIZE)
            if not chunk:
                break
            written += len(chunk)
            if written > MAX_UPLOAD_BYTES:
                break
            out.write(chunk)
    if written > MAX_UPLOAD_BYTES:
        folder.upload_path.unlink(missing_ok=True)
        raise UploadTooLargeError("Upload too large")
    return folder.upload_path


def list_files(root_dir: Path, sub_path: str = "") -> list[FileEntry]:
    """Recursively list every file under root_dir.

    Depth-first, in directory-entry order; directories themselves are never
    returned and symlinks (to files or directories) are skipped. Raises
    OSError when root_dir is missing or unreadable.
    """
    results: list[FileEntry] = []
    current = Path(root_dir) / sub_path if sub_path else Path(root_dir)
    with os.scandir(current) as entries:
        for entry in entries:
            rel = os.path.join(sub_path, entry.name) if sub_path else entry.name
            if entry.is_dir(follow_symlinks=False):
                results.extend(list_files(root_dir, rel))
            elif entry.is_file(follow_symlinks=False):
                results.append(FileEntry(absolute_path=Path(entry.path), relative_path=rel))
    return results


def resolve_file(folder: ExtractionFolder, rel_path: str) -> Path:
    """Resolve a client-supplied relative path to a file inside the folder.

    Raises ValidationError if the path escapes the folder root and
    NotFoundError if it does not name an existing regular file.
    """
    rel = check_relative_path(rel_path)
    path = safe_join(folder.root, rel)
    if not path.is_file():
        raise NotFoundError("File not found")
    return path


def touch_folder(folder: ExtractionFolder) -> None:
    # Reads count as activity for retention purposes.
    now = _now_epoch()
    for path in (folder.root, folder.upload_path):
        try:
            os.utime(path, (now, now))
        except FileNotFoundError:
            continue


def _remove_path(path: Path) -> None:
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path, ignore_errors=True)
    else:
        path.unlink(missing_ok=True)


def delete_folder(folder_id: str) -> bool:
    """Delete the upload, extraction tree and zip of one folder.

    Returns True if anything was removed.
    """
    folder = get_folder(folder_id)
    removed = False
    for path in (folder.root, folder.zip_path, folder.upload_path):
        if path.exists():
            _remove_path(path)
            removed = True
    return removed


def _folder_id_of(path: Path) -> str:
    name = path.name
    if name.endswith(".zip"):
        name = name[: -len(".zip")]
    return name


def cleanup_expired_folders() -> int:
    """Delete uploads, extraction trees and stale zips older than the retention window.

    Only entries named after a valid folder id are considered.
    Returns the number of deleted entries.
    """
    ttl_seconds = max(0.0, RETENTION_HOURS) * 3600.0
    if not ttl_seconds:
        return 0

    deleted = 0
    now = _now_epoch()
    for root in (EXTRACTED_ROOT, UPLOADS_ROOT):
        if not root.exists():
            continue
        for child in root.iterdir():
            if not is_valid_folder_id(_folder_id_of(child)):
                continue
            try:
                last_access = child.stat().st_mtime
            except FileNotFoundError:
                continue
            if (now - last_access) > ttl_seconds:
                _remove_path(child)
                deleted += 1
    if deleted:
        logger.info("Retention sweep removed %d expired entries", deleted)
    return deleted
