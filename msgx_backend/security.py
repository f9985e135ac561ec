from __future__ import annotations

import re
import uuid
from pathlib import Path, PurePosixPath

from .errors import ValidationError


_FOLDER_ID_RE = re.compile(r"^[0-9a-f]{32}$")


def new_folder_id() -> str:
    return uuid.uuid4().hex


def normalize_folder_id(folder_id: str) -> str:
    """Validate and normalize a folder id.

    Folder ids double as directory names, so validate them strictly to rule
    out separators and dot segments before they touch the filesystem.
    """
    if not isinstance(folder_id, str):
        raise ValidationError("Invalid folder id")
    folder_id = folder_id.strip().lower()
    if not _FOLDER_ID_RE.match(folder_id):
        raise ValidationError("Invalid folder id")
    return folder_id


def is_valid_folder_id(name: str) -> bool:
    try:
        normalize_folder_id(name)
    except ValidationError:
        return False
    return True


def check_relative_path(rel_path: str) -> str:
    """Reject client-supplied relative paths that are obviously unsafe.

    Returns the path with backslashes turned into forward slashes.
    """
    if not isinstance(rel_path, str) or not rel_path.strip():
        raise ValidationError("Empty file path")
    if "\x00" in rel_path:
        raise ValidationError("Invalid file path")
    normalized = rel_path.replace("\\", "/")
    if normalized.startswith("/"):
        raise ValidationError("Absolute paths are not allowed")
    if ":" in normalized:
        # block drive letters / weird schemes
        raise ValidationError("Invalid file path")
    if any(part == ".." for part in PurePosixPath(normalized).parts):
        raise ValidationError("Path traversal attempt")
    return normalized


def safe_join(base_dir: Path, *parts: str) -> Path:
    """Join paths and ensure the result stays within base_dir.

    This defends against path traversal when serving user-controlled paths,
    including escapes through symlinks inside the extraction tree.
    """
    base_dir = base_dir.resolve()
    candidate = base_dir
    for part in parts:
        candidate = candidate / part
    resolved = candidate.resolve()
    if resolved == base_dir:
        return resolved
    if base_dir not in resolved.parents:
        raise ValidationError("Path traversal attempt")
    return resolved
