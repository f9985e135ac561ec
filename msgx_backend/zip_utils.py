from __future__ import annotations

import logging
import zipfile
from pathlib import Path
from typing import Iterable
from urllib.parse import unquote

from .errors import NotFoundError, ValidationError, ZipError
from .workspace import ExtractionFolder, resolve_file

logger = logging.getLogger(__name__)


def _collect_members(folder: ExtractionFolder, rel_paths: Iterable[str]) -> list[tuple[Path, str]]:
    """Resolve requested paths to (file, arcname) pairs.

    Missing files are skipped; paths escaping the folder raise ValidationError.
    """
    members: list[tuple[Path, str]] = []
    seen: set[str] = set()
    for raw in rel_paths:
        if not isinstance(raw, str):
            raise ValidationError("File paths must be strings")
        rel = unquote(raw).replace("\\", "/")
        try:
            path = resolve_file(folder, rel)
        except NotFoundError:
            continue
        if rel in seen:
            continue
        seen.add(rel)
        members.append((path, rel))
    return members


def build_zip_bundle(folder: ExtractionFolder, rel_paths: Iterable[str]) -> tuple[Path, list[str]]:
    """Write extracted/<folder_id>.zip holding the requested files.

    Returns the archive path and the names it contains. Raises ZipError if the
    archive cannot be assembled; the partial archive is removed in that case.
    """
    if not folder.root.is_dir():
        raise ValidationError("Folder does not exist.")

    members = _collect_members(folder, rel_paths)
    zip_path = folder.zip_path
    try:
        with zipfile.ZipFile(
            zip_path, mode="w", compression=zipfile.ZIP_DEFLATED, compresslevel=9, strict_timestamps=False
        ) as zf:
            for path, arcname in members:
                zf.write(path, arcname)
    except (OSError, ValueError, zipfile.BadZipFile, zipfile.LargeZipFile) as e:
        logger.error("Zip error for folder %s: %s", folder.folder_id, e)
        zip_path.unlink(missing_ok=True)
        raise ZipError(f"Zip error: {e}") from e
    return zip_path, [arcname for _, arcname in members]


def discard_zip(zip_path: Path) -> None:
    """Remove a served archive. Runs after the response, so failures are only logged."""
    try:
        zip_path.unlink(missing_ok=True)
    except OSError as e:
        logger.warning("Could not delete temporary archive %s: %s", zip_path.name, e)
