from __future__ import annotations

from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Iterable
from urllib.parse import quote

from .config import DEFAULT_MIME, IMAGE_EXTS, TEXT_EXTS
from .workspace import FileEntry


@dataclass(frozen=True)
class AttachmentDescriptor:
    relative_path: str
    size: int
    mime: str
    preview_url: str
    download_url: str

    def as_dict(self) -> dict:
        return {
            "relativePath": self.relative_path,
            "size": self.size,
            "mime": self.mime,
            "previewUrl": self.preview_url,
            "downloadUrl": self.download_url,
        }


def guess_mime(name: str) -> str:
    """Map a file name to a MIME type by extension alone."""
    ext = PurePosixPath(name.replace("\\", "/")).suffix.lower()
    if ext in IMAGE_EXTS:
        if ext == ".jpg":
            return "image/jpeg"
        return f"image/{ext[1:]}"
    if ext == ".pdf":
        return "application/pdf"
    if ext in TEXT_EXTS:
        return "text/plain"
    return DEFAULT_MIME


def is_image(name: str) -> bool:
    return guess_mime(name).startswith("image/")


def file_url(kind: str, folder_id: str, rel_path: str) -> str:
    # One encoding pass, no safe characters: "a/b.txt" -> "a%2Fb.txt".
    return f"/{kind}/{folder_id}/{quote(rel_path, safe='')}"


def build_descriptor(folder_id: str, entry: FileEntry) -> AttachmentDescriptor:
    rel = entry.relative_path.replace("\\", "/")
    return AttachmentDescriptor(
        relative_path=rel,
        size=entry.absolute_path.stat().st_size,
        mime=guess_mime(rel),
        preview_url=file_url("preview", folder_id, rel),
        download_url=file_url("download", folder_id, rel),
    )


def build_descriptors(folder_id: str, entries: Iterable[FileEntry]) -> list[AttachmentDescriptor]:
    return [build_descriptor(folder_id, entry) for entry in entries]
