from __future__ import annotations

import os
import shlex
import sys
from pathlib import Path


def _env_flag(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


# Root directory for uploads and extraction trees.
# Default: project-local ./data for easier inspection and cleanup.
# Override with env var MSGX_DATA_ROOT.
_root_raw = os.environ.get("MSGX_DATA_ROOT")
if _root_raw and _root_raw.strip():
    DATA_ROOT = Path(_root_raw)
else:
    # msgx_backend/ -> project root
    DATA_ROOT = Path(__file__).resolve().parent.parent / "data"
DATA_ROOT = DATA_ROOT.resolve()

# Raw uploads land here as uploads/<folder_id>.
UPLOADS_ROOT = DATA_ROOT / "uploads"
# Extraction trees land here as extracted/<folder_id>/, zips as extracted/<folder_id>.zip.
EXTRACTED_ROOT = DATA_ROOT / "extracted"
UPLOADS_ROOT.mkdir(parents=True, exist_ok=True)
EXTRACTED_ROOT.mkdir(parents=True, exist_ok=True)

# External extraction tool. "--out <dir> <input>" is appended at call time.
_cmd_raw = os.environ.get("MSGX_EXTRACT_COMMAND")
if _cmd_raw and _cmd_raw.strip():
    EXTRACT_COMMAND = shlex.split(_cmd_raw)
else:
    EXTRACT_COMMAND = [sys.executable, "-m", "extract_msg", "--use-filename"]

# A hung tool must not hang the request forever.
EXTRACT_TIMEOUT_SECONDS = float(os.environ.get("MSGX_EXTRACT_TIMEOUT_SECONDS", "120"))

# Pass the tool's stderr through to clients. Turn off for public deployments.
EXPOSE_TOOL_DIAGNOSTICS = _env_flag("MSGX_EXPOSE_TOOL_DIAGNOSTICS", True)

# Upload limit (best-effort; also enforced by proxy typically).
MAX_UPLOAD_BYTES = int(os.environ.get("MSGX_MAX_UPLOAD_BYTES", str(50 * 1024 * 1024)))  # 50MB

# How long uploads and extraction folders may live without activity. 0 keeps them forever.
RETENTION_HOURS = float(os.environ.get("MSGX_RETENTION_HOURS", "24"))

# How often the server scans for expired folders.
CLEANUP_INTERVAL_SECONDS = int(os.environ.get("MSGX_CLEANUP_INTERVAL_SECONDS", "600"))

LOG_LEVEL = os.environ.get("MSGX_LOG_LEVEL", "INFO").upper()

# Extension -> MIME type. Extension-only, no content sniffing.
# .html and .rtf are served as text/plain so previews never render markup.
IMAGE_EXTS = {".png", ".jpg", ".jpeg", ".gif", ".webp", ".bmp"}
TEXT_EXTS = {".txt", ".log", ".rtf", ".html"}
DEFAULT_MIME = "application/octet-stream"
ZIP_DOWNLOAD_NAME = "download.zip"
