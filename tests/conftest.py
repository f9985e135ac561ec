"""Shared fixtures for the test suite."""

from __future__ import annotations

import os
import shlex
import sys
import tempfile
from collections.abc import Generator
from pathlib import Path

import pytest

FAKE_TOOL = Path(__file__).resolve().parent / "fake_extract_tool.py"

# Set env vars BEFORE importing so config points at a throwaway data root.
os.environ["MSGX_DATA_ROOT"] = tempfile.mkdtemp(prefix="msgx-tests-")
os.environ["MSGX_EXTRACT_COMMAND"] = shlex.join([sys.executable, str(FAKE_TOOL), "--use-filename"])
os.environ["MSGX_EXTRACT_TIMEOUT_SECONDS"] = "20"

from fastapi.testclient import TestClient  # noqa: E402

from msgx_backend import workspace  # noqa: E402
from server import app  # noqa: E402


@pytest.fixture()
def client() -> Generator[TestClient, None, None]:
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture()
def folder() -> Generator[workspace.ExtractionFolder, None, None]:
    """An extraction folder laid out the way the tool leaves one."""
    ws = workspace.create_folder()
    workspace.ensure_output_dir(ws)
    (ws.root / "attachments" / "inline").mkdir(parents=True)
    (ws.root / "message.txt").write_text("Body text\n", encoding="utf-8")
    (ws.root / "notes.txt").write_text("remember the milk\n", encoding="utf-8")
    (ws.root / "attachments" / "photo.jpg").write_bytes(b"\xff\xd8\xff\xe0JPEGDATA")
    (ws.root / "attachments" / "inline" / "logo.png").write_bytes(b"\x89PNG\r\n\x1a\nPNGDATA")
    (ws.root / "attachments" / "blob.bin").write_bytes(b"\xff\xfe\x00\x81binary")
    yield ws
    workspace.delete_folder(ws.folder_id)
