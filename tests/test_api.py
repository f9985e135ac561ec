from __future__ import annotations

import io
import logging
import os
import zipfile

import pytest
from fastapi.testclient import TestClient

import server
from msgx_backend import workspace


def _extract(client: TestClient, payload: bytes = b"MSG"):
    return client.post(
        "/extract",
        files={"msgfile": ("sample.msg", payload, "application/vnd.ms-outlook")},
    )


def test_health(client: TestClient) -> None:
    assert client.get("/health").json() == {"ok": True}


def test_extract_returns_manifest(client: TestClient) -> None:
    response = _extract(client)

    assert response.status_code == 200
    payload = response.json()
    folder_id = payload["folderId"]
    attachments = {att["relativePath"]: att for att in payload["attachments"]}
    try:
        assert set(attachments) == {"message.txt", "notes.txt", "attachments/photo.jpg"}
        photo = attachments["attachments/photo.jpg"]
        assert photo["mime"] == "image/jpeg"
        assert photo["previewUrl"] == f"/preview/{folder_id}/attachments%2Fphoto.jpg"
        assert photo["downloadUrl"] == f"/download/{folder_id}/attachments%2Fphoto.jpg"
        assert photo["size"] == len(b"\xff\xd8\xff\xe0JPEGDATA")
        assert attachments["notes.txt"]["mime"] == "text/plain"
        assert workspace.get_folder(folder_id).upload_path.read_bytes() == b"MSG"

        preview = client.get(photo["previewUrl"])
        assert preview.status_code == 200
        assert preview.headers["content-type"] == "image/jpeg"
        assert preview.content == b"\xff\xd8\xff\xe0JPEGDATA"
    finally:
        client.delete(f"/folders/{folder_id}")


def test_extract_without_file_is_400(client: TestClient) -> None:
    response = client.post("/extract", files={"other": ("x.txt", b"x", "text/plain")})
    assert response.status_code == 400
    assert response.json() == {"detail": "No .msg file uploaded"}


def test_extract_tool_failure_passes_diagnostics(client: TestClient) -> None:
    response = _extract(client, b"FAIL")
    assert response.status_code == 500
    assert "corrupt container" in response.json()["detail"]


def test_extract_tool_failure_scrubbed(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(server, "EXPOSE_TOOL_DIAGNOSTICS", False)
    response = _extract(client, b"FAIL")
    assert response.status_code == 500
    assert response.json() == {"detail": "Extraction failed"}


def test_extract_upload_too_large(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(workspace, "MAX_UPLOAD_BYTES", 2)
    response = _extract(client, b"MSG")
    assert response.status_code == 413


def test_preview_text(client: TestClient, folder) -> None:
    response = client.get(f"/preview/{folder.folder_id}/notes.txt")
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/plain")
    assert response.text == "remember the milk\n"
    assert response.headers["x-content-type-options"] == "nosniff"


def test_preview_nested_image(client: TestClient, folder) -> None:
    response = client.get(f"/preview/{folder.folder_id}/attachments%2Finline%2Flogo.png")
    assert response.status_code == 200
    assert response.headers["content-type"] == "image/png"
    assert "attachment" not in response.headers.get("content-disposition", "")


def test_preview_undecodable_file_is_500(client: TestClient, folder) -> None:
    response = client.get(f"/preview/{folder.folder_id}/attachments%2Fblob.bin")
    assert response.status_code == 500
    assert response.json() == {"detail": "Cannot read file"}


def test_preview_missing_is_404(client: TestClient, folder) -> None:
    response = client.get(f"/preview/{folder.folder_id}/missing.txt")
    assert response.status_code == 404
    assert response.json() == {"detail": "File not found"}


def test_preview_unknown_folder_is_404(client: TestClient) -> None:
    response = client.get(f"/preview/{'0' * 32}/notes.txt")
    assert response.status_code == 404


@pytest.mark.parametrize("kind", ["preview", "download"])
def test_traversal_is_rejected(client: TestClient, folder, kind: str) -> None:
    folder.upload_path.write_bytes(b"raw upload")
    response = client.get(f"/{kind}/{folder.folder_id}/..%2F..%2Fuploads%2F{folder.folder_id}")
    assert response.status_code == 400
    assert b"raw upload" not in response.content


def test_bad_folder_id_is_rejected(client: TestClient) -> None:
    response = client.get("/download/not-a-folder/notes.txt")
    assert response.status_code == 400


def test_download_forces_attachment(client: TestClient, folder) -> None:
    response = client.get(f"/download/{folder.folder_id}/attachments%2Fphoto.jpg")
    assert response.status_code == 200
    assert response.headers["content-disposition"].startswith("attachment")
    assert 'filename="photo.jpg"' in response.headers["content-disposition"]
    assert response.content == b"\xff\xd8\xff\xe0JPEGDATA"


def test_download_missing_is_404(client: TestClient, folder) -> None:
    assert client.get(f"/download/{folder.folder_id}/nope.pdf").status_code == 404


def test_zip_partial_match_and_cleanup(client: TestClient, folder) -> None:
    response = client.post(
        "/zip",
        json={"folderId": folder.folder_id, "files": ["notes.txt", "missing.txt"]},
    )

    assert response.status_code == 200
    assert response.headers["content-type"] == "application/zip"
    assert 'filename="download.zip"' in response.headers["content-disposition"]
    with zipfile.ZipFile(io.BytesIO(response.content)) as zf:
        assert zf.namelist() == ["notes.txt"]
        assert zf.read("notes.txt") == b"remember the milk\n"
    assert not folder.zip_path.exists()


def test_zip_nested_paths(client: TestClient, folder) -> None:
    wanted = ["attachments/photo.jpg", "attachments/inline/logo.png"]
    response = client.post("/zip", json={"folderId": folder.folder_id, "files": wanted})

    assert response.status_code == 200
    with zipfile.ZipFile(io.BytesIO(response.content)) as zf:
        assert sorted(zf.namelist()) == sorted(wanted)
        for rel in wanted:
            assert zf.read(rel) == (folder.root / rel).read_bytes()


@pytest.mark.parametrize(
    "body",
    [
        {"files": ["notes.txt"]},
        {"folderId": "", "files": ["notes.txt"]},
        {"folderId": "0" * 32, "files": []},
        {"folderId": "0" * 32},
        {"folderId": "0" * 32, "files": ["notes.txt"]},
        {"folderId": "0" * 32, "files": [1, 2]},
        {"folderId": "../x", "files": ["notes.txt"]},
    ],
)
def test_zip_bad_input_is_400(client: TestClient, body: dict) -> None:
    assert client.post("/zip", json=body).status_code == 400


def test_zip_malformed_json_is_400(client: TestClient) -> None:
    response = client.post("/zip", content=b"{not json", headers={"Content-Type": "application/json"})
    assert response.status_code == 400


def test_zip_traversal_is_400(client: TestClient, folder) -> None:
    response = client.post(
        "/zip",
        json={"folderId": folder.folder_id, "files": ["notes.txt", "../../uploads/x"]},
    )
    assert response.status_code == 400
    assert not folder.zip_path.exists()


def test_delete_folder(client: TestClient, folder) -> None:
    assert client.delete(f"/folders/{folder.folder_id}").json() == {"ok": True}
    assert not folder.root.exists()
    assert client.get(f"/preview/{folder.folder_id}/notes.txt").status_code == 404


def test_extract_listing_failure_is_500(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    def unreadable(root_dir, sub_path=""):
        raise PermissionError("permission denied")

    monkeypatch.setattr(server, "list_files", unreadable)

    response = _extract(client)

    assert response.status_code == 500
    assert response.json() == {"detail": "Cannot read extracted files"}


def test_preview_keeps_line_endings(client: TestClient, folder) -> None:
    (folder.root / "crlf.txt").write_bytes(b"line1\r\nline2\rline3\r\n")

    response = client.get(f"/preview/{folder.folder_id}/crlf.txt")

    assert response.status_code == 200
    assert response.content == b"line1\r\nline2\rline3\r\n"


def test_zip_old_timestamp_is_served_and_cleaned(client: TestClient, folder) -> None:
    os.utime(folder.root / "notes.txt", (0, 0))

    response = client.post("/zip", json={"folderId": folder.folder_id, "files": ["notes.txt"]})

    assert response.status_code == 200
    with zipfile.ZipFile(io.BytesIO(response.content)) as zf:
        assert zf.namelist() == ["notes.txt"]
    assert not folder.zip_path.exists()


def test_zip_logs_member_count(client: TestClient, folder, caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.INFO, logger="msgx.server"):
        client.post("/zip", json={"folderId": folder.folder_id, "files": ["notes.txt", "missing.txt"]})

    assert "1 of 2 requested files" in caplog.text
