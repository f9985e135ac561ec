from __future__ import annotations

import os
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import List, Optional
from pathlib import Path

from fastapi import FastAPI, File, Request, UploadFile
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse, PlainTextResponse, Response
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel, ConfigDict, Field
from starlette.background import BackgroundTask

from msgx_backend.config import (
    CLEANUP_INTERVAL_SECONDS,
    EXPOSE_TOOL_DIAGNOSTICS,
    LOG_LEVEL,
    ZIP_DOWNLOAD_NAME,
)
from msgx_backend.descriptors import build_descriptors, guess_mime, is_image
from msgx_backend.errors import AppError, ExtractionError, ReadError, ValidationError
from msgx_backend.extractor import run_extraction
from msgx_backend.workspace import (
    cleanup_expired_folders,
    create_folder,
    delete_folder,
    ensure_output_dir,
    get_folder,
    list_files,
    resolve_file,
    save_upload,
    touch_folder,
)
from msgx_backend.zip_utils import build_zip_bundle, discard_zip


BASE_DIR = Path(__file__).resolve().parent
PUBLIC_DIR = BASE_DIR / "public"

logger = logging.getLogger("msgx.server")

_FILE_HEADERS = {"Cache-Control": "no-store", "X-Content-Type-Options": "nosniff"}


class ZipRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    folder_id: Optional[str] = Field(default=None, alias="folderId")
    files: Optional[List[str]] = None


async def _cleanup_worker() -> None:
    # Periodically delete expired uploads and extraction folders.
    while True:
        try:
            cleanup_expired_folders()
        except Exception:
            logger.exception("Retention sweep failed")
        await asyncio.sleep(max(30, CLEANUP_INTERVAL_SECONDS))


@asynccontextmanager
async def lifespan(app: FastAPI):
    # The worker runs a first sweep immediately, then on every interval.
    task = asyncio.create_task(_cleanup_worker())
    app.state._cleanup_task = task
    try:
        yield
    finally:
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass


app = FastAPI(lifespan=lifespan)

# Allow the browser app to call the API even when index.html is opened from disk
# (file:// pages send Origin: null, which otherwise fails CORS).
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(AppError)
async def _app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    detail = exc.message
    if isinstance(exc, ExtractionError) and EXPOSE_TOOL_DIAGNOSTICS and exc.diagnostics:
        detail = exc.diagnostics
    return JSONResponse({"detail": detail}, status_code=exc.status_code)


@app.exception_handler(RequestValidationError)
async def _request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    # Bad request input is a 400 here, not FastAPI's default 422.
    return JSONResponse(
        {"detail": "Invalid request", "errors": jsonable_encoder(exc.errors())},
        status_code=400,
    )


@app.get("/health")
async def health() -> JSONResponse:
    return JSONResponse({"ok": True})


@app.post("/extract")
async def extract(msgfile: Optional[UploadFile] = File(None)) -> JSONResponse:
    """Upload a .msg file, unpack it with the extraction tool and list the results.

    Returns {folderId, attachments: [{relativePath, size, mime, previewUrl, downloadUrl}]}.
    """
    if msgfile is None or not msgfile.filename:
        raise ValidationError("No .msg file uploaded")

    folder = create_folder()
    try:
        upload_path = await save_upload(folder, msgfile)
    finally:
        await msgfile.close()

    # Full extraction (nested folders preserved). No rollback on failure.
    output_dir = ensure_output_dir(folder)
    await run_extraction(upload_path, output_dir)

    try:
        entries = list_files(output_dir)
        attachments = build_descriptors(folder.folder_id, entries)
    except OSError as e:
        logger.error("Cannot list extracted files for %s: %s", folder.folder_id, e)
        raise ReadError("Cannot read extracted files") from e

    return JSONResponse(
        {
            "folderId": folder.folder_id,
            "attachments": [descriptor.as_dict() for descriptor in attachments],
        }
    )


@app.get("/preview/{folder_id}/{file_path:path}")
async def preview(folder_id: str, file_path: str) -> Response:
    """Serve an extracted file inline: images as-is, everything else as UTF-8 text."""
    folder = get_folder(folder_id)
    path = resolve_file(folder, file_path)
    touch_folder(folder)

    if is_image(path.name):
        return FileResponse(path, media_type=guess_mime(path.name), headers=_FILE_HEADERS)

    try:
        text = path.read_bytes().decode("utf-8")
    except (UnicodeDecodeError, OSError) as e:
        raise ReadError("Cannot read file") from e
    return PlainTextResponse(text, headers=_FILE_HEADERS)


@app.get("/download/{folder_id}/{file_path:path}")
async def download(folder_id: str, file_path: str) -> FileResponse:
    """Serve an extracted file as an attachment."""
    folder = get_folder(folder_id)
    path = resolve_file(folder, file_path)
    touch_folder(folder)
    return FileResponse(path, filename=path.name, headers=_FILE_HEADERS)


@app.post("/zip")
async def zip_files(payload: ZipRequest) -> FileResponse:
    """Bundle the selected files into download.zip; the archive is deleted once sent."""
    if not payload.folder_id or not payload.files:
        raise ValidationError("No files selected.")

    folder = get_folder(payload.folder_id)
    zip_path, names = build_zip_bundle(folder, payload.files)
    logger.info("Zip bundle for %s: %d of %d requested files", folder.folder_id, len(names), len(payload.files))
    touch_folder(folder)
    return FileResponse(
        zip_path,
        media_type="application/zip",
        filename=ZIP_DOWNLOAD_NAME,
        headers=_FILE_HEADERS,
        background=BackgroundTask(discard_zip, zip_path),
    )


@app.delete("/folders/{folder_id}")
async def delete_folder_api(folder_id: str) -> JSONResponse:
    # Idempotent: deleting a missing folder is treated as success.
    delete_folder(folder_id)
    return JSONResponse({"ok": True})


# Static upload page (so you can open http://localhost:3000/).
# Note: define API routes above, then mount static at '/'.
if PUBLIC_DIR.is_dir():
    app.mount("/", StaticFiles(directory=str(PUBLIC_DIR), html=True), name="static")


if __name__ == "__main__":
    # Convenience: python server.py
    import uvicorn

    logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    port = int(os.environ.get("PORT", "3000"))
    uvicorn.run("server:app", host="127.0.0.1", port=port, reload=False)
