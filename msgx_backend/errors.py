from __future__ import annotations


class AppError(Exception):
    """Base error carrying the HTTP status the route layer should answer with."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(AppError):
    status_code = 400


class UploadTooLargeError(AppError):
    status_code = 413


class NotFoundError(AppError):
    status_code = 404


class ExtractionError(AppError):
    """The external extraction tool failed, timed out or could not start."""

    status_code = 500

    def __init__(self, message: str, diagnostics: str = "") -> None:
        super().__init__(message)
        self.diagnostics = diagnostics


class ReadError(AppError):
    status_code = 500


class ZipError(AppError):
    status_code = 500
