"""Backend utilities for the MSGX extraction service.

This package intentionally keeps FastAPI route handlers thin:
- extraction folder lifecycle + retention cleanup
- safe file resolution / path handling
- running the external extraction tool
- attachment descriptors and zip bundles

Security note:
Folder IDs are random 128-bit hex strings. Anyone with the folder id can read
the extracted files, so never log or expose filesystem paths in responses.
"""
