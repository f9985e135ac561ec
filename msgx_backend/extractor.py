"""Run the external extraction tool as an awaited subprocess."""
from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional, Sequence

from .config import EXTRACT_COMMAND, EXTRACT_TIMEOUT_SECONDS
from .errors import ExtractionError

logger = logging.getLogger(__name__)


def _kill(proc: asyncio.subprocess.Process) -> None:
    try:
        proc.kill()
    except ProcessLookupError:
        # already exited
        return


def build_command(input_path: Path, output_dir: Path, command: Optional[Sequence[str]] = None) -> list[str]:
    base = list(command if command is not None else EXTRACT_COMMAND)
    return [*base, "--out", str(output_dir), str(input_path)]


async def run_extraction(
    input_path: Path,
    output_dir: Path,
    command: Optional[Sequence[str]] = None,
    timeout: Optional[float] = None,
) -> None:
    """Unpack input_path into output_dir with the extraction tool.

    Arguments are passed as an argv list, never through a shell. Raises
    ExtractionError on spawn failure, timeout or a non-zero exit; output_dir
    is left as the tool left it. Tool stdout is logged at debug level.
    """
    argv = build_command(input_path, output_dir, command)
    limit = EXTRACT_TIMEOUT_SECONDS if timeout is None else timeout
    logger.info("Extracting %s", input_path.name)

    try:
        proc = await asyncio.create_subprocess_exec(
            *argv,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        logger.error("Could not start extraction tool %r: %s", argv[0], e)
        raise ExtractionError("Extraction tool could not be started", diagnostics=str(e)) from e

    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=limit if limit > 0 else None)
    except asyncio.TimeoutError:
        _kill(proc)
        await proc.wait()
        logger.error("Extraction of %s timed out after %.0fs", input_path.name, limit)
        raise ExtractionError("Extraction timed out", diagnostics=f"timed out after {limit:g}s")
    except asyncio.CancelledError:
        _kill(proc)
        await proc.wait()
        raise

    err_text = stderr.decode("utf-8", errors="replace").strip()
    if proc.returncode != 0:
        logger.error("Extraction error (exit %s): %s", proc.returncode, err_text)
        raise ExtractionError("Extraction failed", diagnostics=err_text or f"exit status {proc.returncode}")
    out_text = stdout.decode("utf-8", errors="replace").strip()
    if out_text:
        logger.debug("Extraction output for %s: %s", input_path.name, out_text)
