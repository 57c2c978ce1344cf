"""Periodic cleanup of synthesized and captured audio left in the temp dir."""

import logging
import time
from pathlib import Path
from typing import Callable, Iterable, Optional

logger = logging.getLogger("mimic.utils.tempfiles")

DEFAULT_PREFIXES = ("tts_", "audio_")


def delete_quietly(path: Path) -> bool:
    """Remove a file, logging (not raising) on failure."""
    try:
        Path(path).unlink()
        return True
    except FileNotFoundError:
        return False
    except OSError as e:
        logger.debug("Could not delete %s: %s", path, e)
        return False


def cleanup_stale_files(
    directory: Path,
    max_age_seconds: float,
    prefixes: Iterable[str] = DEFAULT_PREFIXES,
    clock: Optional[Callable[[], float]] = None,
) -> int:
    """Delete files in ``directory`` whose name starts with one of
    ``prefixes`` and whose mtime is older than ``max_age_seconds``.

    Returns the number of files removed.
    """
    directory = Path(directory)
    if not directory.is_dir():
        return 0
    prefixes = tuple(prefixes)
    now = (clock or time.time)()
    removed = 0
    for entry in directory.iterdir():
        if not entry.is_file() or not entry.name.startswith(prefixes):
            continue
        try:
            age = now - entry.stat().st_mtime
        except OSError:
            continue
        if age > max_age_seconds and delete_quietly(entry):
            removed += 1
    if removed:
        logger.info("Cleaned up %d stale temp files in %s", removed, directory)
    return removed
