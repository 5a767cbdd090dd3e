"""Crash-safe writes for worktree record files.

A record is never rewritten in place. The new content goes to a hidden
sibling file, is flushed to disk, then renamed over the record, so a
reader sees either the old file or the new one. Readers need no lock.
"""

import logging
import os
import tempfile
from pathlib import Path
from typing import Union

logger = logging.getLogger(__name__)

TEMP_SUFFIX = ".tmp"


def atomic_write_text(path: Union[str, Path], data: str, perms: int = 0o644) -> None:
    """
    Replace the file at path with data in one rename.

    Args:
        path: Destination file. Missing parent directories are created.
        data: Text to write, UTF-8 encoded.
        perms: Mode for the new file.

    Raises:
        OSError: If the data cannot be written or moved into place. The
            temporary file is removed first.
    """
    dest = Path(path)
    dest.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_name = tempfile.mkstemp(dir=dest.parent, prefix=f".{dest.name}.", suffix=TEMP_SUFFIX)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as tmp:
            tmp.write(data)
            tmp.flush()
            os.fsync(tmp.fileno())
        os.chmod(tmp_name, perms)
        os.replace(tmp_name, dest)
    except OSError:
        Path(tmp_name).unlink(missing_ok=True)
        raise

    logger.debug(f"Wrote {len(data)} characters to {dest}")
