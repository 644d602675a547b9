"""Persistence of the sync-group topology to a JSON state file."""

import contextlib
import json
import logging
import os
from pathlib import Path

from .constants import APP_NAME, SYNC_FILE
from .topology import SyncGroupTopology

logger = logging.getLogger(APP_NAME)


def load_topology(path: Path | None = None) -> SyncGroupTopology:
    """Reads the saved topology; a missing or unreadable file yields an empty one.

    Args:
        path (Path | None): State file. Defaults to SYNC_FILE.

    Returns:
        SyncGroupTopology: The restored topology.
    """
    state_file = path or SYNC_FILE
    if not state_file.exists():
        return SyncGroupTopology()

    try:
        content = state_file.read_text(encoding="utf-8").strip()
        if not content:
            return SyncGroupTopology()
        return SyncGroupTopology.from_dict(json.loads(content))
    except (OSError, ValueError) as e:
        logger.warning(f"Failed to read sync groups from {state_file}: {e}")
        return SyncGroupTopology()


def save_topology(topology: SyncGroupTopology, path: Path | None = None) -> None:
    """Persists the topology to disk atomically.

    Args:
        topology (SyncGroupTopology): The topology to save.
        path (Path | None): State file. Defaults to SYNC_FILE.

    Raises:
        OSError: If the file cannot be written.
    """
    state_file = path or SYNC_FILE
    state_file.parent.mkdir(parents=True, exist_ok=True)
    tmp_file = state_file.with_suffix(".tmp")

    try:
        with open(tmp_file, "w", encoding="utf-8") as f:
            json.dump(topology.to_dict(), f, ensure_ascii=False, indent=2)
            f.flush()
            os.fsync(f.fileno())

        os.replace(tmp_file, state_file)
    except OSError as e:
        logger.error(f"Failed to write sync groups: {e}")
        if tmp_file.exists():
            with contextlib.suppress(OSError):
                tmp_file.unlink()
        raise
