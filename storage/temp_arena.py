"""
Scoped temp-file arena for one report run
Issues unique paths for chart images and removes all of them at the end of the run
"""

import os
import re
import time
import shutil
import secrets
import tempfile
import logging
from itertools import count
from pathlib import Path
from typing import List, Optional

from config.settings import SETTINGS
from data.models import ArenaHandle
from utils.exceptions import ArenaCreateError, ArenaClosedError

logger = logging.getLogger(__name__)

_ARENA_NAME = re.compile(r'^' + re.escape(SETTINGS['arena_prefix']) + r'(\d+)_')


class TempArena:
    """Owns a per-run directory under the shared temp root.

    Paths handed out by issue() are tracked; close_all() deletes them and the
    directory. Arenas left behind by crashed runs are swept on open() once they
    are older than the TTL.
    """

    def __init__(self, temp_root: Optional[str] = None, ttl_seconds: int = 86400):
        self.temp_root = Path(temp_root or tempfile.gettempdir())
        self.ttl_seconds = ttl_seconds
        self.handle: Optional[ArenaHandle] = None
        self._counter = count(1)

    def __enter__(self) -> 'TempArena':
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close_all()
        return False

    @property
    def directory(self) -> Optional[Path]:
        return self.handle.directory if self.handle else None

    def open(self) -> ArenaHandle:
        """Sweep stale arenas, then create this run's directory"""
        if self.handle is not None and not self.handle.closed:
            return self.handle

        self.sweep_stale()

        prefix = f"{SETTINGS['arena_prefix']}{int(time.time())}_"
        try:
            self.temp_root.mkdir(parents=True, exist_ok=True)
            directory = Path(tempfile.mkdtemp(prefix=prefix, dir=str(self.temp_root)))
        except OSError as e:
            raise ArenaCreateError(f"Cannot create temp arena under {self.temp_root}: {e}") from e

        if not os.access(directory, os.W_OK | os.X_OK):
            shutil.rmtree(directory, ignore_errors=True)
            raise ArenaCreateError(f"Temp arena {directory} is not writable")

        self.handle = ArenaHandle(directory=directory)
        self._counter = count(1)
        logger.info(f"Opened temp arena: {directory}")
        return self.handle

    def issue(self, prefix: str = 'tmp_', suffix: str = '') -> Path:
        """Return a fresh path inside the arena. The file itself is not created."""
        if self.handle is None or self.handle.closed:
            raise ArenaClosedError("Temp arena is not open")
        name = f"{prefix}{next(self._counter):04d}_{secrets.token_hex(4)}{suffix}"
        path = self.handle.directory / name
        self.handle.issued.append(path)
        return path

    def close_all(self) -> None:
        """Delete every issued file and the arena directory. Safe to call repeatedly."""
        handle = self.handle
        if handle is None or handle.closed:
            return
        handle.closed = True

        for path in handle.issued:
            try:
                if path.exists():
                    path.unlink()
            except OSError as e:
                logger.warning(f"Could not delete temp file {path}: {e}")

        try:
            if handle.directory.exists():
                shutil.rmtree(handle.directory)
        except OSError as e:
            logger.warning(f"Could not remove temp arena {handle.directory}: {e}")
        else:
            logger.info(f"Closed temp arena: {handle.directory} ({len(handle.issued)} files issued)")

    def sweep_stale(self, now: Optional[float] = None) -> List[Path]:
        """Remove arena directories older than the TTL left behind by earlier runs"""
        if not self.temp_root.is_dir():
            return []
        now = time.time() if now is None else now
        current = self.directory if self.handle and not self.handle.closed else None
        removed = []

        for entry in self.temp_root.iterdir():
            if not entry.name.startswith(SETTINGS['arena_prefix']) or not entry.is_dir():
                continue
            if current is not None and entry == current:
                continue
            created = self._created_at(entry)
            if created is None or now - created <= self.ttl_seconds:
                continue
            try:
                shutil.rmtree(entry)
                removed.append(entry)
            except OSError as e:
                logger.warning(f"Could not sweep stale temp arena {entry}: {e}")

        if removed:
            logger.info(f"Swept {len(removed)} stale temp arena(s) from {self.temp_root}")
        return removed

    @staticmethod
    def _created_at(path: Path) -> Optional[float]:
        match = _ARENA_NAME.match(path.name)
        if match:
            return float(match.group(1))
        try:
            return path.stat().st_mtime
        except OSError:
            return None
