"""
Per-run log for the report pipeline
Keeps entries in memory and in a working file, then rotates them into the retained log directory
"""

import os
import shutil
import logging
import threading
from contextlib import contextmanager
from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable, Iterator, List, Optional, Sequence

from config.settings import SETTINGS
from data.models import LogEntry

logger = logging.getLogger(__name__)

# Loggers whose records are mirrored into the run log while a run is active
CAPTURED_LOGGERS = ('reporting', 'storage', 'data', 'utils')


class RunLog:
    """Append-only log of a single pipeline run.

    Without a log directory the log is memory-only and rotate() is a no-op.
    """

    def __init__(self, run_id: str, log_dir: Optional[str] = None, retention_days: int = 7,
                 clock: Callable[[], datetime] = datetime.now):
        self.run_id = run_id
        self.log_dir = Path(log_dir) if log_dir else None
        self.retention_days = retention_days
        self._clock = clock
        self._entries: List[LogEntry] = []
        self._lock = threading.Lock()
        self._fh = None
        self.working_path: Optional[Path] = None
        if self.log_dir is not None:
            self.working_path = self.log_dir / f"{run_id}.log"

    @property
    def entries(self) -> List[LogEntry]:
        with self._lock:
            return list(self._entries)

    def messages(self) -> List[str]:
        return [e.message for e in self.entries]

    def open(self) -> None:
        if self.working_path is None or self._fh is not None:
            return
        self.log_dir.mkdir(parents=True, exist_ok=True)
        self._fh = open(self.working_path, 'a', encoding='utf-8')

    def append(self, message: str, level: str = 'INFO') -> LogEntry:
        entry = LogEntry(timestamp=self._clock(), message=message, level=level)
        with self._lock:
            self._entries.append(entry)
            if self._fh is not None:
                self._fh.write(entry.format() + '\n')
                self._fh.flush()
        return entry

    def close(self) -> None:
        with self._lock:
            if self._fh is not None:
                self._fh.close()
                self._fh = None

    def rotate(self, now: Optional[datetime] = None) -> Optional[Path]:
        """Copy the run log to a timestamped retained file and purge expired logs.

        Returns:
            Path of the retained log, or None when no log directory is configured
        """
        if self.log_dir is None:
            return None
        now = now or self._clock()
        self.close()
        if not self.working_path.exists():
            self.log_dir.mkdir(parents=True, exist_ok=True)
            lines = ''.join(e.format() + '\n' for e in self.entries)
            self.working_path.write_text(lines, encoding='utf-8')

        stamp = now.strftime('%Y%m%d_%H%M%S')
        target = self.log_dir / f"{SETTINGS['retained_log_prefix']}{stamp}.log"
        n = 1
        while target.exists():
            target = self.log_dir / f"{SETTINGS['retained_log_prefix']}{stamp}_{n}.log"
            n += 1
        shutil.copyfile(self.working_path, target)
        self.working_path.unlink()
        logger.info(f"Rotated run log to {target}")

        self.purge_expired(now, keep=(target,))
        return target

    def purge_expired(self, now: Optional[datetime] = None, keep: Sequence[Path] = ()) -> List[Path]:
        """Delete *.log files in the log directory older than the retention window"""
        if self.log_dir is None or not self.log_dir.is_dir():
            return []
        cutoff = ((now or self._clock()) - timedelta(days=self.retention_days)).timestamp()
        keep = {Path(p) for p in keep}
        if self.working_path is not None:
            keep.add(self.working_path)
        removed = []
        for path in self.log_dir.glob('*.log'):
            if path in keep or not path.is_file():
                continue
            try:
                if path.stat().st_mtime < cutoff:
                    path.unlink()
                    removed.append(path)
            except OSError as e:
                logger.warning(f"Could not purge old log {path}: {e}")
        if removed:
            logger.info(f"Purged {len(removed)} log file(s) older than {self.retention_days} days")
        return removed

    @contextmanager
    def capture(self, logger_names: Sequence[str] = CAPTURED_LOGGERS,
                level: int = logging.INFO) -> Iterator['RunLog']:
        """Mirror records from the given loggers into this run log"""
        handler = RunLogHandler(self)
        handler.setLevel(level)
        handler.setFormatter(logging.Formatter('%(name)s - %(message)s'))
        saved = []
        for name in logger_names:
            target = logging.getLogger(name)
            saved.append((target, target.level))
            if target.getEffectiveLevel() > level:
                target.setLevel(level)
            target.addHandler(handler)
        try:
            yield self
        finally:
            for target, old_level in saved:
                target.removeHandler(handler)
                target.setLevel(old_level)


class RunLogHandler(logging.Handler):
    """Logging handler that appends formatted records to a RunLog"""

    def __init__(self, run_log: RunLog):
        super().__init__()
        self.run_log = run_log

    def emit(self, record):
        try:
            self.run_log.append(self.format(record), record.levelname)
        except Exception:
            self.handleError(record)
