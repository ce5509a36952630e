"""
Output guard for report destinations
Validates destination paths and serializes writers with a sidecar file lock
"""

import os
import re
import time
import logging
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterator, List, Optional, Union

from filelock import FileLock, Timeout

from config.settings import SETTINGS
from data.models import LockTicket
from utils.exceptions import (
    InvalidFilenameError,
    LockTimeoutError,
    NotWritableError,
    PathOutsideAllowedDirError,
    ValidationError,
)

logger = logging.getLogger(__name__)

PathLike = Union[str, os.PathLike]

# Japanese script ranges accepted in filenames besides ASCII
FILENAME_SCRIPT_RANGES = (
    (0x3005, 0x3005),  # iteration mark
    (0x3040, 0x309F),  # Hiragana
    (0x30A0, 0x30FF),  # Katakana
    (0x3400, 0x4DBF),  # CJK extension A
    (0x4E00, 0x9FFF),  # CJK unified ideographs
    (0xFF01, 0xFF5E),  # full-width ASCII forms
)

FILENAME_PATTERN = re.compile(
    '^[A-Za-z0-9_\\-. ()'
    + ''.join(f'{chr(lo)}-{chr(hi)}' for lo, hi in FILENAME_SCRIPT_RANGES)
    + ']+$'
)

MAX_FILENAME_LENGTH = 255


def _check_containment(path: Path, allowed: Path) -> Optional[ValidationError]:
    if path.parent != allowed:
        return PathOutsideAllowedDirError(
            f"Output path {path} is outside the allowed directory {allowed}", path=path
        )
    return None


def _check_filename(path: Path, allowed: Path) -> Optional[ValidationError]:
    name = path.name
    if not name or name.strip('.') == '' or len(name) > MAX_FILENAME_LENGTH:
        return InvalidFilenameError(f"Invalid output filename: {name!r}", path=path)
    if not FILENAME_PATTERN.fullmatch(name):
        return InvalidFilenameError(f"Output filename contains disallowed characters: {name!r}", path=path)
    return None


def _check_writable(path: Path, allowed: Path) -> Optional[ValidationError]:
    if not allowed.is_dir():
        return NotWritableError(f"Allowed output directory does not exist: {allowed}", path=path)
    if not os.access(allowed, os.W_OK | os.X_OK):
        return NotWritableError(f"Allowed output directory is not writable: {allowed}", path=path)
    if path.exists():
        if not path.is_file():
            return NotWritableError(f"Output path exists and is not a regular file: {path}", path=path)
        if not os.access(path, os.W_OK):
            return NotWritableError(f"Existing output file is not writable: {path}", path=path)
    return None


# Order matters: the first failing rule decides the error
VALIDATION_RULES: List[Callable[[Path, Path], Optional[ValidationError]]] = [
    _check_containment,
    _check_filename,
    _check_writable,
]


def _holds_current_file(lock: FileLock, lock_path: Path) -> bool:
    """True when the locked descriptor is still the file at lock_path"""
    # filelock keeps the open descriptor on its (thread-local) context
    fd = lock._context.lock_file_fd
    if fd is None:
        return False
    try:
        held = os.fstat(fd)
        current = os.stat(lock_path)
    except FileNotFoundError:
        return False
    return (held.st_dev, held.st_ino) == (current.st_dev, current.st_ino)


def canonicalize(requested_path: PathLike, allowed_dir: PathLike) -> Path:
    """Absolute, symlink-free form of requested_path; relative paths are taken from allowed_dir"""
    requested = Path(os.fspath(requested_path))
    if not requested.is_absolute():
        requested = Path(os.fspath(allowed_dir)) / requested
    return Path(os.path.realpath(requested))


class OutputGuard:
    """Guards writes into a single allow-listed output directory"""

    def __init__(self, retries: int = 10, backoff_seconds: float = 1.0,
                 sleep: Callable[[float], None] = time.sleep):
        self.retries = retries
        self.backoff_seconds = backoff_seconds
        self._sleep = sleep

    def validate(self, requested_path: PathLike, allowed_dir: PathLike) -> Path:
        """
        Resolve requested_path and check it against allowed_dir.

        Returns:
            Canonical destination path

        Raises:
            PathOutsideAllowedDirError, InvalidFilenameError, NotWritableError
        """
        allowed = Path(os.path.realpath(os.fspath(allowed_dir)))
        path = canonicalize(requested_path, allowed)
        for rule in VALIDATION_RULES:
            error = rule(path, allowed)
            if error is not None:
                logger.error(f"Output path rejected ({error.rule}): {error}")
                raise error
        logger.info(f"Output path validated: {path}")
        return path

    def acquire_lock(self, canonical_path: PathLike) -> LockTicket:
        """Take the exclusive sidecar lock for canonical_path, retrying with a fixed backoff"""
        target = Path(canonical_path)
        lock_path = target.with_name(target.name + SETTINGS['lock_suffix'])
        lock = FileLock(str(lock_path))

        attempts = 0
        while True:
            attempts += 1
            stale = False
            try:
                lock.acquire(timeout=0)
            except Timeout:
                pass
            else:
                if _holds_current_file(lock, lock_path):
                    break
                # The previous holder unlinked this inode before unlocking it
                lock.release(force=True)
                stale = True

            if attempts > self.retries:
                logger.error(f"Lock timeout on {lock_path} after {attempts} attempts")
                raise LockTimeoutError(target, attempts)
            if stale:
                logger.info(f"Lock file {lock_path} was replaced while waiting, retry {attempts}/{self.retries}")
            else:
                logger.info(f"Output {target} is locked by another process, retry {attempts}/{self.retries}")
                self._sleep(self.backoff_seconds)

        ticket = LockTicket(
            target_path=target,
            lock_path=lock_path,
            holder_pid=os.getpid(),
            acquired_at=datetime.now(),
            handle=lock,
        )
        try:
            with open(lock_path, 'w', encoding='utf-8') as fh:
                fh.write(f"{ticket.holder_pid}\n")
        except OSError as e:
            logger.warning(f"Could not record holder PID in {lock_path}: {e}")
        logger.info(f"Acquired output lock {lock_path} (pid {ticket.holder_pid})")
        return ticket

    def release_lock(self, ticket: Optional[LockTicket]) -> None:
        """Delete the sidecar file, then unlock. Redundant calls are no-ops.

        The file is removed while the lock is still held, so a waiter can only
        win the old inode after it is unlinked, which acquire_lock() detects.
        """
        if ticket is None or ticket.released:
            return
        ticket.released = True
        lock = ticket.handle
        ticket.handle = None
        try:
            ticket.lock_path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Could not delete lock file {ticket.lock_path}: {e}")
        finally:
            if lock is not None:
                lock.release(force=True)
        logger.info(f"Released output lock {ticket.lock_path}")

    @contextmanager
    def locked(self, canonical_path: PathLike) -> Iterator[LockTicket]:
        ticket = self.acquire_lock(canonical_path)
        try:
            yield ticket
        finally:
            self.release_lock(ticket)


def write_atomic(path: PathLike, data: bytes) -> int:
    """Write bytes next to path and move them into place in one step"""
    target = Path(path)
    staging = target.with_name(f".{target.name}.{os.getpid()}.tmp")
    try:
        with open(staging, 'wb') as fh:
            fh.write(data)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(staging, target)
    except BaseException:
        if staging.exists():
            staging.unlink()
        raise
    return len(data)
