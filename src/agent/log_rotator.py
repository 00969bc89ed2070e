"""
src/agent/log_rotator.py

Purpose: Size-based rotation and watermark-based retention of EVE logs
Context: Suricata appends to a single active eve.json. Left alone it grows
         without bound, so the agent renames it to a timestamped archive once
         it passes a size threshold and later deletes archives whose events
         have already been forwarded.

Rotation renames the active log to <active_basename>.<YYYYMMDDHHMMSS> (UTC).
Retention only deletes basenames matching eve.*.json (never eve.json
itself or the active file) that were modified before the watermark.
Archives written by rotation do not match that pattern and are kept.
"""

import asyncio
import fnmatch
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, List, Optional

from watermark import Watermark

logger = logging.getLogger(__name__)

ACTIVE_FILE_MODE = 0o666
SURICATA_ARCHIVE_GLOB = 'eve.*.json'


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class LogRotator:
    """Rotates the active EVE log and sweeps old archives"""

    def __init__(
        self,
        active_log_file,
        log_dir,
        max_size_bytes: int,
        watermark: Watermark,
        now: Callable[[], datetime] = _utc_now
    ):
        self.active_log_file = Path(active_log_file)
        self.log_dir = Path(log_dir)
        self.max_size_bytes = max_size_bytes
        self.watermark = watermark
        self._now = now

    def ensure_active_file(self):
        """Create the active log (and its directory) if missing"""
        self.active_log_file.parent.mkdir(parents=True, exist_ok=True)
        if not self.active_log_file.exists():
            self._create_active_file()
            logger.info(f"Created active log file: {self.active_log_file}")

    def rotate_if_needed(self) -> Optional[Path]:
        """
        Rotate the active log if it is larger than the threshold

        Returns:
            Path of the archive the active log was renamed to, or None if no
            rotation happened
        """
        try:
            size = self.active_log_file.stat().st_size
        except FileNotFoundError:
            try:
                self.ensure_active_file()
            except OSError as e:
                logger.error(f"Failed to create active log {self.active_log_file}: {e}")
            return None
        except OSError as e:
            logger.error(f"Failed to stat {self.active_log_file}: {e}")
            return None

        if size <= self.max_size_bytes:
            return None

        timestamp = self._now().strftime('%Y%m%d%H%M%S')
        backup = self.log_dir / f"{self.active_log_file.name}.{timestamp}"

        if backup.exists():
            logger.warning(f"Archive {backup} already exists, postponing rotation")
            return None

        try:
            os.rename(self.active_log_file, backup)
        except OSError as e:
            logger.error(f"Failed to rotate {self.active_log_file}: {e}")
            return None

        try:
            self._create_active_file()
        except OSError as e:
            logger.error(f"Failed to recreate active log {self.active_log_file}: {e}")

        logger.info(
            f"Rotated {self.active_log_file} ({size} bytes) to {backup.name}"
        )
        return backup

    def is_archive_name(self, name: str) -> bool:
        if name == 'eve.json' or name == self.active_log_file.name:
            return False
        return fnmatch.fnmatchcase(name, SURICATA_ARCHIVE_GLOB)

    def sweep(self) -> List[Path]:
        """
        Delete archives older than the watermark

        Returns:
            Paths that were deleted
        """
        cutoff = self.watermark.get()
        if cutoff is None:
            logger.debug("No events processed yet, skipping retention sweep")
            return []

        try:
            entries = list(os.scandir(self.log_dir))
        except OSError as e:
            logger.error(f"Failed to read log directory {self.log_dir}: {e}")
            return []

        active = os.path.abspath(self.active_log_file)
        deleted = []

        for entry in entries:
            try:
                if not entry.is_file(follow_symlinks=False):
                    continue
                if os.path.abspath(entry.path) == active:
                    continue
                if not self.is_archive_name(entry.name):
                    continue
                if entry.stat(follow_symlinks=False).st_mtime >= cutoff:
                    continue

                os.remove(entry.path)
                deleted.append(Path(entry.path))
                logger.info(f"Deleted archived log: {entry.name}")
            except OSError as e:
                logger.error(f"Failed to process {entry.path}: {e}")

        return deleted

    async def run_retention(self, interval: float):
        """Sweep forever, every `interval` seconds"""
        while True:
            await asyncio.sleep(interval)
            try:
                await asyncio.to_thread(self.sweep)
            except Exception as e:
                logger.error(f"Retention sweep error: {e}")

    def _create_active_file(self):
        with open(self.active_log_file, 'a'):
            pass
        if os.name == 'posix':
            os.chmod(self.active_log_file, ACTIVE_FILE_MODE)
