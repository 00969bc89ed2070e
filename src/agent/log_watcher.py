"""
src/agent/log_watcher.py

Purpose: Tail Suricata's EVE JSON log and hand each event to a callback
Context: Suricata writes one JSON object per line to the active log. The
         watcher polls that file, parses every complete line and passes the
         event on (normally to the forwarder). Lines are delivered in file
         order; nothing is persisted, so a crash loses the unread tail.

Loop (one iteration):
1. Every `rotation_check_interval` seconds, ask the rotator to rotate.
   If it did, drain what is left of the archive first.
2. Open the active log and read complete lines from the remembered offset.
3. For each line: advance the watermark, parse, log event_type, callback.
4. Sleep `interval` seconds.
"""

import asyncio
import json
import logging
import os
import time
from pathlib import Path
from typing import Awaitable, Callable, Optional

import aiofiles

from log_rotator import LogRotator
from watermark import Watermark

logger = logging.getLogger(__name__)

ROTATION_CHECK_INTERVAL = 30.0


class LogWatcher:
    """Polling tail of the active EVE log"""

    def __init__(
        self,
        log_path,
        on_event: Callable[[object], Awaitable[object]],
        watermark: Watermark,
        rotator: Optional[LogRotator] = None,
        interval: float = 1.0,
        rotation_check_interval: float = ROTATION_CHECK_INTERVAL,
        from_start: bool = False,
        clock: Callable[[], float] = time.monotonic
    ):
        """
        Args:
            log_path: Active EVE log file
            on_event: Async callable receiving each parsed event
            watermark: Advanced once per ingested line
            rotator: Optional rotator consulted every rotation_check_interval
            interval: Sleep between polls
            from_start: Read an existing file from the beginning instead of
                        starting at its current end
        """
        self.log_path = Path(log_path)
        self.on_event = on_event
        self.watermark = watermark
        self.rotator = rotator
        self.interval = interval
        self.rotation_check_interval = rotation_check_interval
        self.running = False

        self._clock = clock
        self._last_rotation_check: Optional[float] = None
        self.position = 0
        self.inode: Optional[int] = None

        if not from_start:
            self._seek_to_end()

    async def start(self):
        """Poll until stop() is called"""
        self.running = True
        logger.info(f"Watching EVE log: {self.log_path} (offset {self.position})")

        while self.running:
            try:
                await self.poll_once()
            except Exception as e:
                logger.error(f"Error watching {self.log_path}: {e}", exc_info=True)
            await asyncio.sleep(self.interval)

    async def stop(self):
        self.running = False

    async def poll_once(self) -> int:
        """
        Run one iteration without the trailing sleep

        Returns:
            Number of lines ingested
        """
        count = await self._maybe_rotate()

        try:
            f = await aiofiles.open(self.log_path, 'rb')
        except OSError as e:
            logger.warning(f"Cannot open {self.log_path}: {e}")
            return count

        async with f:
            st = os.fstat(f.fileno())
            if self.inode is not None and st.st_ino != self.inode:
                logger.info(f"{self.log_path} was replaced, reading from the start")
                self.position = 0
            elif st.st_size < self.position:
                logger.info(f"{self.log_path} was truncated, reading from the start")
                self.position = 0
            self.inode = st.st_ino

            await f.seek(self.position)
            count += await self._read_lines(f)

        return count

    async def _maybe_rotate(self) -> int:
        if self.rotator is None:
            return 0

        now = self._clock()
        if (self._last_rotation_check is not None and
                now - self._last_rotation_check < self.rotation_check_interval):
            return 0
        self._last_rotation_check = now

        archive = await asyncio.to_thread(self.rotator.rotate_if_needed)
        if archive is None:
            return 0

        # Catch up on lines written after our last read but before the rename
        drained = 0
        try:
            async with aiofiles.open(archive, 'rb') as f:
                if self.inode is None or os.fstat(f.fileno()).st_ino == self.inode:
                    await f.seek(self.position)
                    drained = await self._read_lines(f)
        except OSError as e:
            logger.error(f"Failed to drain rotated log {archive}: {e}")

        if drained:
            logger.info(f"Drained {drained} line(s) from {archive.name}")

        self.position = 0
        self.inode = None
        return drained

    async def _read_lines(self, f) -> int:
        count = 0
        while True:
            line = await f.readline()
            if not line:
                break
            if not line.endswith(b'\n'):
                # Suricata is mid-write; pick it up next time
                break
            self.position += len(line)
            await self._process_line(line)
            count += 1
        return count

    async def _process_line(self, raw: bytes):
        self.watermark.advance()

        text = raw.decode('utf-8', errors='replace').strip()
        if not text:
            return

        try:
            event = json.loads(text)
        except json.JSONDecodeError as e:
            logger.error(f"Failed to parse EVE JSON: {e}")
            return

        if isinstance(event, dict) and 'event_type' in event:
            logger.info(f"EVE event: {event['event_type']}")

        await self.on_event(event)

    def _seek_to_end(self):
        try:
            st = os.stat(self.log_path)
        except OSError:
            return
        self.position = st.st_size
        self.inode = st.st_ino
