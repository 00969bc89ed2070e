"""
src/agent/suricata_supervisor.py

Purpose: Launch the local Suricata process
Context: The agent starts Suricata once and lets it run. The child is
         spawned and waited on from a dedicated daemon thread so the event
         loop is never blocked. If Suricata cannot be started the agent
         keeps running in forward-only mode.
"""

import logging
import subprocess
import threading
from typing import List, Optional

logger = logging.getLogger(__name__)


class SuricataSupervisor:
    """Fire-and-forget launcher for the Suricata binary"""

    def __init__(
        self,
        config_path: str,
        interface: str,
        log_dir: str,
        binary: str = "suricata"
    ):
        self.config_path = config_path
        self.interface = interface
        self.log_dir = log_dir
        self.binary = binary
        self.process: Optional[subprocess.Popen] = None
        self._thread: Optional[threading.Thread] = None

    def build_command(self) -> List[str]:
        return [
            self.binary,
            '-c', self.config_path,
            '-i', self.interface,
            '-l', self.log_dir,
        ]

    def start(self) -> threading.Thread:
        """Spawn Suricata on a background thread and return the thread"""
        self._thread = threading.Thread(
            target=self._run,
            name="suricata-supervisor",
            daemon=True
        )
        self._thread.start()
        return self._thread

    def _run(self):
        command = self.build_command()
        logger.info(f"Starting Suricata: {' '.join(command)}")

        try:
            self.process = subprocess.Popen(command)
        except OSError as e:
            logger.error(f"Failed to start Suricata: {e}")
            logger.warning("Continuing without a local IDS (forward-only mode)")
            return

        logger.info(f"Suricata started (pid {self.process.pid})")
        returncode = self.process.wait()

        if returncode == 0:
            logger.info("Suricata exited normally")
        else:
            logger.error(f"Suricata exited with status {returncode}")

    def is_running(self) -> bool:
        return self.process is not None and self.process.poll() is None
