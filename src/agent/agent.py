"""
src/agent/agent.py

Purpose: Suricata sidecar agent entry point
Context: Runs next to a Suricata IDS/IPS instance. Supervises the Suricata
         process, tails its EVE JSON log and forwards every event to the
         central collector, rotates and prunes the log, and serves the
         control API for rule management and Suricata runtime commands.

Architecture:
- Suricata supervisor on a dedicated OS thread
- Log watcher task (tail + forward + rotation checks)
- Retention task (archive cleanup on its own cadence)
- uvicorn serving the FastAPI control API

Fatal at startup:
- The log directory cannot be created
- None of the ports PORT .. PORT+9 can be bound
"""

import asyncio
import logging
import socket
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional, Tuple

import uvicorn
from fastapi import FastAPI

from agent_config import AgentConfig, load_config
from control_api import create_app
from eve_forwarder import EventForwarder
from log_rotator import LogRotator
from log_watcher import LogWatcher
from rules_store import RulesStore
from suricata_control import SuricataControl
from suricata_supervisor import SuricataSupervisor
from watermark import Watermark

logger = logging.getLogger(__name__)

PORT_ATTEMPTS = 10
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def bind_listen_socket(port: int, host: str = "0.0.0.0",
                       attempts: int = PORT_ATTEMPTS) -> Tuple[socket.socket, int]:
    """
    Bind the first free port in [port, port + attempts)

    Returns:
        (bound socket, port number)

    Raises:
        RuntimeError: If no port in the range could be bound
    """
    for candidate in range(port, port + attempts):
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((host, candidate))
        except OSError as e:
            sock.close()
            logger.warning(f"Port {candidate} unavailable: {e}")
            continue
        return sock, candidate

    raise RuntimeError(
        f"Could not bind any port in range {port}-{port + attempts - 1}"
    )


class SidecarAgent:
    """
    Wires the sidecar components together

    Context: One instance per process; owns the background tasks and the
             shared HTTP client.
    """

    def __init__(self, config: AgentConfig):
        self.config = config
        self.watermark = Watermark()

        self.rotator = LogRotator(
            active_log_file=config.active_log_file,
            log_dir=config.log_dir,
            max_size_bytes=config.max_log_size_bytes,
            watermark=self.watermark
        )

        self.forwarder = EventForwarder(config.central_api_url)

        self.log_watcher = LogWatcher(
            log_path=config.active_log_file,
            on_event=self._handle_event,
            watermark=self.watermark,
            rotator=self.rotator,
            interval=config.log_watch_interval_s
        )

        self.rules_store = RulesStore(config.rules_file_path)
        self.control = SuricataControl(
            interface=config.network_interface,
            container=config.suricata_container
        )
        self.supervisor = SuricataSupervisor(
            config_path=config.suricata_config_path,
            interface=config.suricata_interface,
            log_dir=config.log_dir
        )

        self._tasks = []
        self.app = create_app(
            config,
            rules_store=self.rules_store,
            control=self.control,
            forwarder=self.forwarder,
            lifespan=self.lifespan
        )

        logger.info(f"Sidecar agent initialized (log: {config.active_log_file})")

    def prepare(self):
        """
        Synchronous startup: log directory, active log file, Suricata

        Raises:
            OSError: If the log directory cannot be created
        """
        log_dir = Path(self.config.log_dir)
        if not log_dir.exists():
            log_dir.mkdir(parents=True, exist_ok=True)
            logger.info(f"Created log directory: {log_dir}")

        try:
            self.rotator.ensure_active_file()
        except OSError as e:
            logger.error(f"Failed to create active log file: {e}")

        if not self.config.central_api_url:
            logger.warning("CENTRAL_API_SERVER_URL is not set; events will not be forwarded")

        if self.config.skip_suricata:
            logger.info("SKIP_SURICATA set, not starting Suricata")
        else:
            self.supervisor.start()

    async def _handle_event(self, event):
        await self.forwarder.forward(event)

    @asynccontextmanager
    async def lifespan(self, app: FastAPI):
        """Start background tasks with the server, stop them with it"""
        self._tasks = [
            asyncio.create_task(self.log_watcher.start()),
            asyncio.create_task(self.rotator.run_retention(self.config.cleanup_interval_s)),
        ]
        logger.info(
            f"Background tasks started | watch_interval={self.config.log_watch_interval_s}s | "
            f"cleanup_interval={self.config.cleanup_interval_s}s"
        )

        yield

        logger.info("Stopping background tasks")
        await self.log_watcher.stop()
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        await self.forwarder.aclose()

    async def serve(self, sock: Optional[socket.socket] = None):
        """Run the control API (and with it the background tasks)"""
        if sock is None:
            sock, port = bind_listen_socket(self.config.listen_port)
        else:
            port = sock.getsockname()[1]

        logger.info(f"Control API listening on port {port}")

        server = uvicorn.Server(uvicorn.Config(
            self.app,
            log_level=self.config.log_level.lower(),
        ))
        await server.serve(sockets=[sock])


def main():
    """Main entry point"""
    config = load_config()

    logging.basicConfig(level=config.log_level, format=LOG_FORMAT)

    # Bind before Suricata is spawned; a port failure must not orphan the child
    sock, _ = bind_listen_socket(config.listen_port)

    agent = SidecarAgent(config)
    agent.prepare()

    try:
        asyncio.run(agent.serve(sock))
    except KeyboardInterrupt:
        logger.info("Shutting down...")


if __name__ == "__main__":
    main()
