"""
src/agent/suricata_control.py

Purpose: Bridge operator commands to Suricata's runtime control socket
Context: Suricata runs in its own container; its unix socket is reached by
         running `suricatasc -c <command>` inside that container through
         `docker exec`. Arguments are passed as an argv vector, never
         through a shell.
"""

import asyncio
import logging
import re
from typing import List, Optional, Sequence

from agent_errors import ControlBridgeError

logger = logging.getLogger(__name__)

INTERFACE_PATTERN = re.compile(r'[A-Za-z0-9_-]+')


def is_valid_interface(name: str) -> bool:
    return bool(INTERFACE_PATTERN.fullmatch(name))


class SuricataControl:
    """Runs suricatasc control commands through an exec helper"""

    def __init__(
        self,
        interface: str = "eth0",
        container: str = "suricata",
        exec_prefix: Optional[Sequence[str]] = None
    ):
        """
        Args:
            interface: Interface reported by iface-stat
            container: Name of the Suricata container
            exec_prefix: argv placed before the control command; defaults to
                         ['docker', 'exec', <container>, 'suricatasc', '-c']
        """
        self.interface = interface
        self.container = container
        if exec_prefix is None:
            exec_prefix = ['docker', 'exec', container, 'suricatasc', '-c']
        self.exec_prefix: List[str] = list(exec_prefix)

    async def status(self) -> str:
        """Suricata uptime"""
        return await self._run_command('uptime')

    async def reload_rules(self) -> str:
        output = await self._run_command('reload-rules')
        logger.info("Successfully reloaded Suricata rules")
        return output

    async def rule_statistics(self) -> str:
        return await self._run_command('ruleset-stats')

    async def interface_statistics(self) -> str:
        """
        Per-interface capture statistics

        The interface name is checked against [A-Za-z0-9_-]+ before anything
        is executed.

        Raises:
            ControlBridgeError: "Invalid interface name" or a command failure
        """
        if not is_valid_interface(self.interface):
            logger.warning(f"Rejected interface name: {self.interface!r}")
            raise ControlBridgeError("Invalid interface name")

        return await self._run_command(f"iface-stat {self.interface}")

    async def _run_command(self, command: str) -> str:
        """
        Run one control command and return its stdout

        Raises:
            ControlBridgeError: On spawn failure, non-zero exit or
                                undecodable output
        """
        argv = self.exec_prefix + [command]
        logger.debug(f"Running control command: {argv}")

        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE
            )
            stdout, stderr = await proc.communicate()
        except OSError as e:
            logger.error(f"Failed to execute '{command}': {e}")
            raise ControlBridgeError(f"Failed to execute command: {e}")

        if proc.returncode != 0:
            try:
                error_text = stderr.decode('utf-8')
            except UnicodeDecodeError:
                error_text = "Failed to decode stderr output"
            logger.error(f"Control command '{command}' failed: {error_text}")
            raise ControlBridgeError(
                f"Command failed with status: {proc.returncode} ({error_text})"
            )

        try:
            return stdout.decode('utf-8')
        except UnicodeDecodeError as e:
            logger.error(f"Failed to decode output of '{command}': {e}")
            raise ControlBridgeError("Failed to decode command output")
