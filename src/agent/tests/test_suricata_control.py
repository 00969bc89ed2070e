"""
src/agent/tests/test_suricata_control.py

Purpose: Unit tests for the Suricata control bridge
Context: asyncio.create_subprocess_exec is patched so no container is needed
"""

from unittest.mock import AsyncMock, Mock, patch

import pytest

from agent_errors import ControlBridgeError
from suricata_control import SuricataControl, is_valid_interface


def fake_process(returncode=0, stdout=b"", stderr=b""):
    proc = Mock()
    proc.returncode = returncode
    proc.communicate = AsyncMock(return_value=(stdout, stderr))
    return proc


class TestInterfaceGuard:
    """Test the interface-name whitelist"""

    @pytest.mark.parametrize("name", ["eth0", "enp0s3", "br-lan", "wlan_1"])
    def test_valid_names(self, name):
        assert is_valid_interface(name)

    @pytest.mark.parametrize("name", [
        "", "eth0; rm -rf /", "eth0 ", "eth$(id)", "eth0\n", "ä0", "eth0|cat", "../eth0"
    ])
    def test_invalid_names(self, name):
        assert not is_valid_interface(name)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("name", ["eth0; reboot", "eth0 && id", "`id`"])
    async def test_invalid_interface_never_executes(self, name):
        control = SuricataControl(interface=name)

        with patch("suricata_control.asyncio.create_subprocess_exec", new_callable=AsyncMock) as mock_exec:
            with pytest.raises(ControlBridgeError) as exc_info:
                await control.interface_statistics()

        assert exc_info.value.message == "Invalid interface name"
        mock_exec.assert_not_called()


class TestCommands:
    """Test argv construction and result handling"""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("method, command", [
        ("status", "uptime"),
        ("reload_rules", "reload-rules"),
        ("rule_statistics", "ruleset-stats"),
        ("interface_statistics", "iface-stat eth1"),
    ])
    async def test_argv(self, method, command):
        control = SuricataControl(interface="eth1", container="ids")

        with patch("suricata_control.asyncio.create_subprocess_exec",
                   new_callable=AsyncMock, return_value=fake_process(stdout=b"OK\n")) as mock_exec:
            output = await getattr(control, method)()

        assert output == "OK\n"
        args = mock_exec.call_args.args
        assert list(args) == ["docker", "exec", "ids", "suricatasc", "-c", command]

    @pytest.mark.asyncio
    async def test_custom_exec_prefix(self):
        control = SuricataControl(exec_prefix=["suricatasc", "-c"])

        with patch("suricata_control.asyncio.create_subprocess_exec",
                   new_callable=AsyncMock, return_value=fake_process(stdout=b"{}")) as mock_exec:
            await control.status()

        assert list(mock_exec.call_args.args) == ["suricatasc", "-c", "uptime"]

    @pytest.mark.asyncio
    async def test_non_zero_exit(self):
        control = SuricataControl()
        proc = fake_process(returncode=1, stderr=b"socket not found")

        with patch("suricata_control.asyncio.create_subprocess_exec",
                   new_callable=AsyncMock, return_value=proc):
            with pytest.raises(ControlBridgeError) as exc_info:
                await control.status()

        assert exc_info.value.message == "Command failed with status: 1 (socket not found)"
        assert exc_info.value.status_code == 500

    @pytest.mark.asyncio
    async def test_non_zero_exit_undecodable_stderr(self):
        control = SuricataControl()
        proc = fake_process(returncode=2, stderr=b"\xff\xfe")

        with patch("suricata_control.asyncio.create_subprocess_exec",
                   new_callable=AsyncMock, return_value=proc):
            with pytest.raises(ControlBridgeError) as exc_info:
                await control.rule_statistics()

        assert exc_info.value.message == (
            "Command failed with status: 2 (Failed to decode stderr output)"
        )

    @pytest.mark.asyncio
    async def test_spawn_failure(self):
        control = SuricataControl()

        with patch("suricata_control.asyncio.create_subprocess_exec",
                   new_callable=AsyncMock,
                   side_effect=FileNotFoundError(2, "No such file or directory")):
            with pytest.raises(ControlBridgeError) as exc_info:
                await control.reload_rules()

        assert exc_info.value.message.startswith("Failed to execute command:")
        assert "No such file or directory" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_undecodable_stdout(self):
        control = SuricataControl()

        with patch("suricata_control.asyncio.create_subprocess_exec",
                   new_callable=AsyncMock, return_value=fake_process(stdout=b"\xc3\x28")):
            with pytest.raises(ControlBridgeError) as exc_info:
                await control.status()

        assert exc_info.value.message == "Failed to decode command output"

    @pytest.mark.asyncio
    async def test_real_process_spawn_failure(self):
        control = SuricataControl(exec_prefix=["/nonexistent/suricatasc-helper", "-c"])

        with pytest.raises(ControlBridgeError) as exc_info:
            await control.status()

        assert exc_info.value.message.startswith("Failed to execute command:")
