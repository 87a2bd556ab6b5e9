"""
ARP parsing and reachability probe tests
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from discovery.network_probe import NetworkProbe, ProbeFailure, parse_arp_output

MACOS_ARP = """\
? (192.168.50.1) at 2c:91:ab:1:2:3 on en0 ifscope [ethernet]
avr (192.168.50.99) at 0:5:cd:7d:d8:a6 on en0 ifscope [ethernet]
living-room-tv (192.168.50.115) at 2c:64:1f:aa:bb:cc on en0 ifscope [ethernet]
? (192.168.50.140) at (incomplete) on en0 ifscope [ethernet]
Interface: en0 --- 0x4
garbage line without an address
"""

LINUX_ARP = "denon-avr.lan (10.0.0.95) at 00:05:cd:11:22:33 [ether] on eth0\n"


def fake_process(returncode=0, stdout=b""):
    process = MagicMock()
    process.returncode = returncode
    process.communicate = AsyncMock(return_value=(stdout, None))
    process.wait = AsyncMock(return_value=returncode)
    return process


class TestParseArpOutput:

    def test_parses_macos_entries(self):
        devices = parse_arp_output(MACOS_ARP)
        assert [d.ip for d in devices] == [
            '192.168.50.1', '192.168.50.99', '192.168.50.115', '192.168.50.140'
        ]

        avr = devices[1]
        assert avr.hostname == 'avr'
        assert avr.mac_address == '0:5:cd:7d:d8:a6'
        assert avr.is_reachable is True

    def test_unknown_hostname_becomes_none(self):
        assert parse_arp_output(MACOS_ARP)[0].hostname is None

    def test_incomplete_entry_is_unreachable(self):
        incomplete = parse_arp_output(MACOS_ARP)[-1]
        assert incomplete.is_reachable is False
        assert incomplete.mac_address is None

    def test_parses_linux_entry(self):
        [device] = parse_arp_output(LINUX_ARP)
        assert device.hostname == 'denon-avr.lan'
        assert device.ip == '10.0.0.95'
        assert device.mac_address == '00:05:cd:11:22:33'

    def test_empty_output(self):
        assert parse_arp_output("") == []


class TestNetworkProbe:

    @pytest.mark.asyncio
    async def test_list_known_devices_runs_configured_command(self):
        probe = NetworkProbe({'arp_command': 'arp -an'})
        with patch('asyncio.create_subprocess_exec',
                   AsyncMock(return_value=fake_process(0, LINUX_ARP.encode()))) as exec_mock:
            devices = await probe.list_known_devices()

        assert exec_mock.call_args.args == ('arp', '-an')
        assert len(devices) == 1

    @pytest.mark.asyncio
    async def test_missing_arp_tool_gives_empty_list(self):
        probe = NetworkProbe({})
        with patch('asyncio.create_subprocess_exec', AsyncMock(side_effect=FileNotFoundError("arp"))):
            assert await probe.list_known_devices() == []

    @pytest.mark.asyncio
    async def test_reachable_on_zero_exit(self):
        probe = NetworkProbe({'ping_timeout_ms': 2000})
        with patch('asyncio.create_subprocess_exec', AsyncMock(return_value=fake_process(0))) as exec_mock, \
                patch('platform.system', return_value='Linux'):
            assert await probe.check_reachable('192.168.50.99') is True

        assert exec_mock.call_args.args == ('ping', '-c', '1', '-W', '2', '192.168.50.99')

    @pytest.mark.asyncio
    async def test_macos_wait_is_in_milliseconds(self):
        probe = NetworkProbe({})
        with patch('asyncio.create_subprocess_exec', AsyncMock(return_value=fake_process(0))) as exec_mock, \
                patch('platform.system', return_value='Darwin'):
            await probe.check_reachable('192.168.50.99', timeout_ms=1500)

        assert exec_mock.call_args.args[4] == '1500'

    @pytest.mark.asyncio
    async def test_unreachable_on_nonzero_exit(self):
        probe = NetworkProbe({})
        with patch('asyncio.create_subprocess_exec', AsyncMock(return_value=fake_process(1))):
            assert await probe.check_reachable('192.168.50.200') is False

    @pytest.mark.asyncio
    async def test_probe_timeout_reads_as_unreachable(self):
        process = fake_process(0)
        process.communicate = AsyncMock(side_effect=asyncio.TimeoutError)
        probe = NetworkProbe({})
        with patch('asyncio.create_subprocess_exec', AsyncMock(return_value=process)):
            assert await probe.check_reachable('192.168.50.200', timeout_ms=100) is False
        process.kill.assert_called_once()

    @pytest.mark.asyncio
    async def test_run_raises_probe_failure(self):
        probe = NetworkProbe({})
        with patch('asyncio.create_subprocess_exec', AsyncMock(side_effect=PermissionError("denied"))):
            with pytest.raises(ProbeFailure):
                await probe._run(['ping'], 1)
