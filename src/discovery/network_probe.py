"""
Low-level reachability probe and ARP table enumeration
"""

import asyncio
import platform
import re
import shlex
import logging
from typing import List, Optional

from .models import NetworkDevice

logger = logging.getLogger(__name__)

# "avr (192.168.50.99) at 0:5:cd:7d:d8:a6 on en0 ifscope [ethernet]"
# "? (192.168.1.1) at aa:bb:cc:dd:ee:ff [ether] on eth0"
ARP_LINE_PATTERN = re.compile(r'^(.+?)\s*\((\d{1,3}(?:\.\d{1,3}){3})\)\s+at\s+(\S+)')
_MAC_PATTERN = re.compile(r'^[0-9a-fA-F]{1,2}([:-][0-9a-fA-F]{1,2}){5}$')


class ProbeFailure(Exception):
    """A network probe could not run; absorbed to an empty/false result"""
    pass


def parse_arp_output(output: str) -> List[NetworkDevice]:
    """Parse `arp -a` output, skipping lines that do not look like entries"""
    devices = []
    for line in output.splitlines():
        line = line.strip()
        if not line:
            continue

        match = ARP_LINE_PATTERN.match(line)
        if not match:
            continue

        hostname, ip, hardware = match.groups()
        hostname = hostname.strip()
        incomplete = 'incomplete' in line

        mac_address = hardware if _MAC_PATTERN.match(hardware) else None
        if mac_address is None and not incomplete:
            continue

        devices.append(NetworkDevice(
            ip=ip,
            hostname=None if hostname in ('', '?') else hostname,
            mac_address=mac_address,
            is_reachable=not incomplete
        ))
    return devices


class NetworkProbe:
    """Runs the host's ping and arp tools"""

    def __init__(self, config: dict):
        self.config = config
        self.ping_timeout_ms = int(config.get('ping_timeout_ms', 3000))
        self.arp_command = config.get('arp_command', 'arp -a')

    async def check_reachable(self, ip: str, timeout_ms: Optional[int] = None) -> bool:
        """Send one echo probe; any timeout, refusal or error reads as unreachable"""
        timeout_ms = timeout_ms or self.ping_timeout_ms
        try:
            returncode, _ = await self._run(self._ping_args(ip, timeout_ms), timeout_ms / 1000 + 1)
            return returncode == 0
        except ProbeFailure as e:
            logger.debug(f"Ping to {ip} failed: {e}")
            return False

    async def list_known_devices(self) -> List[NetworkDevice]:
        """Read the local ARP table; returns [] if it cannot be read"""
        try:
            _, output = await self._run(shlex.split(self.arp_command), 10)
        except ProbeFailure as e:
            logger.error(f"Failed to read ARP table: {e}")
            return []

        devices = parse_arp_output(output)
        logger.debug(f"Discovered {len(devices)} network devices from ARP table")
        return devices

    def _ping_args(self, ip: str, timeout_ms: int) -> List[str]:
        # macOS takes the wait in milliseconds, Linux in whole seconds
        if platform.system() == 'Darwin':
            wait = str(timeout_ms)
        else:
            wait = str(max(1, round(timeout_ms / 1000)))
        return ['ping', '-c', '1', '-W', wait, ip]

    async def _run(self, args: List[str], timeout: float):
        try:
            process = await asyncio.create_subprocess_exec(
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.DEVNULL
            )
        except OSError as e:
            raise ProbeFailure(f"{args[0]} unavailable: {e}") from e

        try:
            stdout, _ = await asyncio.wait_for(process.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            raise ProbeFailure(f"{args[0]} timed out after {timeout}s") from None

        return process.returncode, stdout.decode('utf-8', errors='replace')
