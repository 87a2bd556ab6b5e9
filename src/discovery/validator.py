"""
Candidate validation by lightweight protocol handshake

A candidate is promoted to a ValidatedEndpoint only after it answers like the
device class it was scored for. Each validation uses its own short-lived socket or
HTTP session and shares nothing with the long-lived AVR session.
"""

import asyncio
import time
import logging
from typing import Dict, List, Optional

import aiohttp

from avr.commands import COMMAND_TERMINATOR, DENON_COMMANDS, parse_reply_line
from avr.errors import MalformedReply
from http_helper import create_tv_session
from .models import Candidate, DeviceClass, ValidatedEndpoint

logger = logging.getLogger(__name__)

VIZIO_NAME_PATH = "/menu_native/dynamic/tv_settings/devices/name"
VIZIO_SETTINGS_PATH = "/menu_native/dynamic/tv_settings/devices"
VIZIO_POWER_PATH = "/state/device/power_mode"
AUTH_STATUSES = (401, 403)


class CandidateValidator:
    """Confirms AVR and TV candidates with a single short handshake each"""

    def __init__(self, config: dict):
        self.config = config
        self.timeout = float(config.get('validation_timeout', 3.0))
        self.avr_port = int(config.get('avr_port', 23))
        self.tv_port = int(config.get('tv_port', 7345))
        self.max_concurrent = int(config.get('max_concurrent_validations', 10))
        self.tv_auth_token = config.get('tv_auth_token')

    async def validate_candidates(self, candidates: List[Candidate]) -> List[ValidatedEndpoint]:
        """Validate concurrently; returns only confirmed endpoints, in input order"""
        if not candidates:
            return []

        logger.info(f"Validating {len(candidates)} candidates")
        semaphore = asyncio.Semaphore(self.max_concurrent)

        async def validate_one(candidate: Candidate) -> Optional[ValidatedEndpoint]:
            async with semaphore:
                return await self.validate_candidate(candidate)

        results = await asyncio.gather(*(validate_one(c) for c in candidates), return_exceptions=True)

        validated = []
        for candidate, result in zip(candidates, results):
            if isinstance(result, BaseException):
                logger.warning(f"Validation of {candidate.ip} raised: {result}")
                continue
            if result is not None:
                validated.append(result)

        logger.info(f"Validation completed: {len(validated)}/{len(candidates)} confirmed")
        return validated

    async def validate_candidate(self, candidate: Candidate) -> Optional[ValidatedEndpoint]:
        if candidate.device_class == DeviceClass.AVR:
            endpoint = await self.validate_avr(candidate.ip)
        else:
            endpoint = await self.validate_tv(candidate.ip, auth_token=self.tv_auth_token)
        if endpoint is not None:
            endpoint.mac_address = candidate.mac_address
        return endpoint

    # ================== AVR ==================

    async def validate_avr(self, ip: str, port: Optional[int] = None) -> Optional[ValidatedEndpoint]:
        """Send PW? over telnet and accept the host if it answers with a Denon status line"""
        port = port or self.avr_port
        start = time.monotonic()
        writer = None

        try:
            reader, writer = await asyncio.wait_for(asyncio.open_connection(ip, port), timeout=self.timeout)
            writer.write(f"{DENON_COMMANDS['POWER_STATUS']}{COMMAND_TERMINATOR}".encode('ascii'))
            await writer.drain()

            remaining = self.timeout - (time.monotonic() - start)
            device_info = await asyncio.wait_for(self._read_denon_reply(reader), timeout=max(remaining, 0.1))
        except (asyncio.TimeoutError, OSError) as e:
            logger.debug(f"AVR validation failed for {ip}:{port}: {e or 'timeout'}")
            return None
        finally:
            if writer is not None:
                writer.close()

        if device_info is None:
            logger.debug(f"No Denon reply from {ip}:{port}")
            return None

        response_time_ms = (time.monotonic() - start) * 1000
        logger.info(f"Valid AVR found at {ip}:{port} ({response_time_ms:.0f}ms, {device_info})")
        return ValidatedEndpoint(
            ip=ip,
            port=port,
            response_time_ms=response_time_ms,
            auth_required=False,
            device_info=device_info,
            device_class=DeviceClass.AVR
        )

    async def _read_denon_reply(self, reader: asyncio.StreamReader) -> Optional[Dict]:
        buffer = ''
        while True:
            data = await reader.read(1024)
            if not data:
                return None
            buffer += data.decode('ascii', errors='replace')
            *lines, buffer = buffer.replace('\n', '\r').split('\r')
            for line in lines:
                try:
                    parsed = parse_reply_line(line)
                except MalformedReply:
                    continue
                if parsed is None:
                    continue
                field, value = parsed
                info = {'brand': 'denon'}
                if field == 'power':
                    info['power_state'] = 'ON' if value else 'STANDBY'
                return info

    # ================== TV ==================

    async def validate_tv(self, ip: str, port: Optional[int] = None,
                          auth_token: Optional[str] = None) -> Optional[ValidatedEndpoint]:
        """Probe the Vizio SmartCast API; 401/403 still confirms a TV that needs pairing"""
        port = port or self.tv_port
        base_url = f"https://{ip}:{port}"
        headers = {'Content-Type': 'application/json'}
        if auth_token:
            headers['AUTH'] = auth_token

        start = time.monotonic()
        device_info = None
        auth_required = False

        def endpoint(needs_auth: bool) -> ValidatedEndpoint:
            return ValidatedEndpoint(
                ip=ip,
                port=port,
                response_time_ms=(time.monotonic() - start) * 1000,
                auth_required=needs_auth,
                device_info=device_info,
                device_class=DeviceClass.TV
            )

        try:
            async with create_tv_session(self.timeout, headers) as session:
                status, body = await self._http_get(session, f"{base_url}{VIZIO_NAME_PATH}")
                if status == 200 and body:
                    device_info = {'name': self._first_item_value(body), 'brand': 'vizio'}
                elif status in AUTH_STATUSES:
                    auth_required = True

                status, _ = await self._http_get(session, f"{base_url}{VIZIO_SETTINGS_PATH}")
                if status == 200:
                    return endpoint(auth_required and not auth_token)
                if status in AUTH_STATUSES:
                    return endpoint(True)

                status, _ = await self._http_get(session, f"{base_url}{VIZIO_POWER_PATH}")
                if status in AUTH_STATUSES:
                    return endpoint(True)
                if status == 200:
                    return endpoint(auth_required and not auth_token)

        except (aiohttp.ClientConnectorError, asyncio.TimeoutError) as e:
            logger.debug(f"TV validation failed for {ip}:{port}: {e or 'timeout'}")
            return None
        except aiohttp.ClientError as e:
            logger.debug(f"TV validation error for {ip}:{port}: {e}")
            return None

        logger.debug(f"No valid Vizio API responses from {ip}:{port}")
        return None

    async def _http_get(self, session: aiohttp.ClientSession, url: str):
        """GET returning (status, json body or None); connection errors propagate"""
        async with session.get(url) as response:
            if response.status != 200:
                return response.status, None
            try:
                return response.status, await response.json(content_type=None)
            except ValueError:
                return response.status, None

    @staticmethod
    def _first_item_value(body) -> Optional[str]:
        try:
            return body['ITEMS'][0]['VALUE']
        except (KeyError, IndexError, TypeError):
            return None
