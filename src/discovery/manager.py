"""
Discovery orchestrator: ARP enumeration -> heuristic scoring -> handshake validation
Discovery is best-effort: every failure degrades to an empty result
"""

import time
import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional

from .models import Candidate, DeviceClass, ValidatedEndpoint
from .network_probe import NetworkProbe
from .scoring import build_scorer
from .validator import CandidateValidator

logger = logging.getLogger(__name__)

TOP_CANDIDATES_LOGGED = 5

class DeviceDiscovery:
    """Locates and confirms AVR and TV endpoints on the local network"""

    def __init__(self, config: Dict, database_manager=None,
                 probe: Optional[NetworkProbe] = None, validator: Optional[CandidateValidator] = None):
        self.config = config
        self.db = database_manager  # optional settings store for discovery history
        self.probe = probe or NetworkProbe(config)
        self.validator = validator or CandidateValidator(config)
        self.last_discovery_at: Optional[datetime] = None

    # ================== SCANNING ==================

    async def scan_for_candidates(self, device_class: DeviceClass) -> List[Candidate]:
        """List ARP devices once and return scored candidates, highest confidence first"""
        label = device_class.value.upper()
        logger.info(f"Starting network scan for {label} devices")
        start_time = time.time()

        try:
            devices = await self.probe.list_known_devices()
            candidates = build_scorer(device_class, self.config).rank(devices)
        except Exception as e:
            logger.error(f"{label} network scan failed: {e}")
            return []

        self.last_discovery_at = datetime.now(timezone.utc)
        duration = time.time() - start_time
        logger.info(f"{label} network scan completed: {len(devices)} devices, "
                    f"{len(candidates)} candidates in {duration:.1f}s")

        for candidate in candidates[:TOP_CANDIDATES_LOGGED]:
            logger.info(f"  {label} candidate {candidate.ip} ({candidate.hostname or '?'}) "
                        f"confidence={candidate.confidence:.2f}: {candidate.reason}")

        return candidates

    async def scan_for_avr_devices(self) -> List[Candidate]:
        return await self.scan_for_candidates(DeviceClass.AVR)

    async def scan_for_tv_devices(self) -> List[Candidate]:
        return await self.scan_for_candidates(DeviceClass.TV)

    # ================== VALIDATION ==================

    async def validate_candidates(self, candidates: List[Candidate]) -> List[ValidatedEndpoint]:
        try:
            return await self.validator.validate_candidates(candidates)
        except Exception as e:
            logger.error(f"Candidate validation failed: {e}")
            return []

    async def discover_and_validate(self, device_class: DeviceClass) -> List[ValidatedEndpoint]:
        """Scan, validate the candidates, and record the outcome in the settings store"""
        label = device_class.value.upper()
        logger.info(f"Starting {label} discovery and validation")

        candidates = await self.scan_for_candidates(device_class)
        if not candidates:
            logger.info(f"No {label} candidates found during network scan")
            return []

        validated = await self.validate_candidates(candidates)
        logger.info(f"{label} discovery completed: {len(candidates)} candidates, {len(validated)} validated")

        await self._record_results(device_class, candidates, validated)
        return validated

    async def discover_and_validate_tvs(self) -> List[ValidatedEndpoint]:
        return await self.discover_and_validate(DeviceClass.TV)

    async def discover_and_validate_avrs(self) -> List[ValidatedEndpoint]:
        return await self.discover_and_validate(DeviceClass.AVR)

    # ================== AVR ADDRESS RESOLUTION ==================

    async def find_avr_address(self, stored_ip: Optional[str] = None,
                               stored_port: Optional[int] = None) -> Optional[ValidatedEndpoint]:
        """
        Progressive lookup: confirm the stored address first, scan the network only if that fails
        """
        if stored_ip:
            port = stored_port or self.validator.avr_port
            endpoint = await self.validator.validate_avr(stored_ip, port)
            if endpoint:
                logger.info(f"Stored AVR address {stored_ip}:{port} confirmed")
                await self._add_history(DeviceClass.AVR, stored_ip, port, 'stored', True,
                                        response_time_ms=endpoint.response_time_ms)
                return endpoint

            logger.warning(f"Stored AVR address {stored_ip}:{port} did not answer, scanning network")
            await self._add_history(DeviceClass.AVR, stored_ip, port, 'stored', False,
                                    error='No response to handshake')
            if self.db:
                await self.db.record_failed_connection(DeviceClass.AVR, stored_ip, port)

        validated = await self.discover_and_validate_avrs()
        return validated[0] if validated else None

    # ================== SETTINGS STORE ==================

    async def _record_results(self, device_class: DeviceClass, candidates: List[Candidate],
                              validated: List[ValidatedEndpoint]):
        if not self.db:
            return

        for endpoint in validated:
            if device_class == DeviceClass.TV:
                await self.db.save_tv_settings(endpoint, self.config.get('tv_auth_token'), endpoint.mac_address)
            await self._add_history(device_class, endpoint.ip, endpoint.port, 'scan', True,
                                    response_time_ms=endpoint.response_time_ms)

        confirmed = {endpoint.ip for endpoint in validated}
        unconfirmed = [c.ip for c in candidates if c.ip not in confirmed]
        if unconfirmed:
            logger.debug(f"{device_class.value.upper()} candidates not confirmed: {unconfirmed}")

    async def _add_history(self, device_class: DeviceClass, ip: str, port: int, method: str,
                           success: bool, response_time_ms: Optional[float] = None, error: Optional[str] = None):
        if not self.db:
            return
        entry = {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'ip': ip,
            'method': method,
            'success': success,
            'response_time_ms': round(response_time_ms, 1) if response_time_ms is not None else None,
            'error': error
        }
        await self.db.add_discovery_history(device_class, ip, port, entry)
