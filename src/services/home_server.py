"""
Home Theater Server - Main orchestrator for all services
"""

import asyncio
import logging
import time
from datetime import datetime
from typing import Dict, Optional
import uvicorn

from config_loader import load_config, setup_logging
from database.manager import DatabaseManager
from discovery.manager import DeviceDiscovery
from discovery.models import ValidatedEndpoint
from avr.telnet_client import DenonTelnetClient
from avr.errors import AVRError
from api.main_api import HomeTheaterAPI

logger = logging.getLogger(__name__)

UNCONFIGURED_AVR_IP = "0.0.0.0"

def build_avr_config(avr_config: Dict, ip: Optional[str] = None, port: Optional[int] = None) -> Dict:
    """
    Client settings for the resolved address. With no address at all the session
    can only run simulated.
    """
    resolved = dict(avr_config)
    resolved['ip'] = ip or avr_config.get('ip')
    resolved['port'] = port or avr_config.get('port', 23)

    if not resolved['ip']:
        if resolved.get('enable_connection'):
            logger.warning("No AVR address configured, stored or discovered - running simulated")
        resolved['ip'] = UNCONFIGURED_AVR_IP
        resolved['enable_connection'] = False

    return resolved

class HomeTheaterServer:
    """Main server: settings store, discovery, the AVR session, background services and the API"""

    def __init__(self, config_path: str = "config/config.yaml"):
        self.config = load_config(config_path)
        setup_logging(self.config)

        self.db = DatabaseManager(self.config) if self.config.get('database') else None
        self.discovery = DeviceDiscovery(self.config['discovery'], self.db)
        self.avr: Optional[DenonTelnetClient] = None
        self.api: Optional[HomeTheaterAPI] = None

        self.running = False
        self.tasks = []

    async def start(self):
        """Resolve the AVR address, open the session, start background services and serve the API"""
        logger.info("Starting Home Theater Local Server...")

        try:
            if self.db:
                await self.db.initialize()
                logger.info("Database initialized successfully")
            else:
                logger.info("No database configured - discovered addresses will not be persisted")

            endpoint = await self._resolve_avr_endpoint()
            if endpoint:
                avr_config = build_avr_config(self.config['avr'], endpoint.ip, endpoint.port)
            else:
                avr_config = build_avr_config(self.config['avr'])

            self.avr = DenonTelnetClient(avr_config)
            connected = await self.avr.start()

            if connected and self.db:
                await self.db.upsert_avr_settings(
                    self.avr.ip, self.avr.port,
                    device_name=self.config['avr'].get('device_name'),
                    mac_address=endpoint.mac_address if endpoint else None
                )

            self.api = HomeTheaterAPI(self.avr, self.discovery, self.config, self.db)
            self.running = True

            self.tasks = [
                asyncio.create_task(self._polling_service()),
                asyncio.create_task(self._discovery_service())
            ]
            logger.info(f"All services started successfully ({len(self.tasks)} background tasks)")

            await self._start_api_server()

        except Exception as e:
            logger.error(f"Server startup failed: {e}")
            await self.stop()
            raise

    async def stop(self):
        """Stop all server services gracefully"""
        logger.info("Stopping server...")
        self.running = False

        for task in self.tasks:
            task.cancel()
        if self.tasks:
            await asyncio.gather(*self.tasks, return_exceptions=True)
        self.tasks = []

        if self.avr:
            await self.avr.close()
        if self.db:
            await self.db.close()
        logger.info("Server stopped")

    # ================== AVR ADDRESS RESOLUTION ==================

    async def _resolve_avr_endpoint(self) -> Optional[ValidatedEndpoint]:
        """
        Stored settings first, then config/env, confirmed by handshake; scan the network if neither answers
        """
        avr_config = self.config['avr']
        if not avr_config.get('enable_connection'):
            logger.info("AVR connection disabled - skipping AVR discovery")
            return None

        stored_ip, stored_port = None, None
        if self.db:
            settings = await self.db.get_current_avr_settings()
            if settings:
                stored_ip, stored_port = settings.ip, settings.port
                logger.info(f"Using stored AVR settings {stored_ip}:{stored_port}")

        ip = stored_ip or avr_config.get('ip')
        port = stored_port or avr_config.get('port')

        start = datetime.now()
        endpoint = await self.discovery.find_avr_address(ip, port)
        duration = (datetime.now() - start).total_seconds()

        if endpoint:
            logger.info(f"AVR resolved to {endpoint.ip}:{endpoint.port} in {duration:.1f}s")
        else:
            logger.warning(f"No AVR confirmed after {duration:.1f}s - keeping configured address")
        return endpoint

    # ================== BACKGROUND SERVICES ==================

    async def _polling_service(self):
        """Background service for periodic AVR status refresh"""
        poll_interval = self.config['avr']['status_poll_seconds']

        logger.info(f"AVR status polling service started ({poll_interval}s intervals)")

        while self.running:
            cycle_start_time = time.time()

            try:
                if not self.avr.is_simulated:
                    status = await self.avr.refresh_status(force=True)
                    logger.debug(f"AVR status: {status}")
            except AVRError as e:
                logger.warning(f"AVR status poll failed: {e}")
            except Exception as e:
                logger.error(f"Polling service error: {e}")

            elapsed_time = time.time() - cycle_start_time
            if elapsed_time > poll_interval:
                logger.warning(
                    f"AVR poll took {elapsed_time:.1f}s (>{poll_interval}s configured) - "
                    f"skipping sleep to prevent pile-up"
                )
                continue

            await asyncio.sleep(poll_interval - elapsed_time)

    async def _discovery_service(self):
        """Background service for periodic AVR/TV discovery"""
        scan_minutes = self.config['discovery']['scan_interval_minutes']
        if not scan_minutes:
            logger.info("Periodic discovery disabled")
            return

        scan_interval = scan_minutes * 60
        logger.info(f"Discovery service started (every {scan_minutes} minutes)")

        while self.running:
            try:
                await asyncio.sleep(scan_interval)
                if not self.running:
                    break

                logger.info("Running periodic discovery...")
                tvs = await self.discovery.discover_and_validate_tvs()
                avrs = await self.discovery.discover_and_validate_avrs()
                logger.info(f"Periodic discovery: {len(avrs)} AVR(s), {len(tvs)} TV(s) confirmed")

                if self.db:
                    await self.db.cleanup_old_settings()

            except Exception as e:
                logger.error(f"Discovery service error: {e}")

    async def _start_api_server(self):
        """Start the FastAPI server"""
        config = uvicorn.Config(
            self.api.app,
            host=self.config['api']['host'],
            port=self.config['api']['port'],
            log_level="info",
            access_log=False  # We handle our own logging
        )

        server = uvicorn.Server(config)

        logger.info(f"Starting API server on {self.config['api']['host']}:{self.config['api']['port']}")
        logger.info(f"API documentation: http://localhost:{self.config['api']['port']}/docs")

        if self.avr.is_simulated:
            logger.info("AVR running in simulated mode - commands update local state only")
        else:
            logger.info(f"AVR connected at {self.avr.ip}:{self.avr.port}")

        await server.serve()
