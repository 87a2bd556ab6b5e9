"""
ASGI entry point for uvicorn
Exposes the FastAPI app; the AVR address comes from config/env only (no startup scan)
"""

import logging
import os
from pathlib import Path

from config_loader import load_config, setup_logging
from database.manager import DatabaseManager
from discovery.manager import DeviceDiscovery
from avr.telnet_client import DenonTelnetClient
from api.main_api import HomeTheaterAPI
from services.home_server import build_avr_config

Path("logs").mkdir(exist_ok=True)

config = load_config(os.environ.get('CONFIG_FILE', 'config/config.yaml'))
setup_logging(config)

logger = logging.getLogger(__name__)

logger.info("Initializing application components...")

db = DatabaseManager(config) if config.get('database') else None
discovery = DeviceDiscovery(config['discovery'], db)
avr = DenonTelnetClient(build_avr_config(config['avr']))

api = HomeTheaterAPI(avr, discovery, config, db)

app = api.app

@app.on_event("startup")
async def startup_event():
    """Initialize the settings store and open the AVR session"""
    logger.info("Starting up application...")
    if db:
        await db.initialize()
        logger.info("Database initialized")

    if await avr.start():
        logger.info(f"AVR connected at {avr.ip}:{avr.port}")
    else:
        logger.info("AVR running in simulated mode")

@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Shutting down application...")
    await avr.close()
    if db:
        await db.close()
    logger.info("Application shut down complete")

logger.info("ASGI app ready for uvicorn")
