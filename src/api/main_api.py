"""
Main FastAPI application setup
Local HTTP API for AVR control and device discovery
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from typing import Dict
import logging

from .avr_routes import create_avr_routes
from .discovery_routes import create_discovery_routes
from .system_routes import create_system_routes

logger = logging.getLogger(__name__)


class HomeTheaterAPI:
    """Local HTTP API; the AVR session and discovery service are injected, never global"""

    def __init__(self, avr_client, discovery, config: Dict, database_manager=None):
        self.avr = avr_client
        self.discovery = discovery
        self.db = database_manager
        self.config = config
        self.app = FastAPI(
            title="Home Theater Local Server",
            description="Local API for Denon AVR control and AVR/TV network discovery",
            version="1.0.0"
        )
        self.app.add_middleware(
            CORSMiddleware,
            allow_origins=config.get('api', {}).get('cors_origins', ['*']),
            allow_methods=["*"],
            allow_headers=["*"]
        )
        self._setup_routes()

    def _setup_routes(self):
        """Setup FastAPI routes using modular approach"""
        self.app.include_router(create_avr_routes(self.avr))
        self.app.include_router(create_discovery_routes(self.discovery))
        self.app.include_router(create_system_routes(self.avr, self.discovery, self.db))
