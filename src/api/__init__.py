"""
API module for AVR control and discovery
"""

from .main_api import HomeTheaterAPI
from .avr_routes import create_avr_routes
from .discovery_routes import create_discovery_routes
from .system_routes import create_system_routes

__all__ = ['HomeTheaterAPI', 'create_avr_routes', 'create_discovery_routes', 'create_system_routes']
