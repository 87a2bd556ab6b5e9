"""
Server services for the home theater local server
"""

from .home_server import HomeTheaterServer, build_avr_config

__all__ = ['HomeTheaterServer', 'build_avr_config']
