"""
Database module for device settings persistence
"""

from .manager import DatabaseManager
from .models import DeviceSettingsRecord, _convert_ip_address

__all__ = ['DatabaseManager', 'DeviceSettingsRecord', '_convert_ip_address']
