"""
Database models and data structures
"""

import json
import ipaddress
from typing import List, Dict, Optional, Any
from dataclasses import dataclass, field
from datetime import datetime

def _convert_ip_address(ip_addr) -> str:
    """Convert IPv4Address or other IP types to string for JSON serialization"""
    if isinstance(ip_addr, (ipaddress.IPv4Address, ipaddress.IPv6Address)):
        return str(ip_addr)
    return str(ip_addr) if ip_addr else "0.0.0.0"

def _load_history(raw) -> List[Dict[str, Any]]:
    """JSONB arrives from asyncpg as text"""
    if not raw:
        return []
    history = json.loads(raw) if isinstance(raw, str) else raw
    return history if isinstance(history, list) else []

@dataclass
class DeviceSettingsRecord:
    """Persisted address and connection bookkeeping for one AVR or TV"""
    ip: str
    port: int
    id: Optional[int] = None
    device_name: Optional[str] = None
    mac_address: Optional[str] = None
    auth_token: Optional[str] = None  # TV pairing token
    last_connected_at: Optional[datetime] = None
    last_discovery_at: Optional[datetime] = None
    failed_attempts: int = 0
    is_active: bool = True
    discovery_history: List[Dict[str, Any]] = field(default_factory=list)

    @classmethod
    def from_row(cls, row) -> 'DeviceSettingsRecord':
        return cls(
            id=row['id'],
            ip=_convert_ip_address(row['ip']),
            port=row['port'],
            device_name=row['device_name'],
            mac_address=row['mac_address'],
            auth_token=row.get('auth_token'),
            last_connected_at=row['last_connected_at'],
            last_discovery_at=row['last_discovery_at'],
            failed_attempts=row['failed_attempts'],
            is_active=row['is_active'],
            discovery_history=_load_history(row['discovery_history'])
        )
