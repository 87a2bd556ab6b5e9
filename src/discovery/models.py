"""
Discovery data structures and models
"""

from enum import Enum
from typing import Any, Dict, Optional
from dataclasses import dataclass, asdict

class DeviceClass(str, Enum):
    """Target device classes the scorer can rank candidates for"""
    AVR = "avr"
    TV = "tv"

@dataclass
class NetworkDevice:
    """A host seen in the local neighbor table; never persisted"""
    ip: str
    hostname: Optional[str] = None
    mac_address: Optional[str] = None
    is_reachable: bool = True

@dataclass
class Candidate(NetworkDevice):
    """A reachable device suspected (by heuristic) to be of a target class"""
    confidence: float = 0.0
    reason: str = ""
    brand: Optional[str] = None  # TV candidates only
    device_class: DeviceClass = DeviceClass.AVR

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['device_class'] = self.device_class.value
        return data

@dataclass
class ValidatedEndpoint:
    """A candidate confirmed by a protocol handshake"""
    ip: str
    port: int
    response_time_ms: float
    auth_required: bool = False
    device_info: Optional[Dict[str, Any]] = None  # {name?, brand?, power_state?}
    device_class: DeviceClass = DeviceClass.AVR
    mac_address: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['device_class'] = self.device_class.value
        return data
