"""
Mirrored AVR status record
"""

from dataclasses import dataclass, asdict, replace
from typing import Any, Dict


@dataclass(frozen=True)
class AVRState:
    """Last-known device status. Replaced as a whole, never mutated in place."""
    power: bool = False
    volume_percent: int = 0
    muted: bool = False
    input: str = ''
    sound_mode: str = ''

    def with_field(self, field: str, value: Any) -> 'AVRState':
        return replace(self, **{field: value})

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# Deterministic starting point for simulated fallback
SIMULATED_INITIAL_STATE = AVRState(
    power=False,
    volume_percent=40,
    muted=False,
    input='TV',
    sound_mode='STEREO'
)
