"""
Denon AVR telnet control module
"""

from .telnet_client import DenonTelnetClient, ConnectionState
from .state import AVRState
from .commands import DENON_COMMANDS, decode_volume, encode_volume
from .errors import AVRError, AVRConnectionError, ConnectionTimeout, ConnectionLost, CommandTimeout, MalformedReply

__all__ = [
    'DenonTelnetClient', 'ConnectionState', 'AVRState', 'DENON_COMMANDS', 'decode_volume', 'encode_volume',
    'AVRError', 'AVRConnectionError', 'ConnectionTimeout', 'ConnectionLost', 'CommandTimeout', 'MalformedReply'
]
