"""
Denon telnet command table and reply decoding

Commands are plain ASCII terminated by a carriage return. Replies carry no request
ids: they are matched to pending commands by their two-letter prefix, and the same
lines arrive unsolicited whenever the receiver's state changes.
"""

import re
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Pattern, Tuple

from .errors import MalformedReply
from .state import AVRState

logger = logging.getLogger(__name__)

COMMAND_TERMINATOR = '\r'

DENON_COMMANDS: Dict[str, str] = {
    # Power
    'POWER_ON': 'PWON',
    'POWER_OFF': 'PWSTANDBY',
    'POWER_STATUS': 'PW?',

    # Volume
    'VOLUME_UP': 'MVUP',
    'VOLUME_DOWN': 'MVDOWN',
    'VOLUME_STATUS': 'MV?',

    # Mute
    'MUTE_ON': 'MUON',
    'MUTE_OFF': 'MUOFF',
    'MUTE_STATUS': 'MU?',

    # Input selection
    'INPUT_STATUS': 'SI?',
    'INPUT_CBL_SAT': 'SICBL/SAT',
    'INPUT_DVD': 'SIDVD',
    'INPUT_BD': 'SIBD',
    'INPUT_GAME': 'SIGAME',
    'INPUT_AUX1': 'SIAUX1',
    'INPUT_MEDIA_PLAYER': 'SIMPLAY',
    'INPUT_TV': 'SITV',
    'INPUT_TUNER': 'SITUNER',
    'INPUT_PHONO': 'SIPHONO',
    'INPUT_CD': 'SICD',
    'INPUT_BLUETOOTH': 'SIBT',
    'INPUT_NETWORK': 'SINET',

    # Sound mode
    'SOUND_MODE_STATUS': 'MS?',
    'SOUND_MOVIE': 'MSMOVIE',
    'SOUND_MUSIC': 'MSMUSIC',
    'SOUND_GAME': 'MSGAME',
    'SOUND_DIRECT': 'MSDIRECT',
    'SOUND_STEREO': 'MSSTEREO',
    'SOUND_AUTO': 'MSAUTO',
    'SOUND_DOLBY': 'MSDOLBY',
    'SOUND_DTS': 'MSDTS',
    'SOUND_MULTI': 'MSMULTI',

    # Zone 2
    'ZONE2_POWER_ON': 'Z2ON',
    'ZONE2_POWER_OFF': 'Z2OFF',
    'ZONE2_POWER_STATUS': 'Z2?',
    'ZONE2_VOLUME_UP': 'Z2UP',
    'ZONE2_VOLUME_DOWN': 'Z2DOWN',
    'ZONE2_MUTE_ON': 'Z2MUON',
    'ZONE2_MUTE_OFF': 'Z2MUOFF',
    'ZONE2_MUTE_STATUS': 'Z2MU?',

    # Navigation
    'MENU': 'MNMEN',
    'UP': 'MNCUP',
    'DOWN': 'MNCDN',
    'LEFT': 'MNCLT',
    'RIGHT': 'MNCRT',
    'SELECT': 'MNENT',
    'RETURN': 'MNRTN',
    'OPTION': 'MNOPT',
    'INFO': 'MNINF',

    # Playback
    'PLAY': 'NS9A',
    'PAUSE': 'NS9B',
    'STOP': 'NS9C',
    'NEXT': 'NS9D',
    'PREVIOUS': 'NS9E',
    'FORWARD': 'NS9F',
    'REVERSE': 'NS9G',

    # ECO mode
    'ECO_AUTO': 'ECOAUTO',
    'ECO_ON': 'ECOON',
    'ECO_OFF': 'ECOOFF',
    'ECO_STATUS': 'ECO?',

    # Sleep timer
    'SLEEP_OFF': 'SLPOFF',
    'SLEEP_30': 'SLP030',
    'SLEEP_60': 'SLP060',
    'SLEEP_90': 'SLP090',
    'SLEEP_120': 'SLP120',
    'SLEEP_STATUS': 'SLP?',

    # Quick select
    'QUICK_SELECT_1': 'MSQUICK1',
    'QUICK_SELECT_2': 'MSQUICK2',
    'QUICK_SELECT_3': 'MSQUICK3',
    'QUICK_SELECT_4': 'MSQUICK4',
    'QUICK_SELECT_5': 'MSQUICK5',

    # Audyssey
    'AUDYSSEY_ON': 'PSMULTEQ:ON',
    'AUDYSSEY_OFF': 'PSMULTEQ:OFF',
    'AUDYSSEY_STATUS': 'PSMULTEQ:?',
    'DYNAMIC_EQ_ON': 'PSDYNEQ:ON',
    'DYNAMIC_EQ_OFF': 'PSDYNEQ:OFF',
    'DYNAMIC_EQ_STATUS': 'PSDYNEQ:?',
    'DYNAMIC_VOL_HEAVY': 'PSDYNVOL:HEV',
    'DYNAMIC_VOL_MEDIUM': 'PSDYNVOL:MED',
    'DYNAMIC_VOL_LIGHT': 'PSDYNVOL:LIT',
    'DYNAMIC_VOL_OFF': 'PSDYNVOL:OFF',
    'DYNAMIC_VOL_STATUS': 'PSDYNVOL:?',
}

VOLUME_SET_PREFIX = 'MV'
INPUT_PREFIX = 'SI'
SOUND_MODE_PREFIX = 'MS'

# Lines the receiver sends that share a status prefix but carry no status
IGNORED_REPLY_PREFIXES = ('MVMAX',)


def decode_volume(digits: str) -> int:
    """Convert the receiver's volume digits to a 0-100 percentage.

    Two digits are whole steps ("40"), a third digit is an implicit half-step
    decimal ("505" is 50.5).
    """
    if len(digits) >= 3:
        raw = int(digits[:2]) + int(digits[2:3]) / 10
    else:
        raw = int(digits)
    percent = int(round(raw / 99 * 100))
    return max(0, min(100, percent))


def encode_volume(percent: int) -> str:
    """Inverse of decode_volume, as the two-digit set command payload."""
    percent = max(0, min(100, int(percent)))
    raw = int(round(percent * 99 / 100))
    return f"{raw:02d}"


@dataclass(frozen=True)
class ReplyPattern:
    """Maps one reply prefix to the mirrored field it sets."""
    prefix: str
    field: str
    regex: Pattern
    decode: Callable[[re.Match], Any]


REPLY_PATTERNS: Tuple[ReplyPattern, ...] = (
    ReplyPattern('PW', 'power', re.compile(r'^PW(ON|STANDBY)$'), lambda m: m.group(1) == 'ON'),
    ReplyPattern('MV', 'volume_percent', re.compile(r'^MV(\d{2,3})$'), lambda m: decode_volume(m.group(1))),
    ReplyPattern('MU', 'muted', re.compile(r'^MU(ON|OFF)$'), lambda m: m.group(1) == 'ON'),
    ReplyPattern('SI', 'input', re.compile(r'^SI(.+)$'), lambda m: m.group(1).strip()),
    ReplyPattern('MS', 'sound_mode', re.compile(r'^MS(.+)$'), lambda m: m.group(1).strip()),
)

_PATTERNS_BY_PREFIX = {pattern.prefix: pattern for pattern in REPLY_PATTERNS}


def parse_reply_line(line: str) -> Optional[Tuple[str, Any]]:
    """Decode one reply line into (field, value).

    Returns None for lines with no status meaning. Raises MalformedReply when the
    line carries a status prefix but does not match its pattern.
    """
    line = line.strip()
    if not line or line.startswith(IGNORED_REPLY_PREFIXES):
        return None

    pattern = _PATTERNS_BY_PREFIX.get(line[:2])
    if pattern is None:
        return None

    match = pattern.regex.match(line)
    if not match:
        raise MalformedReply(line, pattern.field)
    return pattern.field, pattern.decode(match)


def expected_reply_field(command: str) -> Optional[str]:
    """Field whose reply line acknowledges this command, or None for fire-and-forget commands."""
    pattern = _PATTERNS_BY_PREFIX.get(command[:2])
    return pattern.field if pattern else None


def resolve_command(name: str) -> str:
    """Look up a command by its table name, accepting a raw protocol command too."""
    key = name.strip().upper()
    if key in DENON_COMMANDS:
        return DENON_COMMANDS[key]
    if name in DENON_COMMANDS.values():
        return name
    raise KeyError(f"Unknown AVR command: {name}")


def simulate_command(state: AVRState, command: str) -> AVRState:
    """Apply a command to a locally held state as the receiver would."""
    if command.endswith('?'):
        return state

    if command == 'MVUP':
        raw = int(encode_volume(state.volume_percent)) + 1
        return state.with_field('volume_percent', decode_volume(f"{min(raw, 99):02d}"))
    if command == 'MVDOWN':
        raw = int(encode_volume(state.volume_percent)) - 1
        return state.with_field('volume_percent', decode_volume(f"{max(raw, 0):02d}"))

    try:
        parsed = parse_reply_line(command)
    except MalformedReply:
        logger.debug(f"Simulated AVR ignoring command {command!r}")
        return state
    if parsed is None:
        return state

    field, value = parsed
    return state.with_field(field, value)
