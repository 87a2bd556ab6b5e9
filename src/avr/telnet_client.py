"""
Persistent telnet session to a Denon AVR

One long-lived socket per configured receiver. Commands are serialized through a
FIFO queue with at most one awaiting its reply; incoming bytes are split into lines
and every line is checked against the reply table, so unsolicited status pushes
keep the mirrored state current between queries.
"""

import asyncio
import logging
import re
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Deque, Dict, Optional, Tuple

from .commands import (
    COMMAND_TERMINATOR,
    DENON_COMMANDS,
    INPUT_PREFIX,
    SOUND_MODE_PREFIX,
    VOLUME_SET_PREFIX,
    encode_volume,
    expected_reply_field,
    parse_reply_line,
    resolve_command,
    simulate_command,
)
from .errors import (
    AVRConnectionError,
    AVRError,
    CommandTimeout,
    ConnectionLost,
    ConnectionTimeout,
    MalformedReply,
)
from .state import AVRState, SIMULATED_INITIAL_STATE

logger = logging.getLogger(__name__)

_LINE_SPLIT = re.compile(r'[\r\n]')


class ConnectionState(str, Enum):
    DISCONNECTED = 'disconnected'
    CONNECTING = 'connecting'
    CONNECTED = 'connected'
    SIMULATED_FALLBACK = 'simulated_fallback'


@dataclass
class PendingCommand:
    """A written command waiting for a reply line for its field"""
    command: str
    expected_field: Optional[str]
    future: asyncio.Future = field(repr=False)


class DenonTelnetClient:
    """Stateful telnet client for one Denon receiver at a fixed address"""

    RECEIVE_CHUNK = 1024
    MAX_BUFFER_CHARS = 4096

    def __init__(self, config: Dict):
        self._ip = config['ip']
        self._port = int(config.get('port', 23))
        self.device_name = config.get('device_name', 'Denon AVR')
        self.enable_connection = bool(config.get('enable_connection', False))
        self.connection_timeout = float(config.get('connection_timeout', 5.0))
        self.command_timeout = float(config.get('command_timeout', 3.0))
        self.connect_retries = int(config.get('connect_retries', 2))
        self.reconnect_base_delay = float(config.get('reconnect_base_delay', 1.0))
        self.reconnect_max_delay = float(config.get('reconnect_max_delay', 60.0))
        self.max_reconnect_attempts = int(config.get('max_reconnect_attempts', 5))
        self.status_cache_seconds = float(config.get('status_cache_seconds', 30))

        self._reader: Optional[asyncio.StreamReader] = None
        self._writer: Optional[asyncio.StreamWriter] = None
        self._reader_task: Optional[asyncio.Task] = None
        self._reconnect_task: Optional[asyncio.Task] = None
        self._command_lock = asyncio.Lock()
        self._connect_lock = asyncio.Lock()

        self._pending: Deque[PendingCommand] = deque()
        self._receive_buffer = ''
        self._fresh_at: Dict[str, float] = {}
        self._failure_count = 0
        self._closed = False

        if self.enable_connection:
            self.connection_state = ConnectionState.DISCONNECTED
            self._state = AVRState()
        else:
            logger.info("Denon AVR client running in simulation mode - no real AVR will be contacted")
            self.connection_state = ConnectionState.SIMULATED_FALLBACK
            self._state = SIMULATED_INITIAL_STATE

    # ================== PROPERTIES ==================

    @property
    def ip(self) -> str:
        return self._ip

    @property
    def port(self) -> int:
        return self._port

    @property
    def target_address(self) -> Tuple[str, int]:
        return self._ip, self._port

    @property
    def is_simulated(self) -> bool:
        return self.connection_state == ConnectionState.SIMULATED_FALLBACK

    @property
    def status(self) -> AVRState:
        """Last mirrored status, without touching the wire"""
        return self._state

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def get_status(self) -> Dict[str, Any]:
        status = self._state.to_dict()
        status['connection_state'] = self.connection_state.value
        return status

    # ================== LIFECYCLE ==================

    async def start(self) -> bool:
        """Open the session at process start, falling back to simulated state if it cannot connect"""
        if self.is_simulated:
            logger.info("Denon AVR client initialized in simulation mode")
            return False

        try:
            await self.connect()
            logger.info(f"Denon AVR connection established to {self._ip}:{self._port}")
            return True
        except AVRConnectionError as e:
            logger.warning(f"Denon AVR unreachable at startup, using simulated state: {e}")
            self._enter_simulated_fallback()
            return False

    async def connect(self):
        """Open the socket, retrying a bounded number of times with backoff"""
        if self.is_simulated:
            return

        async with self._connect_lock:
            if self.connection_state == ConnectionState.CONNECTED and self._writer is not None:
                return

            attempts = self.connect_retries + 1
            last_error: AVRConnectionError = AVRConnectionError(f"Could not connect to {self._ip}:{self._port}")

            for attempt in range(1, attempts + 1):
                self._set_state(ConnectionState.CONNECTING)
                try:
                    reader, writer = await asyncio.wait_for(
                        asyncio.open_connection(self._ip, self._port),
                        timeout=self.connection_timeout
                    )
                except asyncio.TimeoutError:
                    last_error = ConnectionTimeout(
                        f"Timed out connecting to {self._ip}:{self._port} after {self.connection_timeout}s"
                    )
                except OSError as e:
                    last_error = AVRConnectionError(f"Could not connect to {self._ip}:{self._port}: {e}")
                else:
                    self._on_connected(reader, writer)
                    return

                self._set_state(ConnectionState.DISCONNECTED)
                logger.warning(f"AVR connection attempt {attempt}/{attempts} failed: {last_error}")
                if attempt < attempts:
                    await asyncio.sleep(self._backoff_delay(attempt - 1))

            self._failure_count += 1
            raise last_error

    async def close(self):
        """Shut the session down; pending commands fail with ConnectionLost"""
        self._closed = True

        tasks = [t for t in (self._reconnect_task, self._reader_task) if t and not t.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._reconnect_task = None
        self._reader_task = None

        writer = self._writer
        self._teardown_connection()
        if writer is not None:
            try:
                await writer.wait_closed()
            except OSError:
                pass

        self._fail_pending(ConnectionLost("AVR client closed"))
        if not self.is_simulated:
            self._set_state(ConnectionState.DISCONNECTED)
        logger.info("Denon AVR client closed")

    # ================== QUERIES ==================

    async def get_power_state(self) -> bool:
        return await self._query('power', DENON_COMMANDS['POWER_STATUS'])

    async def get_volume(self) -> int:
        """Current volume as a 0-100 percentage"""
        return await self._query('volume_percent', DENON_COMMANDS['VOLUME_STATUS'])

    async def get_mute_state(self) -> bool:
        return await self._query('muted', DENON_COMMANDS['MUTE_STATUS'])

    async def get_current_input(self) -> str:
        return await self._query('input', DENON_COMMANDS['INPUT_STATUS'])

    async def get_sound_mode(self) -> str:
        return await self._query('sound_mode', DENON_COMMANDS['SOUND_MODE_STATUS'])

    async def refresh_status(self, force: bool = False) -> AVRState:
        """
        Query power, then the remaining fields if the receiver is on.
        A field that fails to refresh keeps its previous mirrored value.
        """
        if force:
            self._fresh_at.clear()

        is_powered_on = await self.get_power_state()
        if not is_powered_on:
            return self._state

        getters = (
            ('volume', self.get_volume),
            ('mute', self.get_mute_state),
            ('input', self.get_current_input),
            ('sound mode', self.get_sound_mode),
        )
        for name, getter in getters:
            try:
                await getter()
            except AVRError as e:
                logger.warning(f"Failed to refresh AVR {name}, keeping previous value: {e}")

        return self._state

    # ================== COMMANDS ==================

    async def send_command(self, name: str) -> bool:
        """Send a command by its table name (e.g. "POWER_ON")"""
        try:
            command = resolve_command(name)
        except KeyError as e:
            raise ValueError(str(e)) from None
        return await self._send(command)

    async def power_on(self) -> bool:
        return await self._send(DENON_COMMANDS['POWER_ON'])

    async def power_off(self) -> bool:
        return await self._send(DENON_COMMANDS['POWER_OFF'])

    async def set_volume(self, percent: int) -> bool:
        return await self._send(f"{VOLUME_SET_PREFIX}{encode_volume(percent)}")

    async def volume_up(self) -> bool:
        return await self._send(DENON_COMMANDS['VOLUME_UP'])

    async def volume_down(self) -> bool:
        return await self._send(DENON_COMMANDS['VOLUME_DOWN'])

    async def set_mute(self, muted: bool) -> bool:
        return await self._send(DENON_COMMANDS['MUTE_ON'] if muted else DENON_COMMANDS['MUTE_OFF'])

    async def toggle_mute(self) -> bool:
        muted = await self.get_mute_state()
        return await self.set_mute(not muted)

    async def set_input(self, input_name: str) -> bool:
        input_name = input_name.strip().upper()
        if not input_name:
            raise ValueError("Input name must not be empty")
        return await self._send(f"{INPUT_PREFIX}{input_name}")

    async def set_sound_mode(self, mode: str) -> bool:
        mode = mode.strip().upper()
        if not mode:
            raise ValueError("Sound mode must not be empty")
        return await self._send(f"{SOUND_MODE_PREFIX}{mode}")

    # ================== COMMAND QUEUE ==================

    async def _query(self, field_name: str, command: str) -> Any:
        if self.is_simulated:
            return getattr(self._state, field_name)

        async with self._command_lock:
            if self._is_fresh(field_name):
                return getattr(self._state, field_name)
            return await self._execute_locked(command)

    async def _send(self, command: str) -> bool:
        if self.is_simulated:
            self._state = simulate_command(self._state, command)
            logger.debug(f"Simulated AVR command {command!r}: {self._state}")
            return True

        async with self._command_lock:
            await self._execute_locked(command)
        return True

    async def _execute_locked(self, command: str) -> Any:
        """Write one command and wait for its reply. Caller holds the command lock."""
        if self._closed:
            raise ConnectionLost(f"AVR session closed, {command!r} not sent")
        await self._ensure_connected()

        writer = self._writer
        if writer is None:
            raise ConnectionLost(f"Connection dropped before {command!r} was sent")

        expected = expected_reply_field(command)
        pending = PendingCommand(command, expected, asyncio.get_running_loop().create_future())
        self._pending.append(pending)

        try:
            try:
                logger.debug(f"AVR -> {command}")
                writer.write(f"{command}{COMMAND_TERMINATOR}".encode('ascii'))
                await writer.drain()
            except OSError as e:
                self._pending.remove(pending)
                error = ConnectionLost(f"Failed to send {command!r}: {e}")
                self._handle_connection_lost(error, writer)
                raise error

            if expected is None:
                return None

            try:
                value = await asyncio.wait_for(pending.future, timeout=self.command_timeout)
            except asyncio.TimeoutError:
                logger.warning(f"Denon AVR command {command!r} timed out after {self.command_timeout}s")
                raise CommandTimeout(f"No reply to {command!r} within {self.command_timeout}s") from None

            self._failure_count = 0
            return value
        finally:
            if pending in self._pending:
                self._pending.remove(pending)

    async def _ensure_connected(self):
        if self.connection_state == ConnectionState.CONNECTED and self._writer is not None:
            return
        await self.connect()

    def _is_fresh(self, field_name: str) -> bool:
        resolved_at = self._fresh_at.get(field_name)
        if resolved_at is None:
            return False
        return asyncio.get_running_loop().time() - resolved_at < self.status_cache_seconds

    # ================== RECEIVE PATH ==================

    async def _read_loop(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        try:
            while True:
                data = await reader.read(self.RECEIVE_CHUNK)
                if not data:
                    raise ConnectionLost("AVR closed the connection")
                self._handle_data(data)
        except asyncio.CancelledError:
            raise
        except ConnectionLost as e:
            self._handle_connection_lost(e, writer)
        except OSError as e:
            self._handle_connection_lost(ConnectionLost(f"AVR connection error: {e}"), writer)

    def _handle_data(self, data: bytes):
        self._receive_buffer += data.decode('ascii', errors='replace')
        *lines, self._receive_buffer = _LINE_SPLIT.split(self._receive_buffer)

        if len(self._receive_buffer) > self.MAX_BUFFER_CHARS:
            logger.warning(f"Discarding {len(self._receive_buffer)} unterminated characters from AVR")
            self._receive_buffer = ''

        lines = [line.strip() for line in lines if line.strip()]
        if lines:
            self._process_lines(lines)

    def _process_lines(self, lines):
        """Apply every recognized line to the mirror and resolve pending commands.

        When several lines in a batch set the same field the last one wins.
        """
        matched: Dict[str, Any] = {}
        for line in lines:
            logger.debug(f"AVR <- {line}")
            try:
                parsed = parse_reply_line(line)
            except MalformedReply as e:
                logger.warning(f"Ignoring AVR reply: {e}")
                continue
            if parsed is None:
                continue
            field_name, value = parsed
            matched[field_name] = value

        if not matched:
            return

        new_state = self._state
        for field_name, value in matched.items():
            new_state = new_state.with_field(field_name, value)
        if new_state != self._state:
            logger.info(f"Denon AVR status updated: {new_state}")
        self._state = new_state

        now = asyncio.get_running_loop().time()
        for field_name in matched:
            self._fresh_at[field_name] = now

        for pending in self._pending:
            if pending.expected_field in matched and not pending.future.done():
                pending.future.set_result(matched[pending.expected_field])

    # ================== CONNECTION MANAGEMENT ==================

    def _on_connected(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        self._reader = reader
        self._writer = writer
        self._receive_buffer = ''
        self._set_state(ConnectionState.CONNECTED)
        self._reader_task = asyncio.create_task(self._read_loop(reader, writer))

    def _handle_connection_lost(self, error: ConnectionLost, writer: Optional[asyncio.StreamWriter]):
        if writer is None or writer is not self._writer:
            # Stale socket from an earlier connection
            return

        logger.warning(f"Denon AVR connection lost: {error}")
        self._reader_task = None
        self._teardown_connection()
        self._set_state(ConnectionState.DISCONNECTED)
        self._fail_pending(error)
        self._failure_count += 1
        self._schedule_reconnect()

    def _teardown_connection(self):
        if self._writer is not None:
            self._writer.close()
        self._reader = None
        self._writer = None
        self._receive_buffer = ''
        self._fresh_at.clear()

    def _fail_pending(self, error: AVRError):
        while self._pending:
            pending = self._pending.popleft()
            if not pending.future.done():
                pending.future.set_exception(error)

    def _schedule_reconnect(self):
        if self._closed or self.is_simulated:
            return
        if self._reconnect_task is not None and not self._reconnect_task.done():
            return
        if self._failure_count > self.max_reconnect_attempts:
            logger.error(
                f"Denon AVR: {self.max_reconnect_attempts} reconnection attempts failed, "
                f"waiting for the next command to retry"
            )
            return

        delay = self._backoff_delay(self._failure_count - 1)
        logger.info(f"Denon AVR: scheduling reconnection attempt {self._failure_count} in {delay:.1f}s")
        self._reconnect_task = asyncio.create_task(self._reconnect_after(delay))

    async def _reconnect_after(self, delay: float):
        await asyncio.sleep(delay)
        self._reconnect_task = None
        if self._closed or self.connection_state == ConnectionState.CONNECTED:
            return
        try:
            await self.connect()
            logger.info("Denon AVR reconnected")
        except AVRConnectionError as e:
            logger.warning(f"Denon AVR reconnection failed: {e}")
            self._schedule_reconnect()

    def _backoff_delay(self, failures: int) -> float:
        return min(self.reconnect_base_delay * (2 ** max(failures, 0)), self.reconnect_max_delay)

    def _enter_simulated_fallback(self):
        self._teardown_connection()
        self._set_state(ConnectionState.SIMULATED_FALLBACK)
        self._state = SIMULATED_INITIAL_STATE

    def _set_state(self, new_state: ConnectionState):
        if new_state != self.connection_state:
            logger.info(f"Denon AVR connection state: {self.connection_state.value} -> {new_state.value}")
            self.connection_state = new_state
