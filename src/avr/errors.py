"""
Error taxonomy for the Denon telnet client
"""


class AVRError(Exception):
    """Base exception for AVR communication errors."""
    pass


class AVRConnectionError(AVRError):
    """Could not establish the telnet connection."""
    pass


class ConnectionTimeout(AVRConnectionError):
    """Socket open did not complete within the connection timeout."""
    pass


class ConnectionLost(AVRConnectionError):
    """The peer closed the connection or the socket errored while a command was pending."""
    pass


class CommandTimeout(AVRError):
    """No matching reply arrived within the command timeout."""
    pass


class MalformedReply(AVRError):
    """A reply line carried a known prefix but did not match its pattern.

    Logged by the reply parser; never raised to callers.
    """

    def __init__(self, line: str, field: str):
        super().__init__(f"Malformed {field} reply: {line!r}")
        self.line = line
        self.field = field
