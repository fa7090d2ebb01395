"""
Exceptions raised by the GMC client.
"""


class GMCError(Exception):
    """Base class for every error raised by this package."""


class ProtocolError(GMCError):
    """The history blob is malformed; the whole decode is abandoned."""

    def __init__(self, message: str, position: int = -1):
        self.message = message
        self.position = position
        super().__init__(message)

    def __str__(self):
        if self.position < 0:
            return self.message
        return "%s at byte %d" % (self.message, self.position)


class FramingError(ProtocolError):
    """Unknown command tag, missing re-sync marker or truncated header."""


class UnknownModeError(ProtocolError):
    """Header declares a recording mode outside 1..3."""


class UnsupportedFrameError(ProtocolError):
    """Double-byte sample frame (tag 0x01)."""


class DeviceError(GMCError):
    """Serial communication with the counter failed."""
