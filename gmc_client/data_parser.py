"""
History dump parsing for GQ GMC Geiger counters.
Turns the raw flash image read with SPIR into a series of count samples.

Format of the flash image:

    55 AA 00 YY MM DD HH MM SS 55 AA MD    header: date/time + recording mode
    55 AA 01 DH DL                         double byte count (unsupported)
    FF                                     erased flash, skipped
    any other byte                         count for the active header

YY is the year minus 2000, MD is 1 (per second), 2 (per minute) or
3 (per hour).
"""

import logging
import struct
from datetime import datetime
from typing import NamedTuple, Optional, Tuple

from gmc_client.config import FILLER_BYTE
from gmc_client.data_models import RecordingMode, Sample, SampleSeries
from gmc_client.exceptions import FramingError, UnknownModeError, UnsupportedFrameError

_LOGGER = logging.getLogger(__name__)

LEAD_IN = b"\x55\xAA"
TAG_HEADER = 0x00
TAG_DOUBLE_BYTE = 0x01
HEADER_BODY_LENGTH = 9  # YY MM DD HH MM SS 55 AA MD


class HeaderContext(NamedTuple):
    """Timestamp, mode and running offset of the current header frame."""
    start_time: datetime
    mode: RecordingMode
    offset: int


class HistoryParser:
    """Parses the history flash image downloaded from the counter."""

    def parse(self, data: bytes) -> SampleSeries:
        """
        Decode a complete history dump.

        Args:
            data: Raw bytes as concatenated by the bulk reader

        Returns:
            SampleSeries holding one sample per count byte, in scan order

        Raises:
            ProtocolError: On any malformed frame; no partial result is kept
        """
        series = SampleSeries()
        context: Optional[HeaderContext] = None
        pos = 0
        end = len(data)

        while pos < end:
            byte = data[pos]

            if self._is_lead_in(data, pos):
                context, pos = self._read_command(data, pos + len(LEAD_IN))
                continue

            pos += 1
            if byte == FILLER_BYTE:
                continue
            if context is None:
                raise FramingError("count before first header", pos - 1)

            context = context._replace(offset=context.offset + 1)
            series.append(context.start_time, context.offset, byte, context.mode)

        _LOGGER.debug("Decoded %d samples from %d bytes", len(series), end)
        return series

    def _is_lead_in(self, data: bytes, pos: int) -> bool:
        """Check for 55 AA; a 55 without AA after it is a plain count."""
        return data[pos:pos + len(LEAD_IN)] == LEAD_IN

    def _read_command(self, data: bytes, pos: int) -> Tuple[HeaderContext, int]:
        """Dispatch on the tag following a lead-in."""
        if pos >= len(data):
            raise FramingError("truncated command", pos)

        tag = data[pos]
        if tag == TAG_HEADER:
            return self._read_header(data, pos + 1)
        if tag == TAG_DOUBLE_BYTE:
            raise UnsupportedFrameError("unsupported extended sample", pos)
        raise FramingError("unknown command 0x%02X" % tag, pos)

    def _read_header(self, data: bytes, pos: int) -> Tuple[HeaderContext, int]:
        """Read the date/time and mode of a header frame."""
        body = data[pos:pos + HEADER_BODY_LENGTH]
        if len(body) < HEADER_BODY_LENGTH:
            raise FramingError("truncated header", pos)

        yy, month, day, hour, minute, second = body[:6]
        if body[6:8] != LEAD_IN:
            raise FramingError("format error", pos + 6)

        try:
            mode = RecordingMode(body[8])
        except ValueError:
            raise UnknownModeError("unknown history type %d" % body[8], pos + 8) from None

        try:
            start_time = datetime(2000 + yy, month, day, hour, minute, second)
        except ValueError:
            raise FramingError("invalid timestamp %s" % body[:6].hex(), pos) from None

        _LOGGER.debug("Header at byte %d: %s, %s", pos, start_time, mode.label)
        return HeaderContext(start_time, mode, 0), pos + HEADER_BODY_LENGTH


def parse_history(data: bytes) -> SampleSeries:
    """Decode a history dump into a SampleSeries."""
    return HistoryParser().parse(data)


def decode(data: bytes) -> Optional[Sample]:
    """Decode a history dump, returning the first sample or None."""
    return parse_history(data).head


def encode_header(start_time: datetime, mode: RecordingMode) -> bytes:
    """Build the 12 byte header frame the device writes before a run."""
    stamp = struct.pack(
        ">BBBBBB",
        start_time.year - 2000,
        start_time.month,
        start_time.day,
        start_time.hour,
        start_time.minute,
        start_time.second,
    )
    return LEAD_IN + bytes([TAG_HEADER]) + stamp + LEAD_IN + bytes([mode.value])
