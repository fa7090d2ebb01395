"""
Serial communication handler for GQ GMC Geiger counters.
Implements the GQ-RFC1201 commands used by the client and the bulk
history download.
"""

import logging
import struct
import threading
from datetime import datetime
from typing import Callable, Optional, Tuple

import serial
import serial.tools.list_ports

from gmc_client.config import (
    DEFAULT_BAUD_RATE,
    DEFAULT_PORT,
    FILLER_BYTE,
    FLASH_LAST_ADDRESS,
    FLASH_PAGE_SIZE,
    HISTORY_RESTARTS,
    OPEN_VERSION_ATTEMPTS,
    SERIAL_TIMEOUT,
    VERSION_LENGTH,
)
from gmc_client.data_models import SampleSeries
from gmc_client.data_parser import parse_history
from gmc_client.exceptions import DeviceError

_LOGGER = logging.getLogger(__name__)

ACK = b"\xAA"

# SETTIME<field> command suffixes
CLOCK_FIELDS = {
    "year": b"YY",
    "month": b"MM",
    "day": b"DD",
    "hour": b"HH",
    "minute": b"MI",
    "second": b"SS",
}


class GMCDevice:
    """Command interface of a GMC counter behind an open serial port."""

    def __init__(self, ser):
        """
        Wrap an already configured port.

        Args:
            ser: serial.Serial or any object offering write(), read(n),
                reset_input_buffer(), reset_output_buffer() and close()
        """
        self.ser = ser
        self._heartbeat_partial = b""

    @classmethod
    def open(cls, port: str = DEFAULT_PORT, baud: int = DEFAULT_BAUD_RATE,
             timeout: float = SERIAL_TIMEOUT) -> "GMCDevice":
        """
        Open the port 8N1 and make sure a counter answers on it.

        Raises:
            DeviceError: If the port can't be opened or the device stays silent
        """
        _LOGGER.debug("Opening %s at %d baud", port, baud)
        try:
            ser = serial.Serial(
                port,
                baud,
                bytesize=serial.EIGHTBITS,
                parity=serial.PARITY_NONE,
                stopbits=serial.STOPBITS_ONE,
                timeout=timeout,
            )
        except serial.SerialException as e:
            raise DeviceError(f"Failed to connect to {port}: {e}") from e

        device = cls(ser)
        device.flush()
        for attempt in range(OPEN_VERSION_ATTEMPTS):
            try:
                version = device.version()
            except DeviceError:
                _LOGGER.debug("No version answer (attempt %d/%d)",
                              attempt + 1, OPEN_VERSION_ATTEMPTS)
                continue
            if version:
                _LOGGER.debug("Connected to %s", version)
                return device

        device.close()
        raise DeviceError("Couldn't open device")

    # Low level I/O
    def _command(self, request: bytes, response_length: int = 0) -> bytes:
        """
        Send a request and read a fixed length response.

        Args:
            request: Complete command bytes including <...>>
            response_length: Number of bytes to read back, 0 for none

        Returns:
            The response bytes

        Raises:
            DeviceError: On port errors or when fewer bytes arrive
        """
        _LOGGER.debug("Sending command: %r", request)
        try:
            self.ser.write(request)
            if not response_length:
                return b""
            response = self.ser.read(response_length)
        except serial.SerialException as e:
            raise DeviceError(f"Serial error on {request!r}: {e}") from e

        _LOGGER.debug("Received %d bytes: %r", len(response), response)
        if len(response) < response_length:
            raise DeviceError(
                f"Short response to {request!r}: {len(response)} of {response_length} bytes"
            )
        return response

    def flush(self):
        """Drop anything pending in both directions."""
        self.ser.reset_input_buffer()
        self.ser.reset_output_buffer()

    def close(self):
        """Close the serial connection."""
        if self.ser is not None:
            self.ser.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    # Simple accessors
    def version(self) -> str:
        """Hardware model and firmware version, e.g. 'GMC-320Re 4.09'."""
        response = self._command(b"<GETVER>>", VERSION_LENGTH)
        return response.decode("ascii", errors="replace").strip()

    def cpm(self) -> int:
        """Current counts per minute."""
        return struct.unpack(">H", self._command(b"<GETCPM>>", 2))[0]

    def voltage(self) -> float:
        """Battery voltage in volts."""
        return self._command(b"<GETVOLT>>", 1)[0] / 10.0

    def serial_number(self) -> str:
        return self._command(b"<GETSERIAL>>", 7).hex().upper()

    def temperature(self) -> float:
        """Temperature in degrees Celsius."""
        integer, decimal, negative, _ = self._command(b"<GETTEMP>>", 4)
        value = integer + decimal / 10.0
        return -value if negative else value

    def gyroscope(self) -> Tuple[int, int, int]:
        """Raw (x, y, z) gyroscope positions."""
        response = self._command(b"<GETGYRO>>", 7)
        return struct.unpack(">HHH", response[:6])

    def get_datetime(self) -> datetime:
        yy, month, day, hour, minute, second, _ = self._command(b"<GETDATETIME>>", 7)
        return datetime(2000 + yy, month, day, hour, minute, second)

    def set_datetime(self, dt: Optional[datetime] = None) -> bool:
        """
        Set the device clock.

        Args:
            dt: New date/time, the host's current time when omitted

        Returns:
            True if the device acknowledged the new time
        """
        if dt is None:
            dt = datetime.now()
        stamp = struct.pack(
            ">BBBBBB",
            dt.year - 2000,
            dt.month,
            dt.day,
            dt.hour,
            dt.minute,
            dt.second,
        )
        return self._command(b"<SETDATETIME" + stamp + b">>", 1) == ACK

    def set_clock_field(self, field: str, value: int) -> bool:
        """Set a single clock field (year is given as years after 2000)."""
        try:
            code = CLOCK_FIELDS[field]
        except KeyError:
            raise ValueError(f"Unknown clock field: {field}") from None
        return self._command(b"<SETTIME" + code + bytes([value]) + b">>", 1) == ACK

    def cfg_update(self) -> bool:
        """Make the device reload its configuration."""
        return self._command(b"<CFGUPDATE>>", 1) == ACK

    def power_off(self):
        self._command(b"<POWEROFF>>")

    def power_on(self):
        self._command(b"<POWERON>>")

    def reboot(self):
        self._command(b"<REBOOT>>")

    def factory_reset(self):
        self._command(b"<FACTORYRESET>>")

    # Heartbeat
    def enable_heartbeat(self):
        """Start the once-per-second cps stream."""
        self.ser.reset_input_buffer()
        self._heartbeat_partial = b""
        self._command(b"<HEARTBEAT1>>")

    def disable_heartbeat(self):
        self._command(b"<HEARTBEAT0>>")
        self.ser.reset_input_buffer()

    def read_heartbeat(self) -> Optional[int]:
        """
        Read one heartbeat value.

        A single byte arriving before the timeout is kept and completed by
        the next call, so the stream stays aligned on value boundaries.

        Returns:
            Counts of the last second, or None if the read timed out
        """
        try:
            data = self._heartbeat_partial + self.ser.read(2 - len(self._heartbeat_partial))
        except serial.SerialException as e:
            raise DeviceError(f"Serial error while reading heartbeat: {e}") from e
        if len(data) != 2:
            self._heartbeat_partial = data
            return None
        self._heartbeat_partial = b""
        high, low = data
        return ((high & 0x0F) << 8) + low

    # History
    def read_page(self, address: int, length: int = FLASH_PAGE_SIZE) -> bytes:
        """
        Read one region of the history flash with SPIR.

        The device answers with length field + 1 bytes, so length - 1 is
        requested. Fewer bytes are returned as-is on timeout.
        """
        request = (
            b"<SPIR"
            + struct.pack(">I", address)[1:]
            + struct.pack(">H", length - 1)
            + b">>"
        )
        _LOGGER.debug("Reading flash page 0x%06X", address)
        try:
            self.ser.write(request)
            return self.ser.read(length)
        except serial.SerialException as e:
            raise DeviceError(f"Serial error while reading page 0x{address:06X}: {e}") from e

    def _read_history_pages(self) -> Optional[bytes]:
        """One pass over the flash; None means the device dropped a page."""
        buf = bytearray()
        for address in range(0, FLASH_LAST_ADDRESS + 1, FLASH_PAGE_SIZE):
            page = self.read_page(address)
            if not page:
                return None
            if all(byte == FILLER_BYTE for byte in page):
                _LOGGER.debug("End of history at page 0x%06X", address)
                break
            buf.extend(page)
        return bytes(buf)

    def read_history(self) -> bytes:
        """
        Download the whole history flash image.

        Pages are read until one consisting only of filler bytes; a page
        coming back empty restarts the transfer from address 0.

        Raises:
            DeviceError: When every restart came back incomplete
        """
        for attempt in range(HISTORY_RESTARTS + 1):
            data = self._read_history_pages()
            if data is not None:
                _LOGGER.debug("Read %d bytes of history", len(data))
                return data
            _LOGGER.warning("Empty page from device, restarting history read (%d/%d)",
                            attempt + 1, HISTORY_RESTARTS)
            self.flush()
        raise DeviceError("History read failed after %d restarts" % HISTORY_RESTARTS)

    def samples(self) -> SampleSeries:
        """Download and decode the history."""
        return parse_history(self.read_history())


class HeartbeatReader(threading.Thread):
    """Background reader for the heartbeat cps stream."""

    def __init__(self, device: GMCDevice, cps_callback: Callable[[int], None],
                 stop_event: threading.Event):
        """
        Initialize the heartbeat reader.

        Args:
            device: Open device to stream from
            cps_callback: Function to call with each per-second count
            stop_event: Event to signal thread shutdown
        """
        super().__init__(daemon=True)
        self.device = device
        self.cps_callback = cps_callback
        self.stop_event = stop_event
        self.error: Optional[DeviceError] = None

    def run(self):
        """Main thread loop for reading heartbeat values."""
        try:
            self.device.enable_heartbeat()
            while not self.stop_event.is_set():
                value = self.device.read_heartbeat()
                if value is not None:
                    self.cps_callback(value)
        except DeviceError as e:
            _LOGGER.error("Heartbeat stream stopped: %s", e)
            self.error = e
        finally:
            try:
                self.device.disable_heartbeat()
            except DeviceError as e:
                _LOGGER.warning("Could not disable heartbeat: %s", e)


def get_available_ports() -> list[str]:
    """Get list of available serial ports."""
    return [port.device for port in serial.tools.list_ports.comports()]
