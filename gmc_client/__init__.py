"""
Client for GQ GMC Geiger counters: serial commands and history decoding.
"""

from gmc_client.data_models import RecordingMode, Sample, SampleSeries
from gmc_client.data_parser import HistoryParser, decode, parse_history
from gmc_client.exceptions import (
    DeviceError,
    FramingError,
    GMCError,
    ProtocolError,
    UnknownModeError,
    UnsupportedFrameError,
)

__version__ = "0.1.0"
