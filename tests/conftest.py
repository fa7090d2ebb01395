from datetime import datetime

import pytest

from gmc_client.config import FILLER_BYTE, FLASH_PAGE_SIZE
from gmc_client.data_models import RecordingMode
from gmc_client.data_parser import encode_header
from gmc_client.serial_handler import GMCDevice


class FakeSerial:
    """In-memory port: each read() hands out the next scripted reply."""

    def __init__(self, replies=()):
        self.replies = list(replies)
        self.written = []
        self.is_open = True
        self.input_resets = 0

    def write(self, data):
        self.written.append(bytes(data))
        return len(data)

    def read(self, size=1):
        if not self.replies:
            return b""
        return self.replies.pop(0)[:size]

    def reset_input_buffer(self):
        self.input_resets += 1

    def reset_output_buffer(self):
        pass

    def close(self):
        self.is_open = False


START = datetime(2023, 5, 17, 8, 30, 0)


def run(start=START, mode=RecordingMode.PER_MINUTE, counts=()):
    """Header frame followed by raw count bytes."""
    return encode_header(start, mode) + bytes(counts)


def page(data=b""):
    """Pad data with erased flash to one SPIR page."""
    return data + bytes([FILLER_BYTE]) * (FLASH_PAGE_SIZE - len(data))


@pytest.fixture
def make_device():
    def factory(replies=()):
        port = FakeSerial(replies)
        return GMCDevice(port), port
    return factory
