from datetime import datetime, timedelta

import pytest

from conftest import START, run
from gmc_client.data_models import RecordingMode
from gmc_client.data_parser import decode, encode_header, parse_history
from gmc_client.exceptions import (
    FramingError,
    ProtocolError,
    UnknownModeError,
    UnsupportedFrameError,
)

TIMESTAMP = bytes([23, 5, 17, 8, 30, 0])


def test_encode_header_layout():
    header = encode_header(datetime(2017, 2, 14, 21, 20, 12), RecordingMode.PER_MINUTE)

    assert header == bytes.fromhex("55AA00 11020E15140C 55AA02")


@pytest.mark.parametrize("mode", list(RecordingMode))
def test_header_followed_by_counts(mode):
    series = parse_history(run(mode=mode, counts=range(1, 11)))

    assert len(series) == 10
    assert [s.offset for s in series] == list(range(1, 11))
    assert [s.count for s in series] == list(range(1, 11))
    assert all(s.mode is mode for s in series)
    assert all(s.start_time == START for s in series)


def test_filler_is_skipped_without_touching_offsets():
    later = START + timedelta(hours=2)
    data = (
        run(counts=[5, 6])
        + b"\xff" * 10
        + bytes([7])
        + b"\xff"
        + run(start=later, counts=[8])
        + b"\xff" * 3
    )

    series = parse_history(data)

    assert [s.count for s in series] == [5, 6, 7, 8]
    assert [s.offset for s in series] == [1, 2, 3, 1]
    assert series.tail.start_time == later


def test_lone_0x55_is_a_count():
    series = parse_history(run(counts=[0x55, 0x10, 0x55]))

    assert [s.count for s in series] == [0x55, 0x10, 0x55]


def test_chronology_forward_and_backward():
    data = (
        run(mode=RecordingMode.PER_SECOND, counts=[1] * 5)
        + run(start=START + timedelta(minutes=10), mode=RecordingMode.PER_MINUTE, counts=[20] * 4)
        + run(start=START + timedelta(hours=5), mode=RecordingMode.PER_HOUR, counts=[30] * 3)
    )
    series = parse_history(data)

    forward = []
    node = series.head
    while node:
        forward.append(node)
        node = node.next

    backward = []
    node = series.tail
    while node:
        backward.append(node)
        node = node.prev

    times = [s.absolute_time() for s in forward]
    assert len(forward) == 12
    assert times == sorted(times)
    assert backward == forward[::-1]


def test_mode_change_mid_stream():
    data = (
        run(mode=RecordingMode.PER_SECOND, counts=[1, 2])
        + run(start=START + timedelta(minutes=1), mode=RecordingMode.PER_MINUTE, counts=[30])
    )
    series = parse_history(data)

    assert [s.mode for s in series] == [
        RecordingMode.PER_SECOND,
        RecordingMode.PER_SECOND,
        RecordingMode.PER_MINUTE,
    ]
    assert series.tail.prev is series[1]
    assert series.tail.cps() is None
    assert series[1].cpm() == 3


def test_empty_and_filler_only_buffers():
    assert len(parse_history(b"")) == 0
    assert decode(b"") is None
    assert decode(b"\xff" * 64) is None


def test_decode_returns_head():
    head = decode(run(counts=[9, 8]))

    assert head.count == 9
    assert head.next.count == 8


@pytest.mark.parametrize("trailer, error", [
    (b"\x00\x00\x00", FramingError),
    (b"\x55\x00\x01", FramingError),
    (b"\xaa\x55\x01", FramingError),
    (b"\x55\xaa\x00", UnknownModeError),
    (b"\x55\xaa\x04", UnknownModeError),
])
def test_malformed_header_rejected(trailer, error):
    data = b"\x55\xaa\x00" + TIMESTAMP + trailer + bytes([1, 2, 3])

    with pytest.raises(error):
        parse_history(data)


def test_malformed_header_after_good_run_yields_nothing():
    data = run(counts=[1, 2, 3]) + b"\x55\xaa\x00" + TIMESTAMP + b"\x00\x00\x00"

    with pytest.raises(ProtocolError, match="format error"):
        parse_history(data)


def test_double_byte_frame_unsupported():
    data = run(counts=[1]) + b"\x55\xaa\x01\x01\x2c"

    with pytest.raises(UnsupportedFrameError, match="unsupported extended sample"):
        parse_history(data)


def test_unknown_command_tag():
    with pytest.raises(FramingError, match="unknown command"):
        parse_history(run(counts=[1]) + b"\x55\xaa\x02\x03abc")


@pytest.mark.parametrize("data", [
    b"\x55\xaa",
    b"\x55\xaa\x00" + TIMESTAMP,
    b"\x55\xaa\x00" + TIMESTAMP + b"\x55\xaa",
])
def test_truncated_frames(data):
    with pytest.raises(FramingError, match="truncated"):
        parse_history(data)


def test_count_before_header():
    with pytest.raises(FramingError, match="before first header"):
        parse_history(b"\xff\x03" + run(counts=[1]))


def test_invalid_timestamp():
    data = b"\x55\xaa\x00" + bytes([23, 13, 1, 0, 0, 0]) + b"\x55\xaa\x02\x01"

    with pytest.raises(FramingError, match="invalid timestamp"):
        parse_history(data)


def test_error_reports_position():
    data = run(counts=[1]) + b"\x55\xaa\x01"

    with pytest.raises(UnsupportedFrameError) as excinfo:
        parse_history(data)

    assert excinfo.value.position == 15
    assert str(excinfo.value) == "unsupported extended sample at byte 15"
