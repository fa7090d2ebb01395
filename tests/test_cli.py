import pytest
from typer.testing import CliRunner

from conftest import FakeSerial, page, run
from gmc_client import cli
from gmc_client.data_models import RecordingMode
from gmc_client.exceptions import DeviceError
from gmc_client.serial_handler import GMCDevice

runner = CliRunner()


@pytest.fixture
def fake_device(monkeypatch):
    """Make every command talk to a scripted port instead of real hardware."""
    def factory(replies=()):
        port = FakeSerial(replies)
        monkeypatch.setattr(GMCDevice, "open", classmethod(lambda cls, *a, **kw: cls(port)))
        return port
    return factory


def test_decode_prints_summary(tmp_path):
    dump = tmp_path / "history.bin"
    dump.write_bytes(run(mode=RecordingMode.PER_MINUTE, counts=[200, 100]) + b"\xff" * 16)

    result = runner.invoke(cli.app, ["decode", str(dump)])

    assert result.exit_code == 0
    assert "Samples     : 2" in result.stdout
    assert "Total counts: 300" in result.stdout
    assert "Maximum rate: 1.000 µSv/h" in result.stdout


def test_decode_exports_csv(tmp_path):
    dump = tmp_path / "history.bin"
    dump.write_bytes(run(mode=RecordingMode.PER_SECOND, counts=[1, 2, 3]))
    out = tmp_path / "history.csv"

    result = runner.invoke(cli.app, ["decode", str(dump), "--csv", str(out), "--limit", "0"])

    assert result.exit_code == 0
    assert len(out.read_text().splitlines()) == 4


def test_decode_plot_to_missing_directory(tmp_path):
    dump = tmp_path / "history.bin"
    dump.write_bytes(run(counts=[10, 20]))
    out = tmp_path / "missing" / "chart.png"

    result = runner.invoke(cli.app, ["decode", str(dump), "--plot", str(out), "--limit", "0"])

    assert result.exit_code == 1
    assert isinstance(result.exception, SystemExit)
    assert "Could not write" in result.stdout
    assert not out.exists()


def test_decode_malformed_file(tmp_path):
    dump = tmp_path / "broken.bin"
    dump.write_bytes(run(counts=[1]) + b"\x55\xaa\x01\x01\x2c")

    result = runner.invoke(cli.app, ["decode", str(dump)])

    assert result.exit_code == 1
    assert "unsupported extended sample" in result.stdout


def test_decode_empty_file(tmp_path):
    dump = tmp_path / "empty.bin"
    dump.write_bytes(b"\xff" * 32)

    result = runner.invoke(cli.app, ["decode", str(dump)])

    assert result.exit_code == 0
    assert "No samples in history" in result.stdout


def test_cpm_command(fake_device):
    fake_device([b"\x00\xc8"])

    result = runner.invoke(cli.app, ["cpm", "--port", "/dev/ttyUSB0"])

    assert result.exit_code == 0
    assert "200 CPM (1.000 µSv/h)" in result.stdout


def test_dump_command(fake_device, tmp_path):
    first = page(run(counts=[7, 8]))
    fake_device([first, page()])
    out = tmp_path / "dump.bin"

    result = runner.invoke(cli.app, ["dump", str(out)])

    assert result.exit_code == 0
    assert out.read_bytes() == first


def test_history_command(fake_device):
    fake_device([page(run(counts=[50, 60])), page()])

    result = runner.invoke(cli.app, ["history"])

    assert result.exit_code == 0
    assert "Samples     : 2" in result.stdout


def test_set_time_command(fake_device):
    port = fake_device([b"\xaa"])

    result = runner.invoke(cli.app, ["set-time", "2023-05-17 08:30:00"])

    assert result.exit_code == 0
    assert port.written == [b"<SETDATETIME\x17\x05\x11\x08\x1e\x00>>"]


def test_set_time_not_acknowledged(fake_device):
    fake_device([b"\x00"])

    result = runner.invoke(cli.app, ["set-time", "2023-05-17 08:30:00"])

    assert result.exit_code == 1
    assert "did not acknowledge" in result.stdout


def test_power_command(fake_device):
    port = fake_device()

    result = runner.invoke(cli.app, ["power", "off"])

    assert result.exit_code == 0
    assert port.written == [b"<POWEROFF>>"]


def test_factory_reset_needs_confirmation(fake_device):
    port = fake_device()

    result = runner.invoke(cli.app, ["factory-reset"], input="n\n")

    assert result.exit_code == 1
    assert port.written == []


def test_info_tolerates_missing_queries(fake_device):
    fake_device([b"GMC-300Re 3.20", b"\xf4\x88\x00\x12\x34\x56\x78", b"\x2a"])

    result = runner.invoke(cli.app, ["info"])

    assert result.exit_code == 0
    assert "GMC-300Re 3.20" in result.stdout
    assert "F4880012345678" in result.stdout
    assert "n/a" in result.stdout


def test_unreachable_device(monkeypatch):
    def fail(cls, *args, **kwargs):
        raise DeviceError("Couldn't open device")

    monkeypatch.setattr(GMCDevice, "open", classmethod(fail))

    result = runner.invoke(cli.app, ["cpm"])

    assert result.exit_code == 1
    assert "Couldn't open device" in result.stdout
