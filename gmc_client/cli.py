"""GMC Geiger counter CLI entrypoint."""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Iterator, Optional

import typer
from rich import print
from rich.markup import escape
from rich.table import Table
from typing_extensions import Annotated

from gmc_client.config import CPM_PER_USV_H, DEFAULT_BAUD_RATE, DEFAULT_PORT, TABLE_ROWS
from gmc_client.data_export import DataExporter
from gmc_client.data_models import SampleSeries
from gmc_client.data_parser import parse_history
from gmc_client.exceptions import DeviceError, GMCError
from gmc_client.serial_handler import GMCDevice, HeartbeatReader, get_available_ports
from gmc_client.visualization import DoseRatePlot

_LOGGER = logging.getLogger(__name__)

app = typer.Typer(help="Talk to a GQ GMC Geiger counter and decode its history.")

PortOption = Annotated[
    str, typer.Option("--port", "-p", envvar="GMC_PORT", help="Serial port of the counter")
]
BaudOption = Annotated[int, typer.Option("--baud", "-b", help="Baud rate")]
CsvOption = Annotated[Optional[Path], typer.Option("--csv", help="Write samples to a CSV file")]
ExcelOption = Annotated[Optional[Path], typer.Option("--excel", help="Write samples to an .xlsx file")]
PlotOption = Annotated[Optional[Path], typer.Option("--plot", help="Write a dose rate chart (.png)")]
LimitOption = Annotated[int, typer.Option("--limit", "-n", min=0, help="Latest samples to print")]


class PowerState(str, Enum):
    on = "on"
    off = "off"


@app.callback()
def main(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Debug logging")] = False,
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _abort(error: Exception) -> None:
    _LOGGER.error("%s", error)
    print(f"[red]Error:[/red] {escape(str(error))}")
    raise typer.Exit(code=1)


@contextmanager
def _connected(port: str, baud: int) -> Iterator[GMCDevice]:
    """Open the counter, turning package errors into a clean exit."""
    try:
        with GMCDevice.open(port, baud) as device:
            yield device
    except GMCError as e:
        _abort(e)


def _report(series: SampleSeries, csv: Optional[Path], excel: Optional[Path],
            plot: Optional[Path], limit: int) -> None:
    if not len(series):
        print("No samples in history")
        return

    if limit:
        table = Table("Time", "Mode", "CPS", "CPM", "µSv/h")
        for sample in series.get_recent_samples(limit):
            sample_time, cps, cpm, usv = sample.to_row()
            table.add_row(
                sample_time.isoformat(sep=" "),
                sample.mode.label,
                "" if cps is None else str(cps),
                str(cpm),
                f"{usv:.3f}",
            )
        print(table)

    summary = DataExporter.get_export_summary(series)
    print(f"Samples     : {summary['count']}")
    print(f"From        : {summary['start']:%Y-%m-%d %H:%M:%S}")
    print(f"To          : {summary['end']:%Y-%m-%d %H:%M:%S}")
    print(f"Total counts: {summary['total_counts']}")
    print(f"Average rate: {summary['avg_usv_per_hour']:.3f} µSv/h")
    print(f"Maximum rate: {summary['max_usv_per_hour']:.3f} µSv/h")
    print(f"Modes       : {', '.join(summary['modes'])}")

    if csv and not DataExporter.export_to_csv(series, str(csv)):
        _abort(OSError(f"Could not write {csv}"))
    if excel and not DataExporter.export_to_excel(series, str(excel)):
        _abort(OSError(f"Could not write {excel}"))
    if plot and not DoseRatePlot(title=f"History {summary['start']:%Y-%m-%d}").save(series, str(plot)):
        _abort(OSError(f"Could not write {plot}"))
    for path in (csv, excel, plot):
        if path:
            print(f"Wrote {path}")


@app.command()
def ports() -> None:
    """List serial ports."""
    found = get_available_ports()
    if not found:
        print("No serial ports found")
        return
    for port in found:
        print(port)


@app.command()
def info(port: PortOption = DEFAULT_PORT, baud: BaudOption = DEFAULT_BAUD_RATE) -> None:
    """Show version, serial number, voltage, temperature and clock."""
    with _connected(port, baud) as device:
        table = Table("Property", "Value")
        table.add_row("Version", device.version())
        for name, getter in (
            ("Serial number", device.serial_number),
            ("Voltage (V)", device.voltage),
            ("Temperature (°C)", device.temperature),
            ("Date/time", device.get_datetime),
        ):
            try:
                value = str(getter())
            except DeviceError as e:
                # Older firmware doesn't answer every query
                _LOGGER.debug("%s unavailable: %s", name, e)
                value = "n/a"
            table.add_row(name, value)
        print(table)


@app.command()
def cpm(port: PortOption = DEFAULT_PORT, baud: BaudOption = DEFAULT_BAUD_RATE) -> None:
    """Show the current counts per minute."""
    with _connected(port, baud) as device:
        value = device.cpm()
        print(f"{value} CPM ({value / CPM_PER_USV_H:.3f} µSv/h)")


@app.command()
def heartbeat(
    port: PortOption = DEFAULT_PORT,
    baud: BaudOption = DEFAULT_BAUD_RATE,
    seconds: Annotated[int, typer.Option(min=0, help="Stop after N seconds, 0 runs until Ctrl-C")] = 0,
) -> None:
    """Stream counts per second."""
    with _connected(port, baud) as device:
        stop_event = threading.Event()
        reader = HeartbeatReader(
            device,
            lambda cps: print(f"{datetime.now():%H:%M:%S} {cps} CPS"),
            stop_event,
        )
        reader.start()
        try:
            reader.join(timeout=seconds or None)
        except KeyboardInterrupt:
            pass
        finally:
            stop_event.set()
            reader.join()
        if reader.error:
            raise reader.error


@app.command(name="set-time")
def set_time(
    when: Annotated[
        Optional[datetime],
        typer.Argument(formats=["%Y-%m-%d %H:%M:%S", "%Y-%m-%dT%H:%M:%S"],
                       help="Defaults to the host's current time"),
    ] = None,
    port: PortOption = DEFAULT_PORT,
    baud: BaudOption = DEFAULT_BAUD_RATE,
) -> None:
    """Set the device clock."""
    when = when or datetime.now()
    with _connected(port, baud) as device:
        if not device.set_datetime(when):
            raise DeviceError("Device did not acknowledge the new time")
        print(f"Clock set to {when:%Y-%m-%d %H:%M:%S}")


@app.command()
def power(state: PowerState, port: PortOption = DEFAULT_PORT,
          baud: BaudOption = DEFAULT_BAUD_RATE) -> None:
    """Switch the counter on or off."""
    with _connected(port, baud) as device:
        if state == PowerState.on:
            device.power_on()
        else:
            device.power_off()
        print(f"Power {state.value}")


@app.command()
def reboot(port: PortOption = DEFAULT_PORT, baud: BaudOption = DEFAULT_BAUD_RATE) -> None:
    """Reboot the counter."""
    with _connected(port, baud) as device:
        device.reboot()


@app.command(name="factory-reset")
def factory_reset(
    port: PortOption = DEFAULT_PORT,
    baud: BaudOption = DEFAULT_BAUD_RATE,
    yes: Annotated[bool, typer.Option("--yes", help="Don't ask for confirmation")] = False,
) -> None:
    """Reset the counter to factory defaults."""
    if not yes:
        typer.confirm("Erase all settings on the device?", abort=True)
    with _connected(port, baud) as device:
        device.factory_reset()


@app.command()
def dump(
    outfile: Annotated[Path, typer.Argument(dir_okay=False, help="Raw history output file")],
    port: PortOption = DEFAULT_PORT,
    baud: BaudOption = DEFAULT_BAUD_RATE,
) -> None:
    """Download the raw history flash image."""
    with _connected(port, baud) as device:
        data = device.read_history()
    outfile.write_bytes(data)
    print(f"Saved {len(data)} bytes of history to {outfile}")


@app.command()
def decode(
    infile: Annotated[Path, typer.Argument(exists=True, dir_okay=False, readable=True,
                                           help="Raw history file written by `gmc dump`")],
    csv: CsvOption = None,
    excel: ExcelOption = None,
    plot: PlotOption = None,
    limit: LimitOption = TABLE_ROWS,
) -> None:
    """Decode a raw history file."""
    try:
        series = parse_history(infile.read_bytes())
    except GMCError as e:
        _abort(e)
    _report(series, csv, excel, plot, limit)


@app.command()
def history(
    port: PortOption = DEFAULT_PORT,
    baud: BaudOption = DEFAULT_BAUD_RATE,
    csv: CsvOption = None,
    excel: ExcelOption = None,
    plot: PlotOption = None,
    limit: LimitOption = TABLE_ROWS,
) -> None:
    """Download and decode the history in one go."""
    with _connected(port, baud) as device:
        series = device.samples()
    _report(series, csv, excel, plot, limit)


if __name__ == "__main__":
    app()
