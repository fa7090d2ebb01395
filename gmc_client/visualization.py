"""
Dose rate chart for decoded GMC history.
"""
import logging
import math

import matplotlib
matplotlib.use("Agg")
from matplotlib.figure import Figure

from gmc_client.config import DECIMATE_TARGET, PLOT_DPI, PLOT_FIGURE_SIZE
from gmc_client.data_models import SampleSeries

_LOGGER = logging.getLogger(__name__)


class DoseRatePlot:
    """Renders dose rate over time to an image file."""

    def __init__(self, title: str = ""):
        self.fig = Figure(figsize=PLOT_FIGURE_SIZE, dpi=PLOT_DPI, facecolor="white")
        self.ax = self.fig.add_subplot(111)
        self.title = title
        self.decimate_target = DECIMATE_TARGET

    def update_plot(self, series: SampleSeries):
        """Redraw the axes from a series."""
        samples = list(series)

        # Decimate data if too many points, keeping the last one
        if len(samples) > self.decimate_target:
            step = math.ceil(len(samples) / self.decimate_target)
            last = samples[-1]
            samples = samples[::step]
            if samples[-1] is not last:
                samples.append(last)

        times = [sample.absolute_time() for sample in samples]
        rates = [sample.dose_rate() for sample in samples]

        self.ax.clear()
        self.ax.plot(times, rates, "r-", linewidth=1.0, alpha=0.8)
        self.ax.set_xlabel("Time")
        self.ax.set_ylabel("Radiation level (µSv/h)")
        self.ax.grid(True, alpha=0.3)
        if self.title:
            self.ax.set_title(self.title)

        if times:
            self.ax.set_xlim(min(times), max(times))
            top = max(rates)
            self.ax.set_ylim(0, top * 1.1 if top > 0 else 1)
        self.fig.autofmt_xdate()

    def save(self, series: SampleSeries, filename: str) -> bool:
        """
        Render the series and write it to filename (format from extension).

        Returns:
            True if written, False for an empty series or a write failure
        """
        if not len(series):
            return False
        self.update_plot(series)
        try:
            self.fig.savefig(filename)
        except (OSError, ValueError) as e:
            _LOGGER.error("Chart export to %s failed: %s", filename, e)
            return False
        _LOGGER.debug("Saved dose rate chart of %d samples to %s", len(series), filename)
        return True
