"""
Data export functionality for decoded GMC history.
Handles exporting sample series to various formats.
"""

import logging

import pandas as pd

from gmc_client.config import EXCEL_SHEET_NAME, EXPORT_COLUMNS
from gmc_client.data_models import SampleSeries

_LOGGER = logging.getLogger(__name__)


class DataExporter:
    """Handles exporting decoded history to various formats."""

    @staticmethod
    def to_dataframe(series: SampleSeries) -> pd.DataFrame:
        """
        Convert a series into one row per sample.

        cps is left empty for samples recorded per minute or per hour.
        """
        data_rows = []
        for sample_time, cps, cpm, usv in series.rows():
            data_rows.append({
                "time": sample_time.isoformat(sep=" "),
                "cps": cps if cps is not None else "",
                "cpm": cpm,
                "usv_per_hour": usv,
            })
        return pd.DataFrame(data_rows, columns=list(EXPORT_COLUMNS))

    @staticmethod
    def export_to_excel(series: SampleSeries, filename: str) -> bool:
        """
        Export samples to Excel format.

        Args:
            series: Decoded samples to export
            filename: Output filename

        Returns:
            True if export successful, False otherwise
        """
        if not len(series):
            return False

        df = DataExporter.to_dataframe(series)
        try:
            with pd.ExcelWriter(filename, engine="openpyxl") as writer:
                df.to_excel(writer, index=False, sheet_name=EXCEL_SHEET_NAME)
        except (OSError, ValueError) as e:
            _LOGGER.error("Excel export to %s failed: %s", filename, e)
            return False

        _LOGGER.debug("Exported %d rows to %s", len(df), filename)
        return True

    @staticmethod
    def export_to_csv(series: SampleSeries, filename: str) -> bool:
        """
        Export samples to CSV format.

        Args:
            series: Decoded samples to export
            filename: Output filename

        Returns:
            True if export successful, False otherwise
        """
        if not len(series):
            return False

        df = DataExporter.to_dataframe(series)
        try:
            df.to_csv(filename, index=False)
        except (OSError, ValueError) as e:
            _LOGGER.error("CSV export to %s failed: %s", filename, e)
            return False

        _LOGGER.debug("Exported %d rows to %s", len(df), filename)
        return True

    @staticmethod
    def get_export_summary(series: SampleSeries) -> dict:
        """
        Get summary statistics for the data to be exported.

        Args:
            series: Decoded samples

        Returns:
            Dictionary with summary statistics
        """
        if not len(series):
            return {"count": 0}

        rates = [sample.dose_rate() for sample in series]
        return {
            "count": len(series),
            "start": series.head.absolute_time(),
            "end": series.tail.absolute_time(),
            "total_counts": series.total_counts(),
            "avg_usv_per_hour": sum(rates) / len(rates),
            "max_usv_per_hour": max(rates),
            "modes": sorted(mode.label for mode in series.modes()),
        }
