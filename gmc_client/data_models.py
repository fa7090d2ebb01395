"""
Data models for decoded GMC history.
Handles recording modes, samples and the sample arena of one decode.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Iterator, List, Optional, Set, Tuple

from gmc_client.config import CPM_PER_USV_H, CPS_WINDOW

# (time, cps, cpm, uSv/h) as handed to exporters
SampleRow = Tuple[datetime, Optional[int], int, float]


class RecordingMode(Enum):
    """History recording mode, valued by its tag in the header frame."""
    PER_SECOND = 1
    PER_MINUTE = 2
    PER_HOUR = 3

    @property
    def sample_period(self) -> timedelta:
        """Time covered by one sample in this mode."""
        return _SAMPLE_PERIODS[self]

    @property
    def label(self) -> str:
        return _LABELS[self]

    def to_cpm(self, sample: "Sample") -> int:
        return _CPM_RULES[self](sample)

    def to_cps(self, sample: "Sample") -> Optional[int]:
        return _CPS_RULES[self](sample)


def _windowed_cpm(sample: "Sample") -> int:
    # Sum of this sample and up to CPS_WINDOW - 1 predecessors
    total = 0
    node = sample
    for _ in range(CPS_WINDOW):
        if node is None:
            break
        total += node.count
        node = node.prev
    return total


def _own_count(sample: "Sample") -> int:
    return sample.count


def _not_applicable(sample: "Sample") -> Optional[int]:
    return None


_SAMPLE_PERIODS = {
    RecordingMode.PER_SECOND: timedelta(seconds=1),
    RecordingMode.PER_MINUTE: timedelta(seconds=60),
    RecordingMode.PER_HOUR: timedelta(seconds=3600),
}

_LABELS = {
    RecordingMode.PER_SECOND: "cps, every second",
    RecordingMode.PER_MINUTE: "cpm, every minute",
    RecordingMode.PER_HOUR: "cpm, every hour",
}

# PER_HOUR samples are reported unscaled, exactly like PER_MINUTE ones.
_CPM_RULES = {
    RecordingMode.PER_SECOND: _windowed_cpm,
    RecordingMode.PER_MINUTE: _own_count,
    RecordingMode.PER_HOUR: _own_count,
}

_CPS_RULES = {
    RecordingMode.PER_SECOND: _own_count,
    RecordingMode.PER_MINUTE: _not_applicable,
    RecordingMode.PER_HOUR: _not_applicable,
}


@dataclass(eq=False)
class Sample:
    """One count byte of the history, in the context of its header frame."""
    start_time: datetime        # Timestamp of the introducing header frame
    offset: int                 # 1-based position within the run
    count: int                  # Raw count for the sample period (0-255)
    mode: RecordingMode
    index: int = 0              # Position in the owning series
    series: Optional["SampleSeries"] = field(default=None, repr=False)
    _cpm: Optional[int] = field(default=None, init=False, repr=False)

    @property
    def prev(self) -> Optional["Sample"]:
        """Previous sample in the whole series, across header frames."""
        if self.series is None or self.index == 0:
            return None
        return self.series[self.index - 1]

    @property
    def next(self) -> Optional["Sample"]:
        """Following sample in the whole series, across header frames."""
        if self.series is None or self.index + 1 >= len(self.series):
            return None
        return self.series[self.index + 1]

    def cpm(self) -> int:
        if self._cpm is None:
            self._cpm = self.mode.to_cpm(self)
        return self._cpm

    def cps(self) -> Optional[int]:
        return self.mode.to_cps(self)

    def dose_rate(self) -> float:
        """Dose rate in uSv/h."""
        return self.cpm() / CPM_PER_USV_H

    def absolute_time(self) -> datetime:
        return self.start_time + self.offset * self.mode.sample_period

    def to_row(self) -> SampleRow:
        return (self.absolute_time(), self.cps(), self.cpm(), self.dose_rate())


@dataclass
class SampleSeries:
    """Append-only arena owning every sample of one decoded history."""
    samples: List[Sample] = field(default_factory=list)

    def append(self, start_time: datetime, offset: int, count: int,
               mode: RecordingMode) -> Sample:
        """
        Add a new sample after the current tail.

        Args:
            start_time: Timestamp of the active header frame
            offset: 1-based position within the header's run
            count: Raw count value
            mode: Active recording mode

        Returns:
            The created Sample object
        """
        sample = Sample(start_time, offset, count, mode,
                        index=len(self.samples), series=self)
        self.samples.append(sample)
        return sample

    @property
    def head(self) -> Optional[Sample]:
        return self.samples[0] if self.samples else None

    @property
    def tail(self) -> Optional[Sample]:
        return self.samples[-1] if self.samples else None

    def __len__(self) -> int:
        return len(self.samples)

    def __getitem__(self, index: int) -> Sample:
        return self.samples[index]

    def __iter__(self) -> Iterator[Sample]:
        return iter(self.samples)

    def rows(self) -> Iterator[SampleRow]:
        """Yield (time, cps, cpm, uSv/h) for every sample in order."""
        for sample in self.samples:
            yield sample.to_row()

    def modes(self) -> Set[RecordingMode]:
        return {sample.mode for sample in self.samples}

    def total_counts(self) -> int:
        return sum(sample.count for sample in self.samples)

    def get_recent_samples(self, max_count: int) -> List[Sample]:
        """Get the most recent samples, limited by count."""
        if len(self.samples) <= max_count:
            return self.samples[:]
        return self.samples[-max_count:]
