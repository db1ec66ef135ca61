"""Telemetry aggregation: per-terminal channel statistics and handover counters.

The simulation engine holds a ``TelemetrySink`` and calls it synchronously
from its event loop. ``TelemetryAggregator`` is the sink used by scenarios;
all of its tables live as long as the aggregator and are only read once the
engine has stopped.
"""

from collections import deque
from dataclasses import dataclass
from typing import Dict, Iterator, Optional, Protocol

import numpy as np


SINR_HISTORY_CAPACITY = 1000


class TelemetrySink(Protocol):
    """Callbacks an engine delivers trace events to"""

    def on_channel_sample(self, imsi: int, sinr_linear: float) -> None: ...

    def on_rsrp(self, imsi: int, cell_id: int, rsrp_dbm: float) -> None: ...

    def on_rsrq(self, imsi: int, cell_id: int, rsrq_db: float) -> None: ...

    def on_handover_start(self, imsi: int, source_cell: int, target_cell: int) -> None: ...

    def on_handover_success(self, imsi: int, source_cell: int, target_cell: int) -> None: ...

    def on_handover_failure(self, imsi: int, source_cell: int, target_cell: int) -> None: ...


@dataclass
class ChannelMetrics:
    sum_sinr_db: float = 0.0
    sum_rsrp_dbm: float = 0.0
    sum_rsrq_db: float = 0.0
    samples: int = 0
    max_sinr: float = -1000.0
    min_sinr: float = 1000.0

    def add_sinr(self, sinr_db: float):
        self.sum_sinr_db += sinr_db
        self.samples += 1
        self.max_sinr = max(self.max_sinr, sinr_db)
        self.min_sinr = min(self.min_sinr, sinr_db)

    @property
    def avg_sinr(self) -> float:
        return self.sum_sinr_db / self.samples if self.samples > 0 else 0.0

    @property
    def avg_rsrp(self) -> float:
        # RSRP/RSRQ have no count of their own
        return self.sum_rsrp_dbm / self.samples if self.samples > 0 else 0.0

    @property
    def avg_rsrq(self) -> float:
        return self.sum_rsrq_db / self.samples if self.samples > 0 else 0.0

    @property
    def sinr_range(self) -> float:
        return self.max_sinr - self.min_sinr if self.samples > 0 else 0.0


class SinrHistory:
    """Most recent SINR samples (dB); the oldest is evicted once full."""

    def __init__(self, capacity: int = SINR_HISTORY_CAPACITY):
        self.capacity = capacity
        self._samples = deque(maxlen=capacity)

    def append(self, sinr_db: float):
        self._samples.append(sinr_db)

    def values(self) -> np.ndarray:
        return np.fromiter(self._samples, dtype=float, count=len(self._samples))

    def std(self, centre: Optional[float] = None) -> float:
        """Sample standard deviation (n - 1) of the window around centre.

        centre defaults to the window mean. 0 with fewer than two samples.
        """
        if len(self._samples) < 2:
            return 0.0
        if centre is None:
            return float(np.std(self.values(), ddof=1))
        deviations = self.values() - centre
        return float(np.sqrt(np.sum(deviations ** 2) / (len(self._samples) - 1)))

    def __len__(self) -> int:
        return len(self._samples)

    def __iter__(self) -> Iterator[float]:
        return iter(self._samples)


@dataclass
class HandoverCounters:
    attempts: int = 0
    successes: int = 0
    failures: int = 0

    @property
    def success_rate(self) -> float:
        """Percentage of attempts that succeeded"""
        return 100.0 * self.successes / self.attempts if self.attempts > 0 else 0.0


class TelemetryAggregator:
    """Keyed accumulators fed by engine trace callbacks"""

    def __init__(self, history_capacity: int = SINR_HISTORY_CAPACITY):
        self.history_capacity = history_capacity
        self.channel_metrics: Dict[int, ChannelMetrics] = {}
        self.sinr_history: Dict[int, SinrHistory] = {}
        self.handovers = HandoverCounters()

        # serving-cell association, filled once after attachment
        self.imsi_to_cell: Dict[int, int] = {}
        self.imsi_distance: Dict[int, float] = {}
        self.cell_ue_count: Dict[int, int] = {}

    def clear(self):
        """Drop every accumulated sample, counter and association"""
        self.channel_metrics.clear()
        self.sinr_history.clear()
        self.handovers = HandoverCounters()
        self.imsi_to_cell.clear()
        self.imsi_distance.clear()
        self.cell_ue_count.clear()

    def _metrics(self, imsi: int) -> ChannelMetrics:
        metrics = self.channel_metrics.get(imsi)
        if metrics is None:
            metrics = self.channel_metrics[imsi] = ChannelMetrics()
        return metrics

    def _history(self, imsi: int) -> SinrHistory:
        history = self.sinr_history.get(imsi)
        if history is None:
            history = self.sinr_history[imsi] = SinrHistory(self.history_capacity)
        return history

    # -- trace callbacks -----------------------------------------------------

    def on_channel_sample(self, imsi: int, sinr_linear: float) -> None:
        if sinr_linear <= 0.0:
            return
        sinr_db = 10.0 * np.log10(sinr_linear)
        self._metrics(imsi).add_sinr(sinr_db)
        self._history(imsi).append(sinr_db)

    def on_rsrp(self, imsi: int, cell_id: int, rsrp_dbm: float) -> None:
        self._metrics(imsi).sum_rsrp_dbm += rsrp_dbm

    def on_rsrq(self, imsi: int, cell_id: int, rsrq_db: float) -> None:
        self._metrics(imsi).sum_rsrq_db += rsrq_db

    def on_handover_start(self, imsi: int, source_cell: int, target_cell: int) -> None:
        self.handovers.attempts += 1

    def on_handover_success(self, imsi: int, source_cell: int, target_cell: int) -> None:
        self.handovers.successes += 1

    def on_handover_failure(self, imsi: int, source_cell: int, target_cell: int) -> None:
        self.handovers.failures += 1

    # -- association and lookups ---------------------------------------------

    def record_association(self, imsi: int, cell_id: int, distance: float):
        self.imsi_to_cell[imsi] = cell_id
        self.imsi_distance[imsi] = distance
        self.cell_ue_count[cell_id] = self.cell_ue_count.get(cell_id, 0) + 1

    def channel(self, imsi: int) -> ChannelMetrics:
        """Channel statistics for a terminal; empty stats if it never reported"""
        return self.channel_metrics.get(imsi) or ChannelMetrics()

    def sinr_std(self, imsi: int) -> float:
        """Spread of the recent window around the terminal's lifetime average SINR"""
        history: Optional[SinrHistory] = self.sinr_history.get(imsi)
        if history is None:
            return 0.0
        return history.std(centre=self.channel(imsi).avg_sinr)
