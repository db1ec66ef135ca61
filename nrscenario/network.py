"""Network entities: cell sites, terminals, flow records"""

from dataclasses import dataclass
from typing import Optional, Tuple
import numpy as np


EMBB = 'eMBB'    # latency-tolerant, high throughput
URLLC = 'URLLC'  # latency-critical, low throughput


@dataclass(frozen=True)
class CellSite:
    id: int
    x: float
    y: float
    z: float

    @property
    def position(self) -> Tuple[float, float, float]:
        return (self.x, self.y, self.z)


@dataclass
class Terminal:
    index: int
    x: float
    y: float
    z: float
    traffic_class: str = EMBB
    imsi: Optional[int] = None  # assigned by the simulation engine
    address: Optional[str] = None
    serving_cell: Optional[int] = None
    distance: float = 0.0
    anchor_cell: Optional[int] = None  # site sampled around; None for the uniform fallback

    @property
    def position(self) -> Tuple[float, float, float]:
        return (self.x, self.y, self.z)


@dataclass(frozen=True)
class FlowRecord:
    """Per-flow statistics exposed by the engine once the run has finished.

    Times are in seconds.
    """
    flow_id: int
    source_address: str
    destination_address: str
    source_port: int
    destination_port: int
    protocol: int = 17
    tx_packets: int = 0
    rx_packets: int = 0
    tx_bytes: int = 0
    rx_bytes: int = 0
    delay_sum: float = 0.0
    jitter_sum: float = 0.0
    time_first_tx_packet: float = 0.0
    time_last_rx_packet: float = 0.0


def distance_between(a: Tuple[float, float, float], b: Tuple[float, float, float]) -> float:
    return float(np.sqrt(sum((p - q) ** 2 for p, q in zip(a, b))))
