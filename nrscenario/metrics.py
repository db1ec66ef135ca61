"""Flow, cell and system scoring over the engine's final flow snapshot"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

import numpy as np

from .network import FlowRecord, EMBB, URLLC
from .scenario_loader import SimParams
from .telemetry import ChannelMetrics, TelemetryAggregator


logger = logging.getLogger(__name__)

REFERENCE_BANDWIDTH_HZ = 100e6


def clamp_score(score: float) -> float:
    """Scores are reported within [0, 100]"""
    return float(max(0.0, min(100.0, score)))


def _safe_div(a, b):
    return (a / b) if b else 0.0


# -- per-flow ----------------------------------------------------------------

@dataclass
class FlowMetrics:
    flow_id: int
    traffic_class: str
    imsi: int
    serving_cell: int
    distance: float
    destination_address: str
    avg_sinr: float
    min_sinr: float
    max_sinr: float
    sinr_std: float
    tx_packets: int
    rx_packets: int
    lost_packets: int
    loss_ratio: float
    throughput_mbps: float
    mean_delay_ms: float
    mean_jitter_ms: float
    qoe_score: float
    reliability_score: float
    numerology: int


def compute_flow_qos(flow: FlowRecord) -> Dict[str, float]:
    """Loss, throughput, delay and jitter of a single flow"""

    lost_packets = flow.tx_packets - flow.rx_packets
    loss_ratio = 100.0 * lost_packets / flow.tx_packets if flow.tx_packets > 0 else 0.0

    throughput = 0.0
    mean_delay = 0.0
    mean_jitter = 0.0

    if flow.rx_packets > 0:
        duration = flow.time_last_rx_packet - flow.time_first_tx_packet
        if duration > 0:
            throughput = (flow.rx_bytes * 8.0) / (duration * 1e6)  # Mbps
        mean_delay = flow.delay_sum / flow.rx_packets * 1000.0  # ms

        if flow.rx_packets > 1:
            mean_jitter = flow.jitter_sum / (flow.rx_packets - 1) * 1000.0  # ms

    return {
        'lost_packets': lost_packets,
        'loss_ratio': loss_ratio,
        'throughput': throughput,
        'mean_delay': mean_delay,
        'mean_jitter': mean_jitter,
    }


def compute_qoe_score(traffic_class: str, throughput: float, mean_delay: float,
                      loss_ratio: float, mean_jitter: float) -> float:
    """Multiplicatively penalised QoE score for one flow"""

    score = 100.0
    if traffic_class == EMBB:
        # throughput and delay matter most
        if throughput < 25.0:
            score *= throughput / 25.0
        if mean_delay > 20.0:
            score *= 20.0 / mean_delay
        if loss_ratio > 1.0:
            score *= 1.0 / loss_ratio
    else:
        if mean_delay > 5.0:
            score *= 5.0 / mean_delay
        if loss_ratio > 0.1:
            score *= 0.1 / loss_ratio
        if mean_jitter > 2.0:
            score *= 2.0 / mean_jitter
    return clamp_score(score)


def compute_reliability_score(channel: ChannelMetrics) -> float:
    """Penalise wide SINR swings and low average SINR"""

    score = 100.0
    if channel.samples > 0:
        sinr_range = channel.max_sinr - channel.min_sinr
        if sinr_range > 20.0:
            score *= 20.0 / sinr_range
        if channel.avg_sinr < 10.0:
            score *= channel.avg_sinr / 10.0
    return clamp_score(score)


def resolve_traffic_class(destination_port: int, sim_params: SimParams) -> Optional[str]:
    if destination_port == sim_params.embb_port:
        return EMBB
    if destination_port == sim_params.urllc_port:
        return URLLC
    return None


def compute_flow_metrics(flows: Iterable[FlowRecord], aggregator: TelemetryAggregator,
                         address_table: Mapping[str, int],
                         sim_params: SimParams) -> List[FlowMetrics]:
    """Score every application flow whose terminal can be resolved.

    Flows on other ports, and flows whose destination has no terminal, are
    skipped.
    """

    results = []
    skipped = 0

    for flow in sorted(flows, key=lambda f: f.flow_id):
        traffic_class = resolve_traffic_class(flow.destination_port, sim_params)
        if traffic_class is None:
            skipped += 1
            continue

        imsi = address_table.get(flow.destination_address)
        if imsi is None:
            skipped += 1
            continue

        channel = aggregator.channel(imsi)
        qos = compute_flow_qos(flow)

        results.append(FlowMetrics(
            flow_id=flow.flow_id,
            traffic_class=traffic_class,
            imsi=imsi,
            serving_cell=aggregator.imsi_to_cell.get(imsi, 0),
            distance=aggregator.imsi_distance.get(imsi, 0.0),
            destination_address=flow.destination_address,
            avg_sinr=channel.avg_sinr,
            min_sinr=channel.min_sinr if channel.samples > 0 else 0.0,
            max_sinr=channel.max_sinr if channel.samples > 0 else 0.0,
            sinr_std=aggregator.sinr_std(imsi),
            tx_packets=flow.tx_packets,
            rx_packets=flow.rx_packets,
            lost_packets=qos['lost_packets'],
            loss_ratio=qos['loss_ratio'],
            throughput_mbps=qos['throughput'],
            mean_delay_ms=qos['mean_delay'],
            mean_jitter_ms=qos['mean_jitter'],
            qoe_score=compute_qoe_score(traffic_class, qos['throughput'], qos['mean_delay'],
                                        qos['loss_ratio'], qos['mean_jitter']),
            reliability_score=compute_reliability_score(channel),
            numerology=sim_params.numerology
        ))

    if skipped:
        logger.debug('Skipped %d flows without a known traffic class or terminal', skipped)
    return results


# -- per-cell ----------------------------------------------------------------

@dataclass
class CellSummary:
    """Running totals over the flows served by one cell"""
    total_throughput: float = 0.0
    total_tx: int = 0
    total_rx: int = 0
    total_lost: int = 0
    total_sinr: float = 0.0
    sinr_samples: int = 0
    total_delay: float = 0.0
    total_jitter: float = 0.0
    total_packets: int = 0
    flows: int = 0

    def add_flow(self, flow: FlowMetrics):
        self.total_throughput += flow.throughput_mbps
        self.total_tx += flow.tx_packets
        self.total_rx += flow.rx_packets
        self.total_lost += flow.lost_packets
        self.total_sinr += flow.avg_sinr
        self.sinr_samples += 1
        self.total_delay += flow.mean_delay_ms
        self.total_jitter += flow.mean_jitter_ms
        self.total_packets += flow.rx_packets
        self.flows += 1


@dataclass
class CellMetrics:
    cell_id: int
    num_ues: int
    total_throughput: float
    spectral_efficiency: float
    tx_packets: int
    rx_packets: int
    lost_packets: int
    loss_ratio: float
    avg_sinr: float
    avg_delay: float
    avg_jitter: float
    qoe_score: float
    reliability: float
    load_balance: float


def compute_cell_qoe_score(avg_delay: float, loss_ratio: float, avg_sinr: float) -> float:
    score = 100.0
    if avg_delay > 10.0:
        score *= 10.0 / avg_delay
    if loss_ratio > 1.0:
        score *= 1.0 / loss_ratio
    if avg_sinr < 15.0:
        score *= avg_sinr / 15.0
    return clamp_score(score)


def compute_cell_reliability(loss_ratio: float, avg_sinr: float) -> float:
    score = 100.0 - loss_ratio * 10.0
    if avg_sinr < 10.0:
        score *= avg_sinr / 10.0
    return clamp_score(score)


def summarize_cells(flow_metrics: Iterable[FlowMetrics]) -> Dict[int, CellSummary]:
    summaries: Dict[int, CellSummary] = {}
    for flow in flow_metrics:
        summaries.setdefault(flow.serving_cell, CellSummary()).add_flow(flow)
    return summaries


def compute_cell_metrics(flow_metrics: List[FlowMetrics], num_cells: int,
                         cell_ue_count: Mapping[int, int]) -> List[CellMetrics]:
    """One row per cell, including cells that served no flows"""

    summaries = summarize_cells(flow_metrics)
    max_cell_throughput = max((s.total_throughput for s in summaries.values()), default=0.0)

    cells = []
    for cell_id in range(num_cells):
        summary = summaries.get(cell_id, CellSummary())

        loss_ratio = _safe_div(100.0 * summary.total_lost, summary.total_tx)
        avg_sinr = _safe_div(summary.total_sinr, summary.sinr_samples)
        avg_delay = _safe_div(summary.total_delay, summary.flows)
        avg_jitter = _safe_div(summary.total_jitter, summary.flows)

        cells.append(CellMetrics(
            cell_id=cell_id,
            num_ues=cell_ue_count.get(cell_id, 0),
            total_throughput=summary.total_throughput,
            spectral_efficiency=summary.total_throughput * 1e6 / REFERENCE_BANDWIDTH_HZ,
            tx_packets=summary.total_tx,
            rx_packets=summary.total_rx,
            lost_packets=summary.total_lost,
            loss_ratio=loss_ratio,
            avg_sinr=avg_sinr,
            avg_delay=avg_delay,
            avg_jitter=avg_jitter,
            qoe_score=compute_cell_qoe_score(avg_delay, loss_ratio, avg_sinr),
            reliability=compute_cell_reliability(loss_ratio, avg_sinr),
            load_balance=_safe_div(summary.total_throughput, max_cell_throughput) * 100.0
        ))

    return cells


# -- system-wide ---------------------------------------------------------------

def user_density(num_ues: int, isd: float, num_cells: int) -> float:
    """Terminals per km^2 over a disc of radius 1.2 x ISD per cell"""
    total_area = np.pi * (isd * 1.2) ** 2 * num_cells
    return _safe_div(num_ues, total_area * 1e-6)


def compute_system_metrics(flow_metrics: List[FlowMetrics], aggregator: TelemetryAggregator,
                           sim_params: SimParams, num_cells: int) -> Dict[str, float]:
    """System-wide throughput, per-class delay, handover and density figures"""

    total_throughput = sum(f.throughput_mbps for f in flow_metrics)
    embb_delays = [f.mean_delay_ms for f in flow_metrics if f.traffic_class == EMBB]
    urllc_delays = [f.mean_delay_ms for f in flow_metrics if f.traffic_class == URLLC]
    handovers = aggregator.handovers

    return {
        'total_throughput': total_throughput,
        'avg_throughput_per_cell': _safe_div(total_throughput, num_cells),
        'avg_throughput_per_ue': _safe_div(total_throughput, sim_params.num_ues),
        'avg_urllc_delay': _safe_div(sum(urllc_delays), len(urllc_delays)),
        'avg_embb_delay': _safe_div(sum(embb_delays), len(embb_delays)),
        'handover_attempts': handovers.attempts,
        'handover_success': handovers.successes,
        'handover_failures': handovers.failures,
        'handover_success_rate': handovers.success_rate,
        'system_spectral_efficiency': _safe_div(total_throughput * 1e6,
                                                REFERENCE_BANDWIDTH_HZ * num_cells),
        'user_density': user_density(sim_params.num_ues, sim_params.isd, num_cells),
    }


def compute_all_metrics(flows: Iterable[FlowRecord], aggregator: TelemetryAggregator,
                        address_table: Mapping[str, int], sim_params: SimParams,
                        num_cells: int) -> Tuple[List[FlowMetrics], List[CellMetrics], Dict[str, float]]:
    flow_metrics = compute_flow_metrics(flows, aggregator, address_table, sim_params)
    cell_metrics = compute_cell_metrics(flow_metrics, num_cells, aggregator.cell_ue_count)
    system_metrics = compute_system_metrics(flow_metrics, aggregator, sim_params, num_cells)
    return flow_metrics, cell_metrics, system_metrics
