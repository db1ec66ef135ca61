"""CSV report writers for flow, cell and system statistics"""

import logging
import os
from typing import Dict, List

import pandas as pd

from .metrics import FlowMetrics, CellMetrics
from .scenario_loader import SimParams


logger = logging.getLogger(__name__)

FLOW_COLUMNS = [
    'FlowId', 'TrafficType', 'UeImsi', 'ServingCell', 'Distance(m)', 'DstAddr',
    'AvgSinr(dB)', 'MinSinr(dB)', 'MaxSinr(dB)', 'SinrStdDev(dB)',
    'TxPackets', 'RxPackets', 'LostPackets', 'PacketLossRatio(%)',
    'Throughput(Mbps)', 'MeanDelay(ms)', 'MeanJitter(ms)',
    'QoEScore', 'ReliabilityScore', 'Numerology',
]

CELL_COLUMNS = [
    'CellId', 'NumUEs', 'TotalThroughput(Mbps)', 'SpectralEfficiency(bps/Hz)',
    'TxPackets', 'RxPackets', 'LostPackets', 'PacketLossRatio(%)',
    'AvgSINR(dB)', 'AvgDelay(ms)', 'AvgJitter(ms)',
    'CellQoEScore', 'CellReliability(%)', 'LoadBalance(%)',
]

SYSTEM_COLUMNS = ['Metric', 'Value', 'Unit']


def report_paths(output_dir: str, num_cells: int) -> Dict[str, str]:
    return {
        'flow': os.path.join(output_dir, f'flow_stats_optimized_{num_cells}cell.csv'),
        'cell': os.path.join(output_dir, f'cell_stats_optimized_{num_cells}cell.csv'),
        'system': os.path.join(output_dir, f'system_stats_optimized_{num_cells}cell.csv'),
        'config': os.path.join(output_dir, f'simulation_config_optimized_{num_cells}cell.txt'),
    }


def _fixed(value: float, digits: int) -> str:
    return f'{value:.{digits}f}'


def flow_report_frame(flow_metrics: List[FlowMetrics]) -> pd.DataFrame:
    rows = []
    for f in flow_metrics:
        rows.append([
            f.flow_id, f.traffic_class, f.imsi, f.serving_cell,
            _fixed(f.distance, 2), f.destination_address,
            _fixed(f.avg_sinr, 2), _fixed(f.min_sinr, 2), _fixed(f.max_sinr, 2),
            _fixed(f.sinr_std, 2),
            f.tx_packets, f.rx_packets, f.lost_packets, _fixed(f.loss_ratio, 4),
            _fixed(f.throughput_mbps, 3), _fixed(f.mean_delay_ms, 3),
            _fixed(f.mean_jitter_ms, 3),
            _fixed(f.qoe_score, 1), _fixed(f.reliability_score, 1), f.numerology,
        ])
    return pd.DataFrame(rows, columns=FLOW_COLUMNS)


def cell_report_frame(cell_metrics: List[CellMetrics]) -> pd.DataFrame:
    rows = []
    for c in cell_metrics:
        rows.append([
            c.cell_id, c.num_ues, _fixed(c.total_throughput, 3),
            _fixed(c.spectral_efficiency, 2),
            c.tx_packets, c.rx_packets, c.lost_packets, _fixed(c.loss_ratio, 4),
            _fixed(c.avg_sinr, 2), _fixed(c.avg_delay, 3), _fixed(c.avg_jitter, 3),
            _fixed(c.qoe_score, 1), _fixed(c.reliability, 1), _fixed(c.load_balance, 1),
        ])
    return pd.DataFrame(rows, columns=CELL_COLUMNS)


def system_report_frame(system_metrics: Dict[str, float], sim_params: SimParams,
                        num_cells: int) -> pd.DataFrame:
    m = system_metrics
    rows = [
        ('TotalSystemThroughput', _fixed(m['total_throughput'], 3), 'Mbps'),
        ('AvgThroughputPerCell', _fixed(m['avg_throughput_per_cell'], 3), 'Mbps'),
        ('AvgThroughputPerUE', _fixed(m['avg_throughput_per_ue'], 3), 'Mbps'),
        ('AvgURLLCDelay', _fixed(m['avg_urllc_delay'], 3), 'ms'),
        ('AvgEmbbDelay', _fixed(m['avg_embb_delay'], 3), 'ms'),
        ('HandoverAttempts', str(m['handover_attempts']), 'count'),
        ('HandoverSuccess', str(m['handover_success']), 'count'),
        ('HandoverFailures', str(m['handover_failures']), 'count'),
        ('HandoverSuccessRate', _fixed(m['handover_success_rate'], 2), '%'),
        ('SystemSpectralEfficiency', _fixed(m['system_spectral_efficiency'], 3), 'bps/Hz/cell'),
        ('UserDensity', _fixed(m['user_density'], 1), 'UE/km2'),
        ('ScenarioType', sim_params.scenario_name, 'type'),
        ('NumCells', str(num_cells), 'count'),
        ('NumUEs', str(sim_params.num_ues), 'count'),
        ('InterSiteDistance', _fixed(sim_params.isd, 1), 'm'),
        ('SimulationTime', _fixed(sim_params.sim_time, 1), 's'),
        ('AppStartTime', _fixed(sim_params.app_start_time, 1), 's'),
        ('RngSeed', str(sim_params.rng_seed), 'seed'),
        ('Numerology', str(sim_params.numerology), '30kHz_SCS'),
        ('UeTxPower', _fixed(sim_params.ue_tx_power, 1), 'dBm'),
        ('PropagationModel', sim_params.propagation_model, 'type'),
    ]
    return pd.DataFrame(rows, columns=SYSTEM_COLUMNS)


def write_frame(frame: pd.DataFrame, path: str):
    frame.to_csv(path, index=False)
    logger.info('Wrote %d rows to %s', len(frame), path)


def write_config_summary(path: str, sim_params: SimParams, num_cells: int):
    """Human-readable echo of the scenario configuration"""

    p = sim_params
    lines = [
        '=== SCENARIO CONFIGURATION ===',
        f'Number of cells: {num_cells}',
        f'Number of UEs: {p.num_ues}',
        f'eMBB proportion: {p.embb_ratio:g}',
        f'URLLC proportion: {1.0 - p.embb_ratio:g}',
        f'Scenario: {"Dense urban" if p.dense_scenario else "Sparse suburban"}',
        f'Inter-site distance: {p.isd:g} m',
        f'gNB height: {p.gnb_height:g} m',
        f'UE height: {p.ue_height:g} m',
        f'gNB Tx power: {p.gnb_tx_power:g} dBm',
        f'UE Tx power: {p.ue_tx_power:g} dBm',
        f'Frequency: {p.carrier_frequency / 1e9:g} GHz (FR1)',
        f'Bandwidth: {p.system_bandwidth / 1e6:g} MHz',
        f'Numerology: {p.numerology}',
        f'Propagation model: {p.propagation_model}',
        f'Scheduler: {p.scheduler}',
        f'Handover algorithm: {p.ho_algorithm}',
        f'Application start time: {p.app_start_time:g} s',
        f'Simulation time: {p.sim_time:g} s',
        f'RNG seed: {p.rng_seed}',
    ]
    with open(path, 'w') as f:
        f.write('\n'.join(lines) + '\n')
    logger.info('Wrote configuration summary to %s', path)


def write_reports(output_dir: str, flow_metrics: List[FlowMetrics], cell_metrics: List[CellMetrics],
                  system_metrics: Dict[str, float], sim_params: SimParams,
                  num_cells: int) -> Dict[str, str]:
    """Write the flow, cell and system reports plus the configuration echo"""

    os.makedirs(output_dir, exist_ok=True)
    paths = report_paths(output_dir, num_cells)

    write_frame(flow_report_frame(flow_metrics), paths['flow'])
    write_frame(cell_report_frame(cell_metrics), paths['cell'])
    write_frame(system_report_frame(system_metrics, sim_params, num_cells), paths['system'])
    write_config_summary(paths['config'], sim_params, num_cells)

    return paths


def log_summary(system_metrics: Dict[str, float], sim_params: SimParams, num_cells: int):
    m = system_metrics
    logger.info('Scenario: %d cells %s', num_cells, sim_params.scenario_name.upper())
    logger.info('Total throughput: %.2f Mbps', m['total_throughput'])
    logger.info('Average throughput/UE: %.2f Mbps', m['avg_throughput_per_ue'])
    logger.info('Average eMBB delay: %.3f ms', m['avg_embb_delay'])
    logger.info('Average URLLC delay: %.3f ms', m['avg_urllc_delay'])
    logger.info('Spectral efficiency: %.3f bps/Hz/cell', m['system_spectral_efficiency'])
    logger.info('Handover success rate: %.1f%%', m['handover_success_rate'])
