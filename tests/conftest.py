"""Shared fixtures for the scenario test suite"""

import pytest

from nrscenario.engine import ReplayEngine, default_ue_address
from nrscenario.network import FlowRecord
from nrscenario.scenario_loader import SimParams, validate_and_enhance_config
from nrscenario.telemetry import TelemetryAggregator


def make_params(**kwargs) -> SimParams:
    return validate_and_enhance_config(SimParams(**kwargs))


def make_flow(flow_id=1, destination_address='7.0.0.2', destination_port=7000,
              tx_packets=1000, rx_packets=990, rx_bytes=990 * 1400, delay_sum=5.0,
              jitter_sum=0.0, time_first_tx_packet=5.0, time_last_rx_packet=15.0) -> FlowRecord:
    return FlowRecord(
        flow_id=flow_id,
        source_address='1.0.0.2',
        destination_address=destination_address,
        source_port=49153,
        destination_port=destination_port,
        tx_packets=tx_packets,
        rx_packets=rx_packets,
        tx_bytes=tx_packets * 1400,
        rx_bytes=rx_bytes,
        delay_sum=delay_sum,
        jitter_sum=jitter_sum,
        time_first_tx_packet=time_first_tx_packet,
        time_last_rx_packet=time_last_rx_packet
    )


def make_uniform_run(sim_params: SimParams, sinr_linear=100.0, **flow_kwargs) -> ReplayEngine:
    """Replay engine with one identical flow and SINR sample per terminal"""

    events = []
    flows = []
    for i in range(sim_params.num_ues):
        imsi = i + 1
        port = sim_params.embb_port if i < sim_params.num_embb_ues else sim_params.urllc_port
        events.append({'time': 6.0, 'type': 'sinr', 'imsi': imsi, 'value': sinr_linear})
        flows.append(make_flow(flow_id=imsi, destination_address=default_ue_address(i),
                               destination_port=port, **flow_kwargs))
    return ReplayEngine(events=events, flows=flows)


@pytest.fixture
def sim_params():
    return make_params()


@pytest.fixture
def aggregator():
    return TelemetryAggregator()


@pytest.fixture
def three_cell_params(tmp_path):
    return make_params(num_cells=3, num_ues=30, embb_ratio=0.6, output_dir=str(tmp_path / 'results'))


@pytest.fixture(autouse=True)
def _restore_package_logger():
    """Keep setup_logging() calls in one test from leaking logger state into others"""

    import logging

    logger = logging.getLogger('nrscenario')
    level = logger.level
    handlers = list(logger.handlers)
    yield
    logger.setLevel(level)
    logger.handlers[:] = handlers
