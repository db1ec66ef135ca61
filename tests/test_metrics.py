import numpy as np
import pytest

from nrscenario.metrics import (clamp_score, compute_flow_qos, compute_qoe_score,
                                compute_reliability_score, compute_flow_metrics,
                                compute_cell_metrics, compute_cell_qoe_score,
                                compute_cell_reliability, compute_system_metrics,
                                user_density, FlowMetrics)
from nrscenario.network import EMBB, URLLC
from nrscenario.telemetry import ChannelMetrics

from conftest import make_flow, make_params


def _flow_metrics(**overrides) -> FlowMetrics:
    values = dict(
        flow_id=1, traffic_class=EMBB, imsi=1, serving_cell=0, distance=50.0,
        destination_address='7.0.0.2', avg_sinr=20.0, min_sinr=10.0, max_sinr=30.0,
        sinr_std=2.0, tx_packets=1000, rx_packets=990, lost_packets=10, loss_ratio=1.0,
        throughput_mbps=10.0, mean_delay_ms=5.0, mean_jitter_ms=1.0, qoe_score=50.0,
        reliability_score=100.0, numerology=2
    )
    values.update(overrides)
    return FlowMetrics(**values)


# -- flow QoS --------------------------------------------------------------------

def test_flow_qos_for_typical_flow():
    qos = compute_flow_qos(make_flow(tx_packets=1000, rx_packets=990, rx_bytes=1_250_000,
                                     delay_sum=5.0, jitter_sum=0.989,
                                     time_first_tx_packet=5.0, time_last_rx_packet=15.0))

    assert qos['lost_packets'] == 10
    assert qos['loss_ratio'] == pytest.approx(1.0)
    assert qos['throughput'] == pytest.approx(1.0)
    assert qos['mean_delay'] == pytest.approx(5.0 / 990 * 1000)
    assert qos['mean_jitter'] == pytest.approx(0.989 / 989 * 1000)


def test_flow_qos_guards_empty_denominators():
    qos = compute_flow_qos(make_flow(tx_packets=0, rx_packets=0, rx_bytes=0, delay_sum=0.0))
    assert qos == {'lost_packets': 0, 'loss_ratio': 0.0, 'throughput': 0.0,
                   'mean_delay': 0.0, 'mean_jitter': 0.0}


def test_flow_qos_single_packet_has_no_jitter():
    qos = compute_flow_qos(make_flow(tx_packets=1, rx_packets=1, rx_bytes=100,
                                     delay_sum=0.002, jitter_sum=0.5))
    assert qos['mean_jitter'] == 0.0
    assert qos['mean_delay'] == pytest.approx(2.0)


def test_flow_qos_zero_duration_has_no_throughput():
    qos = compute_flow_qos(make_flow(time_first_tx_packet=7.0, time_last_rx_packet=7.0))
    assert qos['throughput'] == 0.0
    assert qos['mean_delay'] > 0.0


# -- scores ----------------------------------------------------------------------

@pytest.mark.parametrize('raw, expected', [(-450.0, 0.0), (340.0, 100.0), (42.5, 42.5),
                                           (100.0000000001, 100.0)])
def test_clamp_score(raw, expected):
    assert clamp_score(raw) == expected


def test_embb_qoe_penalties():
    assert compute_qoe_score(EMBB, 30.0, 10.0, 0.5, 0.0) == 100.0
    assert compute_qoe_score(EMBB, 12.5, 10.0, 0.5, 0.0) == pytest.approx(50.0)
    assert compute_qoe_score(EMBB, 30.0, 40.0, 0.5, 0.0) == pytest.approx(50.0)
    assert compute_qoe_score(EMBB, 30.0, 10.0, 4.0, 0.0) == pytest.approx(25.0)
    assert compute_qoe_score(EMBB, 12.5, 40.0, 4.0, 50.0) == pytest.approx(6.25)


def test_urllc_qoe_penalties():
    assert compute_qoe_score(URLLC, 0.1, 1.0, 0.05, 1.0) == 100.0
    assert compute_qoe_score(URLLC, 0.1, 10.0, 0.05, 1.0) == pytest.approx(50.0)
    assert compute_qoe_score(URLLC, 0.1, 1.0, 1.0, 1.0) == pytest.approx(10.0)
    assert compute_qoe_score(URLLC, 0.1, 1.0, 0.05, 4.0) == pytest.approx(50.0)


def test_qoe_score_is_clamped_at_zero_for_negative_throughput_ratio():
    assert compute_qoe_score(EMBB, -112.5, 10.0, 0.5, 0.0) == 0.0


def test_reliability_penalties():
    channel = ChannelMetrics(sum_sinr_db=30.0, samples=2, min_sinr=5.0, max_sinr=25.0)
    assert compute_reliability_score(channel) == 100.0

    channel = ChannelMetrics(sum_sinr_db=60.0, samples=2, min_sinr=0.0, max_sinr=40.0)
    assert compute_reliability_score(channel) == pytest.approx(50.0)

    channel = ChannelMetrics(sum_sinr_db=10.0, samples=2, min_sinr=4.0, max_sinr=6.0)
    assert compute_reliability_score(channel) == pytest.approx(50.0)


def test_reliability_is_clamped_for_negative_average_sinr():
    channel = ChannelMetrics(sum_sinr_db=-90.0, samples=2, min_sinr=-50.0, max_sinr=-40.0)
    assert compute_reliability_score(channel) == 0.0


def test_reliability_without_samples_is_full():
    assert compute_reliability_score(ChannelMetrics()) == 100.0


def test_cell_scores():
    assert compute_cell_qoe_score(5.0, 0.5, 20.0) == 100.0
    assert compute_cell_qoe_score(20.0, 2.0, 7.5) == pytest.approx(100 * 0.5 * 0.5 * 0.5)
    assert compute_cell_qoe_score(5.0, 0.5, -3.0) == 0.0

    assert compute_cell_reliability(0.0, 20.0) == 100.0
    assert compute_cell_reliability(2.0, 20.0) == pytest.approx(80.0)
    assert compute_cell_reliability(2.0, 5.0) == pytest.approx(40.0)
    assert compute_cell_reliability(15.0, 20.0) == 0.0


# -- flow joins ------------------------------------------------------------------

def test_flows_are_joined_to_terminals_and_cells(aggregator, sim_params):
    aggregator.on_channel_sample(1, 100.0)
    aggregator.on_channel_sample(1, 10.0)
    aggregator.record_association(1, 0, 42.0)
    flows = [make_flow(flow_id=3, destination_address='7.0.0.2', destination_port=7000)]

    [result] = compute_flow_metrics(flows, aggregator, {'7.0.0.2': 1}, sim_params)

    assert result.flow_id == 3
    assert result.traffic_class == EMBB
    assert result.imsi == 1
    assert result.serving_cell == 0
    assert result.distance == 42.0
    assert result.avg_sinr == pytest.approx(15.0)
    assert result.min_sinr == pytest.approx(10.0)
    assert result.max_sinr == pytest.approx(20.0)
    assert result.sinr_std == pytest.approx(np.std([20.0, 10.0], ddof=1))
    assert result.numerology == 2


def test_unknown_ports_and_addresses_are_skipped(aggregator, sim_params):
    flows = [
        make_flow(flow_id=1, destination_address='7.0.0.2', destination_port=9999),
        make_flow(flow_id=2, destination_address='7.0.0.99', destination_port=7000),
        make_flow(flow_id=3, destination_address='7.0.0.3', destination_port=7001),
    ]
    results = compute_flow_metrics(flows, aggregator, {'7.0.0.2': 1, '7.0.0.3': 2}, sim_params)

    assert [r.flow_id for r in results] == [3]
    assert results[0].traffic_class == URLLC


def test_terminal_without_samples_reports_zero_sinr(aggregator, sim_params):
    [result] = compute_flow_metrics([make_flow()], aggregator, {'7.0.0.2': 1}, sim_params)
    assert (result.avg_sinr, result.min_sinr, result.max_sinr, result.sinr_std) == (0.0, 0.0, 0.0, 0.0)
    assert result.reliability_score == 100.0


def test_flows_are_reported_in_flow_id_order(aggregator, sim_params):
    flows = [make_flow(flow_id=i) for i in (5, 2, 9)]
    results = compute_flow_metrics(flows, aggregator, {'7.0.0.2': 1}, sim_params)
    assert [r.flow_id for r in results] == [2, 5, 9]


# -- cells -----------------------------------------------------------------------

def test_cell_metrics_aggregate_served_flows():
    flows = [
        _flow_metrics(flow_id=1, serving_cell=0, throughput_mbps=10.0, tx_packets=1000,
                      rx_packets=980, lost_packets=20, avg_sinr=20.0, mean_delay_ms=4.0,
                      mean_jitter_ms=1.0),
        _flow_metrics(flow_id=2, serving_cell=0, throughput_mbps=30.0, tx_packets=1000,
                      rx_packets=1000, lost_packets=0, avg_sinr=10.0, mean_delay_ms=8.0,
                      mean_jitter_ms=3.0),
        _flow_metrics(flow_id=3, serving_cell=1, throughput_mbps=20.0, tx_packets=500,
                      rx_packets=500, lost_packets=0, avg_sinr=25.0),
    ]
    cells = compute_cell_metrics(flows, 3, {0: 2, 1: 1})

    assert [c.cell_id for c in cells] == [0, 1, 2]
    first = cells[0]
    assert first.num_ues == 2
    assert first.total_throughput == pytest.approx(40.0)
    assert first.spectral_efficiency == pytest.approx(0.4)
    assert (first.tx_packets, first.rx_packets, first.lost_packets) == (2000, 1980, 20)
    assert first.loss_ratio == pytest.approx(1.0)
    assert first.avg_sinr == pytest.approx(15.0)
    assert first.avg_delay == pytest.approx(6.0)
    assert first.avg_jitter == pytest.approx(2.0)
    assert first.qoe_score == 100.0
    assert first.reliability == pytest.approx(90.0)
    assert first.load_balance == pytest.approx(100.0)

    assert cells[1].load_balance == pytest.approx(50.0)


def test_idle_cell_reports_zeros():
    [cell] = compute_cell_metrics([], 1, {})

    assert cell.num_ues == 0
    assert cell.total_throughput == 0.0
    assert cell.loss_ratio == 0.0
    assert cell.avg_sinr == 0.0
    assert cell.load_balance == 0.0
    # zero average SINR drives both scores to the floor
    assert cell.qoe_score == 0.0
    assert cell.reliability == 0.0


# -- system ----------------------------------------------------------------------

def test_system_metrics(aggregator):
    params = make_params(num_cells=3, num_ues=30, isd=200.0)
    for _ in range(10):
        aggregator.on_handover_start(1, 0, 1)
    for _ in range(7):
        aggregator.on_handover_success(1, 0, 1)
    for _ in range(3):
        aggregator.on_handover_failure(1, 0, 1)

    flows = [
        _flow_metrics(traffic_class=EMBB, throughput_mbps=60.0, mean_delay_ms=10.0),
        _flow_metrics(traffic_class=EMBB, throughput_mbps=30.0, mean_delay_ms=20.0),
        _flow_metrics(traffic_class=URLLC, throughput_mbps=0.0, mean_delay_ms=2.0),
    ]
    m = compute_system_metrics(flows, aggregator, params, 3)

    assert m['total_throughput'] == pytest.approx(90.0)
    assert m['avg_throughput_per_cell'] == pytest.approx(30.0)
    assert m['avg_throughput_per_ue'] == pytest.approx(3.0)
    assert m['avg_embb_delay'] == pytest.approx(15.0)
    assert m['avg_urllc_delay'] == pytest.approx(2.0)
    assert m['handover_attempts'] == 10
    assert m['handover_success'] == 7
    assert m['handover_failures'] == 3
    assert m['handover_success_rate'] == pytest.approx(70.0)
    assert m['system_spectral_efficiency'] == pytest.approx(90e6 / 300e6)
    assert m['user_density'] == pytest.approx(30 / (np.pi * 240.0 ** 2 * 3 * 1e-6))


def test_system_metrics_without_flows(aggregator, sim_params):
    m = compute_system_metrics([], aggregator, sim_params, 1)
    assert m['total_throughput'] == 0.0
    assert m['avg_embb_delay'] == 0.0
    assert m['avg_urllc_delay'] == 0.0
    assert m['handover_success_rate'] == 0.0


def test_user_density_scales_with_cell_count():
    assert user_density(30, 200.0, 1) == pytest.approx(3 * user_density(30, 200.0, 3))
