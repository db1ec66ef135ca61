"""Traffic-demand synthesis: class split, application profiles, start times"""

import numpy as np
from dataclasses import dataclass
from typing import List, Optional

from .network import Terminal, EMBB, URLLC
from .scenario_loader import SimParams


EMBB_PACKET_SIZE = 1400
URLLC_PACKET_SIZE = 100
EMBB_BEARER = 'NGBR_VIDEO_TCP_DEFAULT'
URLLC_BEARER = 'NGBR_LOW_LAT_EMBB'


@dataclass
class TrafficProfile:
    """Downlink application feeding one terminal"""
    terminal_index: int
    traffic_class: str
    port: int
    packet_size: int
    bearer: str
    data_rate_bps: Optional[int] = None  # eMBB constant on-off source
    interval: Optional[float] = None     # URLLC inter-packet gap (s)
    max_packets: int = 0                 # 0 = unlimited
    server_start_time: float = 0.0
    client_start_time: float = 0.0
    stop_time: float = 0.0


def classify_ues(terminals: List[Terminal], embb_ratio: float) -> int:
    """Tag the first int(embb_ratio * N) terminals eMBB, the rest URLLC"""

    num_embb = int(embb_ratio * len(terminals))
    for i, terminal in enumerate(terminals):
        terminal.traffic_class = EMBB if i < num_embb else URLLC
    return num_embb


def embb_rate_per_ue(num_embb_ues: int, dense: bool) -> int:
    """Fair share of the eMBB budget, floored at 5 Mb/s and capped at 20 Mb/s"""

    if num_embb_ues <= 0:
        return int(10e6)

    budget_bps = 3e8 if dense else 2e8
    fair_share = budget_bps / float(num_embb_ues)
    fair_share = max(5e6, min(fair_share, 20e6))
    return int(fair_share)


def urllc_interval(dense: bool) -> float:
    return 0.0005 if dense else 0.001


def build_traffic_profiles(terminals: List[Terminal], sim_params: SimParams) -> List[TrafficProfile]:
    """One application per terminal, with start times jittered by U(0, 0.5) s"""

    rng = np.random.RandomState(sim_params.rng_seed + 3000)
    dense = sim_params.dense_scenario
    num_embb = sum(1 for t in terminals if t.traffic_class == EMBB)
    embb_rate = embb_rate_per_ue(num_embb, dense)

    profiles = []
    for terminal in terminals:
        if terminal.traffic_class == EMBB:
            profile = TrafficProfile(
                terminal_index=terminal.index,
                traffic_class=EMBB,
                port=sim_params.embb_port,
                packet_size=EMBB_PACKET_SIZE,
                bearer=EMBB_BEARER,
                data_rate_bps=embb_rate
            )
        else:
            profile = TrafficProfile(
                terminal_index=terminal.index,
                traffic_class=URLLC,
                port=sim_params.urllc_port,
                packet_size=URLLC_PACKET_SIZE,
                bearer=URLLC_BEARER,
                interval=urllc_interval(dense)
            )
        profiles.append(profile)

    # servers first, then clients
    for profile in profiles:
        profile.server_start_time = sim_params.app_start_time + rng.uniform(0.0, 0.5)
        profile.stop_time = sim_params.sim_time
    for profile in profiles:
        profile.client_start_time = sim_params.app_start_time + rng.uniform(0.0, 0.5)

    return profiles
