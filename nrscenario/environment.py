"""Multi-cell NR scenario: build the network, drive the engine, score the run"""

import logging
from typing import Any, Dict, List, Optional

from .engine import SimulationEngine
from .exceptions import EngineError
from .metrics import compute_all_metrics, CellMetrics, FlowMetrics
from .network import CellSite, Terminal
from .network_init import create_layout, initialize_ues, associate_ues
from .reporting import write_reports, log_summary
from .scenario_loader import SimParams
from .telemetry import TelemetryAggregator
from .traffic import classify_ues, build_traffic_profiles, TrafficProfile


logger = logging.getLogger(__name__)


class MultiCellScenario:
    """One scenario run against a simulation engine"""

    def __init__(self, sim_params: SimParams, engine: SimulationEngine,
                 aggregator: Optional[TelemetryAggregator] = None):
        self.sim_params = sim_params
        self.engine = engine
        self.aggregator = aggregator or TelemetryAggregator()

        self.sites: List[CellSite] = []
        self.terminals: List[Terminal] = []
        self.profiles: List[TrafficProfile] = []

        self._subscribed = False
        self.has_run = False
        self.flow_metrics: List[FlowMetrics] = []
        self.cell_metrics: List[CellMetrics] = []
        self.system_metrics: Dict[str, float] = {}

    @property
    def num_cells(self) -> int:
        return len(self.sites)

    def reset(self):
        """Lay out cells and terminals and hand them to the engine"""

        p = self.sim_params
        self.sites = create_layout(p.num_cells, p.isd, p.gnb_height, p.deployment_scenario)
        self.terminals = initialize_ues(p, self.sites)
        classify_ues(self.terminals, p.embb_ratio)
        self.profiles = build_traffic_profiles(self.terminals, p)

        self.aggregator.clear()
        self.engine.install(self.sites, self.terminals, self.profiles)
        self.engine.attach_to_closest_cell()
        if not self._subscribed:
            self.engine.subscribe(self.aggregator)
            self._subscribed = True

        associate_ues(self.terminals, self.sites)
        for terminal in self.terminals:
            if terminal.imsi is None or terminal.serving_cell is None:
                continue
            self.aggregator.record_association(terminal.imsi, terminal.serving_cell,
                                               terminal.distance)

        self.has_run = False
        self.flow_metrics, self.cell_metrics, self.system_metrics = [], [], {}
        logger.info('Scenario ready: %d cells, %d UEs (%d eMBB, %d URLLC), %s',
                    self.num_cells, len(self.terminals), p.num_embb_ues,
                    p.num_urllc_ues, p.scenario_name)

    def run(self):
        if not self.sites:
            self.reset()
        if self.has_run:
            raise EngineError('Scenario already ran; reset() before running it again')
        self.engine.run(self.sim_params.sim_time)
        self.has_run = True

    def score(self):
        """Score the engine's final flow snapshot against the accumulated telemetry"""

        if not self.has_run:
            raise EngineError('Scenario must run before it can be scored')

        self.flow_metrics, self.cell_metrics, self.system_metrics = compute_all_metrics(
            self.engine.flow_stats(), self.aggregator, self.engine.address_table(),
            self.sim_params, self.num_cells
        )
        return self.flow_metrics, self.cell_metrics, self.system_metrics

    def write_reports(self, output_dir: Optional[str] = None) -> Dict[str, str]:
        self.score()
        paths = write_reports(output_dir or self.sim_params.output_dir, self.flow_metrics,
                              self.cell_metrics, self.system_metrics, self.sim_params,
                              self.num_cells)
        log_summary(self.system_metrics, self.sim_params, self.num_cells)
        return paths

    def get_results(self) -> Dict[str, Any]:
        if not self.system_metrics:
            self.score()
        return {
            'num_cells': self.num_cells,
            'num_ues': len(self.terminals),
            'flows': len(self.flow_metrics),
            **self.system_metrics,
        }


def run_scenario(sim_params: SimParams, engine: SimulationEngine,
                 output_dir: Optional[str] = None) -> Dict[str, str]:
    """Build, run and report a complete scenario"""

    scenario = MultiCellScenario(sim_params, engine)
    scenario.reset()
    scenario.run()
    return scenario.write_reports(output_dir)
