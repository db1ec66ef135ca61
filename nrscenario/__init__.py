"""Multi-cell NR scenario synthesis, telemetry aggregation and scoring"""

from .environment import MultiCellScenario, run_scenario
from .network import CellSite, Terminal, FlowRecord
from .scenario_loader import SimParams, load_scenario_config
from .telemetry import TelemetryAggregator, TelemetrySink

__all__ = ['MultiCellScenario', 'run_scenario', 'CellSite', 'Terminal', 'FlowRecord',
           'SimParams', 'load_scenario_config', 'TelemetryAggregator', 'TelemetrySink']
