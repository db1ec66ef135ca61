"""Scenario configuration loader"""

import json
import logging
from pathlib import Path
from typing import Dict, Any, Optional
from dataclasses import dataclass, asdict

import yaml

from .exceptions import ConfigurationError


logger = logging.getLogger(__name__)

SUPPORTED_CELL_COUNTS = (1, 3, 5, 7, 9)
SUPPORTED_SCHEDULERS = ('TdmaQos', 'OfdmaQos')

DENSE_URBAN = 'dense_urban'
SPARSE_SUBURBAN = 'sparse_suburban'


@dataclass
class SimParams:
    # Network topology
    num_cells: int = 1
    isd: float = 200.0
    dense_scenario: bool = False
    gnb_height: float = 25.0
    ue_height: float = 1.5

    # User parameters
    num_ues: int = 30
    embb_ratio: float = 0.6

    # RF parameters
    gnb_tx_power: float = 46.0
    ue_tx_power: float = 26.0
    carrier_frequency: float = 3.5e9
    system_bandwidth: float = 100e6
    numerology: int = 2

    # Simulation parameters
    sim_time: float = 15.0
    app_start_time: float = 5.0
    rng_seed: int = 1
    output_dir: str = './results'
    scheduler: str = 'TdmaQos'
    ho_algorithm: str = 'A2A4'

    # Application ports
    embb_port: int = 7000
    urllc_port: int = 7001

    # Derived parameters
    scenario_name: str = ''
    deployment_scenario: str = ''
    propagation_model: str = ''
    num_embb_ues: int = 0
    num_urllc_ues: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# file key -> SimParams field
_FIELD_KEYS = {
    'numCells': 'num_cells',
    'ISD': 'isd',
    'isd': 'isd',
    'denseScenario': 'dense_scenario',
    'gnbHeight': 'gnb_height',
    'ueHeight': 'ue_height',
    'numUEs': 'num_ues',
    'embbRatio': 'embb_ratio',
    'gnbTxPower': 'gnb_tx_power',
    'ueTxPower': 'ue_tx_power',
    'carrierFrequency': 'carrier_frequency',
    'systemBandwidth': 'system_bandwidth',
    'numerology': 'numerology',
    'simTime': 'sim_time',
    'appStartTime': 'app_start_time',
    'rngSeed': 'rng_seed',
    'outputDir': 'output_dir',
    'scheduler': 'scheduler',
    'hoAlgorithm': 'ho_algorithm',
    'embbPort': 'embb_port',
    'urllcPort': 'urllc_port',
}


def load_scenario_config(config_path: str, **overrides) -> SimParams:
    """Load scenario configuration from a JSON or YAML file.

    Keyword overrides (SimParams field names) win over file values; ``None``
    overrides are ignored.
    """

    path = Path(config_path)
    if not path.is_file():
        raise ConfigurationError(f'Scenario file not found: {config_path}')

    with open(path, 'r') as f:
        if path.suffix in ('.yaml', '.yml'):
            cfg = yaml.safe_load(f) or {}
        else:
            cfg = json.load(f)

    if not isinstance(cfg, dict):
        raise ConfigurationError(f'Scenario file {config_path} must contain a mapping')

    sim_params = _convert_to_params(cfg)
    for name, value in overrides.items():
        if value is not None:
            setattr(sim_params, name, value)

    sim_params = validate_and_enhance_config(sim_params)
    logger.info('Loaded scenario config from %s', path)
    return sim_params


def _convert_to_params(cfg: Dict[str, Any]) -> SimParams:
    """Convert a camelCase mapping to SimParams"""

    kwargs = {}
    for key, value in cfg.items():
        field_name = _FIELD_KEYS.get(key)
        if field_name is None:
            logger.warning('Ignoring unknown scenario key: %s', key)
            continue
        kwargs[field_name] = value
    return SimParams(**kwargs)


def validate_and_enhance_config(sim_params: SimParams) -> SimParams:
    """Validate configuration and fill in derived parameters"""

    if sim_params.num_ues <= 0:
        raise ConfigurationError('numUEs must be positive')
    if sim_params.num_cells <= 0:
        raise ConfigurationError('numCells must be positive')
    if not 0.0 <= sim_params.embb_ratio <= 1.0:
        raise ConfigurationError('embbRatio must be within [0, 1]')
    if sim_params.isd <= 0:
        raise ConfigurationError('ISD must be positive')
    if sim_params.app_start_time < 0 or sim_params.sim_time <= sim_params.app_start_time:
        raise ConfigurationError('simTime must be greater than appStartTime')
    if sim_params.scheduler not in SUPPORTED_SCHEDULERS:
        raise ConfigurationError(
            f'Unknown scheduler: {sim_params.scheduler} '
            f'(available: {", ".join(SUPPORTED_SCHEDULERS)})')

    if sim_params.num_cells not in SUPPORTED_CELL_COUNTS:
        logger.warning('numCells=%d is not one of %s, using the default layout pattern',
                       sim_params.num_cells, SUPPORTED_CELL_COUNTS)

    if sim_params.dense_scenario:
        sim_params.scenario_name = 'dense'
        sim_params.deployment_scenario = DENSE_URBAN
        sim_params.propagation_model = 'UMa'
    else:
        sim_params.scenario_name = 'sparse'
        sim_params.deployment_scenario = SPARSE_SUBURBAN
        sim_params.propagation_model = 'RMa'

    sim_params.num_embb_ues = int(sim_params.embb_ratio * sim_params.num_ues)
    sim_params.num_urllc_ues = sim_params.num_ues - sim_params.num_embb_ues

    return sim_params
