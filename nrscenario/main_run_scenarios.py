#!/usr/bin/env python3
"""
Run a multi-cell NR scenario (or a batch of them) and write the reports.

Telemetry and flow statistics come from recorded engine traces.
"""

import argparse
import logging
import os
import sys

from .batch import consolidate_system_stats, run_batch
from .engine import TraceReplayEngine
from .environment import run_scenario
from .exceptions import ScenarioError
from .scenario_loader import SimParams, load_scenario_config, validate_and_enhance_config


def setup_logging(level: str = 'INFO'):
    """Console logging for the whole package"""

    logger = logging.getLogger('nrscenario')
    logger.setLevel(level)
    logger.handlers.clear()

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)


def _str2bool(value: str) -> bool:
    if value.lower() in ('1', 'true', 'yes', 'y'):
        return True
    if value.lower() in ('0', 'false', 'no', 'n'):
        return False
    raise argparse.ArgumentTypeError(f'expected a boolean, got {value!r}')


def _add_scenario_arguments(parser: argparse.ArgumentParser):
    parser.add_argument('--config', type=str, default=None,
                        help='JSON or YAML scenario file')
    parser.add_argument('--num-cells', type=int, default=None,
                        help='Number of cells (1, 3, 5, 7, 9)')
    parser.add_argument('--num-ues', type=int, default=None,
                        help='Total number of UEs')
    parser.add_argument('--embb-ratio', type=float, default=None,
                        help='Proportion of eMBB UEs')
    parser.add_argument('--isd', type=float, default=None,
                        help='Inter-site distance (m)')
    parser.add_argument('--sim-time', type=float, default=None,
                        help='Simulation time (s)')
    parser.add_argument('--app-start-time', type=float, default=None,
                        help='Application start time (s)')
    parser.add_argument('--rng-seed', type=int, default=None,
                        help='Random seed')
    parser.add_argument('--scheduler', type=str, default=None,
                        help='Scheduler (TdmaQos|OfdmaQos)')
    parser.add_argument('--ho-algorithm', type=str, default=None,
                        help='Handover algorithm')
    parser.add_argument('--dense-scenario', type=_str2bool, default=None,
                        help='Dense urban (true) or sparse suburban (false)')


def build_params(args: argparse.Namespace) -> SimParams:
    overrides = {
        'num_cells': args.num_cells,
        'num_ues': args.num_ues,
        'embb_ratio': args.embb_ratio,
        'isd': args.isd,
        'sim_time': args.sim_time,
        'app_start_time': args.app_start_time,
        'rng_seed': args.rng_seed,
        'scheduler': args.scheduler,
        'ho_algorithm': args.ho_algorithm,
        'dense_scenario': args.dense_scenario,
        'output_dir': getattr(args, 'output_dir', None),
    }

    if args.config:
        return load_scenario_config(args.config, **overrides)

    sim_params = SimParams()
    for name, value in overrides.items():
        if value is not None:
            setattr(sim_params, name, value)
    return validate_and_enhance_config(sim_params)


def cmd_run(args: argparse.Namespace) -> int:
    sim_params = build_params(args)
    engine = TraceReplayEngine(args.trace)
    paths = run_scenario(sim_params, engine, sim_params.output_dir)
    for path in paths.values():
        print(f'  {path}')
    return 0


def cmd_batch(args: argparse.Namespace) -> int:
    base_params = build_params(args)

    def engine_factory(params, name):
        return TraceReplayEngine(os.path.join(args.trace_dir, f'{name}.json'))

    summary = run_batch(args.base_output_dir, engine_factory, base_params,
                        cell_numbers=args.cell_numbers, seeds=args.seeds)
    print(f'Completed {summary["successful"]}/{summary["total"]} scenarios '
          f'({summary["failed"]} failed)')
    return 0 if summary['failed'] == 0 else 1


def cmd_consolidate(args: argparse.Namespace) -> int:
    output_path = consolidate_system_stats(args.base_output_dir)
    if output_path is None:
        return 1
    print(f'  {output_path}')
    return 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description='Multi-cell NR scenario synthesis and reporting')
    parser.add_argument('--log-level', type=str, default='INFO',
                        help='Logging level (default: INFO)')
    subparsers = parser.add_subparsers(dest='command', required=True)

    run_parser = subparsers.add_parser('run', help='Run a single scenario')
    _add_scenario_arguments(run_parser)
    run_parser.add_argument('--trace', type=str, required=True,
                            help='Recorded engine trace (JSON)')
    run_parser.add_argument('--output-dir', type=str, default=None,
                            help='Output directory (default: ./results)')
    run_parser.set_defaults(func=cmd_run)

    batch_parser = subparsers.add_parser('batch', help='Run the cell-count/density sweep')
    _add_scenario_arguments(batch_parser)
    batch_parser.add_argument('--trace-dir', type=str, required=True,
                              help='Directory of <N>cell_<scenario>_seed<seed>.json traces')
    batch_parser.add_argument('--base-output-dir', type=str, default='./simulation_results',
                              help='Base output directory (default: ./simulation_results)')
    batch_parser.add_argument('--cell-numbers', type=int, nargs='+', default=[1, 3, 5, 7, 9])
    batch_parser.add_argument('--seeds', type=int, nargs='+', default=[1])
    batch_parser.set_defaults(func=cmd_batch)

    consolidate_parser = subparsers.add_parser(
        'consolidate', help='Merge the system reports of a finished batch into one CSV')
    consolidate_parser.add_argument('--base-output-dir', type=str, default='./simulation_results',
                                    help='Base output directory (default: ./simulation_results)')
    consolidate_parser.set_defaults(func=cmd_consolidate)

    args = parser.parse_args(argv)
    setup_logging(args.log_level.upper())

    try:
        return args.func(args)
    except ScenarioError as e:
        logging.getLogger('nrscenario').error('%s', e)
        return 2


if __name__ == '__main__':
    sys.exit(main())
