"""Sequential batch runs over cell counts, deployment density and seeds"""

import dataclasses
import glob
import logging
import os
import re
import time
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence

import pandas as pd

from .engine import SimulationEngine
from .environment import run_scenario
from .reporting import report_paths, write_frame
from .scenario_loader import SimParams, SUPPORTED_CELL_COUNTS, validate_and_enhance_config


logger = logging.getLogger(__name__)

SCENARIOS = ((False, 'sparse'), (True, 'dense'))
RUN_NAME_PATTERN = re.compile(r'^(\d+)cell_([a-z]+)_seed(\d+)$')

EngineFactory = Callable[[SimParams, str], SimulationEngine]


def run_name(num_cells: int, scenario_name: str, seed: int) -> str:
    return f'{num_cells}cell_{scenario_name}_seed{seed}'


def plan_batch(base_params: SimParams, cell_numbers: Sequence[int] = SUPPORTED_CELL_COUNTS,
               seeds: Sequence[int] = (1,)) -> List[SimParams]:
    """Cell count outermost, then sparse before dense, then seed.

    Dense runs carry 50% more terminals.
    """

    plan = []
    for num_cells in cell_numbers:
        for dense, _ in SCENARIOS:
            for seed in seeds:
                num_ues = base_params.num_ues * 3 // 2 if dense else base_params.num_ues
                params = dataclasses.replace(base_params, num_cells=num_cells,
                                             dense_scenario=dense, rng_seed=seed,
                                             num_ues=num_ues)
                plan.append(validate_and_enhance_config(params))
    return plan


def verify_output_files(output_dir: str, num_cells: int) -> bool:
    """All four reports exist and are non-empty"""

    all_files_ok = True
    for path in report_paths(output_dir, num_cells).values():
        if os.path.isfile(path) and os.path.getsize(path) > 0:
            logger.info('  ok %s', os.path.basename(path))
        else:
            logger.error('  missing or empty: %s', os.path.basename(path))
            all_files_ok = False
    return all_files_ok


def run_batch(base_output_dir: str, engine_factory: EngineFactory, base_params: SimParams,
              cell_numbers: Sequence[int] = SUPPORTED_CELL_COUNTS,
              seeds: Sequence[int] = (1,)) -> Dict[str, int]:
    """Run every planned scenario; a failed run is counted and the batch goes on"""

    os.makedirs(base_output_dir, exist_ok=True)
    plan = plan_batch(base_params, cell_numbers, seeds)

    logger.info('Running %d scenarios sequentially', len(plan))

    successful = 0
    failed = 0
    for i, params in enumerate(plan, 1):
        name = run_name(params.num_cells, params.scenario_name, params.rng_seed)
        output_dir = os.path.join(base_output_dir, name)
        params = dataclasses.replace(params, output_dir=output_dir)

        logger.info('--- Scenario %d/%d: %s (%d UEs) ---', i, len(plan), name, params.num_ues)
        start = time.time()

        try:
            engine = engine_factory(params, name)
            run_scenario(params, engine, output_dir)
        except Exception:
            logger.exception('Scenario %s failed', name)
            failed += 1
            continue

        if verify_output_files(output_dir, params.num_cells):
            successful += 1
            logger.info('Scenario %s completed in %.1f s', name, time.time() - start)
        else:
            failed += 1

    write_progress_report(base_output_dir, successful + failed, failed)
    consolidate_system_stats(base_output_dir)
    return {'total': len(plan), 'successful': successful, 'failed': failed}


def write_progress_report(base_output_dir: str, completed: int, failed: int) -> str:
    report_path = os.path.join(base_output_dir, 'progress_report.txt')

    run_dirs = sorted(d for d in glob.glob(os.path.join(base_output_dir, '*cell_*'))
                      if os.path.isdir(d))
    csv_files = glob.glob(os.path.join(base_output_dir, '**', '*.csv'), recursive=True)
    success_rate = 100 * (completed - failed) // completed if completed > 0 else 0

    lines = [
        f'PROGRESS REPORT - {datetime.now().strftime("%Y-%m-%d %H:%M:%S")}',
        '============================================',
        f'Completed runs: {completed}',
        f'Failed runs: {failed}',
        f'Success rate: {success_rate}%',
        '',
        'RUN DIRECTORIES:',
        *run_dirs,
        '',
        'CSV FILES GENERATED:',
        str(len(csv_files)),
        '',
    ]
    with open(report_path, 'w') as f:
        f.write('\n'.join(lines))

    logger.info('Progress report written to %s', report_path)
    return report_path


def consolidate_system_stats(base_output_dir: str) -> Optional[str]:
    """Stack every run's system report into one CSV tagged with its run.

    Returns the consolidated file path, or None when no run produced a report.
    """

    pattern = os.path.join(base_output_dir, '*', 'system_stats_optimized_*cell.csv')
    files = sorted(glob.glob(pattern))

    frames = []
    for path in files:
        match = RUN_NAME_PATTERN.match(os.path.basename(os.path.dirname(path)))
        if match is None:
            continue
        try:
            frame = pd.read_csv(path)
        except (OSError, pd.errors.ParserError, pd.errors.EmptyDataError) as e:
            logger.error('Could not read %s: %s', path, e)
            continue
        frame['NumCells'] = int(match.group(1))
        frame['Scenario'] = match.group(2)
        frame['Seed'] = int(match.group(3))
        frame['SourceFile'] = path
        frames.append(frame)

    if not frames:
        logger.warning('No system reports found under %s', base_output_dir)
        return None

    output_path = os.path.join(base_output_dir, 'consolidated_system_stats.csv')
    write_frame(pd.concat(frames, ignore_index=True), output_path)
    logger.info('Consolidated %d system reports', len(frames))
    return output_path
