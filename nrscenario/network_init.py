"""Network initialization: cell layout, terminal placement, serving-cell association"""

import logging
import numpy as np
from typing import Dict, List, Optional

from .network import CellSite, Terminal, distance_between
from .scenario_loader import SimParams, DENSE_URBAN


logger = logging.getLogger(__name__)


def effective_isd(isd: float, deployment_scenario: str) -> float:
    """Dense deployments pack sites closer together, sparse ones spread them out"""
    return isd * 0.7 if deployment_scenario == DENSE_URBAN else isd * 1.3


def create_layout(num_cells: int, isd: float, height: float, deployment_scenario: str) -> List[CellSite]:
    """Create the cell-site layout for the requested number of sites.

    Supported counts are 1, 3, 5, 7 and 9. Any other count uses the 9-site
    pattern, truncated to the first ``num_cells`` positions or extended with
    further 8-site rings.
    """

    eff_isd = effective_isd(isd, deployment_scenario)

    if num_cells == 1:
        coords = [(0.0, 0.0)]
    elif num_cells == 3:
        coords = _create_triangle_layout(eff_isd)
    elif num_cells == 5:
        coords = _create_plus_layout(eff_isd)
    elif num_cells == 7:
        coords = _create_hex_layout(eff_isd)
    else:
        coords = _create_octagon_layout(num_cells, eff_isd)

    sites = [CellSite(id=i, x=float(x), y=float(y), z=float(height))
             for i, (x, y) in enumerate(coords)]

    logger.info('Created %d cell sites (%s, effective ISD %.1f m)',
                len(sites), deployment_scenario, eff_isd)
    return sites


def _create_triangle_layout(eff_isd: float):
    """Equilateral triangle, one vertex due north"""
    r = eff_isd * 0.577  # circumradius
    return [
        (0.0, r),
        (-r * 0.866, -r * 0.5),
        (r * 0.866, -r * 0.5),
    ]


def _create_plus_layout(eff_isd: float):
    offset = eff_isd * 0.7
    return [
        (0.0, 0.0),
        (offset, 0.0),
        (-offset, 0.0),
        (0.0, offset),
        (0.0, -offset),
    ]


def _create_hex_layout(eff_isd: float):
    r = eff_isd * 0.6
    coords = [(0.0, 0.0)]
    for i in range(6):
        angle = i * np.pi / 3.0
        coords.append((r * np.cos(angle), r * np.sin(angle)))
    return coords


def _create_octagon_layout(num_cells: int, eff_isd: float):
    """Centre plus 8 directions; counts above 9 continue on wider rings"""
    r = eff_isd * 0.65
    target = max(num_cells, 1)

    coords = [(0.0, 0.0)]
    ring = 1
    while len(coords) < max(target, 9):
        for i in range(8):
            angle = i * np.pi / 4.0
            coords.append((ring * r * np.cos(angle), ring * r * np.sin(angle)))
        ring += 1

    return coords[:target]


def allocate_ues_per_cell(num_ues: int, num_cells: int, deployment_scenario: str) -> List[int]:
    """Split terminals across cells as evenly as possible.

    Dense scenarios oversubscribe the first and the middle cell by 1.5x, so the
    allocations may add up to more than ``num_ues``.
    """

    base_ues_per_cell = num_ues // num_cells
    remainder = num_ues % num_cells

    ues_per_cell = []
    for i in range(num_cells):
        count = base_ues_per_cell + (1 if i < remainder else 0)
        if deployment_scenario == DENSE_URBAN and (i == 0 or i == num_cells // 2):
            count = int(count * 1.5)
        ues_per_cell.append(count)

    return ues_per_cell


def distribute_ues(num_ues: int, sites: List[CellSite], deployment_scenario: str,
                   isd: float, ue_height: float, rng: np.random.RandomState) -> List[Terminal]:
    """Place every terminal around the cell sites.

    Dense scenarios draw radii from an exponential biased towards the site,
    sparse ones draw them uniformly over the coverage ring. Terminals not
    reached by the per-cell pass are dropped uniformly into a square of
    half-width 1.5 x ISD around the origin.
    """

    dense = deployment_scenario == DENSE_URBAN
    max_radius = isd * 0.4 if dense else isd * 0.8
    min_radius = 10.0 if dense else 50.0

    ues_per_cell = allocate_ues_per_cell(num_ues, len(sites), deployment_scenario)

    terminals: List[Terminal] = []
    for site, allocation in zip(sites, ues_per_cell):
        if len(terminals) >= num_ues:
            break

        for _ in range(allocation):
            if len(terminals) >= num_ues:
                break

            if dense:
                radius = min_radius + rng.exponential() * (max_radius - min_radius) * 0.3
                radius = min(radius, max_radius)
            else:
                radius = rng.uniform(min_radius, max_radius)

            angle = rng.uniform(0.0, 2 * np.pi)

            terminals.append(Terminal(
                index=len(terminals),
                x=site.x + radius * np.cos(angle),
                y=site.y + radius * np.sin(angle),
                z=ue_height,
                anchor_cell=site.id
            ))

    area_size = isd * 1.5
    while len(terminals) < num_ues:
        x = rng.uniform(-area_size, area_size)
        y = rng.uniform(-area_size, area_size)
        terminals.append(Terminal(index=len(terminals), x=x, y=y, z=ue_height))

    logger.info('Distributed %d terminals over %d cells (%s)',
                len(terminals), len(sites), deployment_scenario)
    return terminals


def initialize_ues(sim_params: SimParams, sites: List[CellSite]) -> List[Terminal]:
    """Place the scenario's terminals with a seeded random stream"""

    rng = np.random.RandomState(sim_params.rng_seed + 2000)
    return distribute_ues(sim_params.num_ues, sites, sim_params.deployment_scenario,
                          sim_params.isd, sim_params.ue_height, rng)


def find_closest_cell(terminal: Terminal, sites: List[CellSite]) -> Optional[CellSite]:
    closest = None
    min_distance = float('inf')
    for site in sites:
        distance = distance_between(terminal.position, site.position)
        if distance < min_distance:
            min_distance = distance
            closest = site
    return closest


def associate_ues(terminals: List[Terminal], sites: List[CellSite]) -> Dict[int, int]:
    """Record each terminal's nearest cell and distance; return terminals per cell"""

    cell_ue_count = {site.id: 0 for site in sites}
    for terminal in terminals:
        site = find_closest_cell(terminal, sites)
        if site is None:
            continue
        terminal.serving_cell = site.id
        terminal.distance = distance_between(terminal.position, site.position)
        cell_ue_count[site.id] += 1

    logger.info('Attached %d terminals to their closest cell (per cell: %s)',
                sum(cell_ue_count.values()), cell_ue_count)
    return cell_ue_count
