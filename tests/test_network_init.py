import itertools
import logging
from collections import Counter

import numpy as np
import pytest

from nrscenario.network import distance_between
from nrscenario.network_init import (create_layout, allocate_ues_per_cell, distribute_ues,
                                     associate_ues, effective_isd, initialize_ues)
from nrscenario.scenario_loader import DENSE_URBAN, SPARSE_SUBURBAN

from conftest import make_params


def _min_pairwise_distance(sites):
    return min(distance_between(a.position, b.position)
               for a, b in itertools.combinations(sites, 2))


@pytest.mark.parametrize('num_cells', [1, 3, 5, 7, 9])
@pytest.mark.parametrize('scenario', [DENSE_URBAN, SPARSE_SUBURBAN])
def test_layout_has_requested_number_of_distinct_sites(num_cells, scenario):
    sites = create_layout(num_cells, 200.0, 25.0, scenario)

    assert len(sites) == num_cells
    assert len({(round(s.x, 6), round(s.y, 6)) for s in sites}) == num_cells
    assert all(s.z == 25.0 for s in sites)
    assert [s.id for s in sites] == list(range(num_cells))


@pytest.mark.parametrize('num_cells', [3, 5, 7, 9])
def test_min_site_spacing_grows_with_isd(num_cells):
    spacings = [_min_pairwise_distance(create_layout(num_cells, isd, 25.0, SPARSE_SUBURBAN))
                for isd in (100.0, 200.0, 400.0)]
    assert spacings[0] < spacings[1] < spacings[2]


def test_effective_isd_depends_on_density():
    assert effective_isd(200.0, DENSE_URBAN) == pytest.approx(140.0)
    assert effective_isd(200.0, SPARSE_SUBURBAN) == pytest.approx(260.0)


def test_single_site_at_origin():
    site = create_layout(1, 200.0, 25.0, DENSE_URBAN)[0]
    assert (site.x, site.y, site.z) == (0.0, 0.0, 25.0)


def test_triangle_has_northern_vertex():
    sites = create_layout(3, 200.0, 25.0, SPARSE_SUBURBAN)
    r = 260.0 * 0.577

    assert sites[0].x == pytest.approx(0.0)
    assert sites[0].y == pytest.approx(r)
    assert sites[1].x == pytest.approx(-r * 0.866)
    assert sites[2].x == pytest.approx(r * 0.866)
    assert sites[1].y == pytest.approx(-r * 0.5)


def test_plus_and_hex_patterns():
    plus = create_layout(5, 200.0, 25.0, DENSE_URBAN)
    offset = 140.0 * 0.7
    assert [(round(s.x, 6), round(s.y, 6)) for s in plus] == [
        (0.0, 0.0), (round(offset, 6), 0.0), (round(-offset, 6), 0.0),
        (0.0, round(offset, 6)), (0.0, round(-offset, 6))]

    hexagon = create_layout(7, 200.0, 25.0, DENSE_URBAN)
    radii = [np.hypot(s.x, s.y) for s in hexagon[1:]]
    assert radii == pytest.approx([140.0 * 0.6] * 6)


@pytest.mark.parametrize('num_cells', [2, 4, 6, 8, 12, 17])
def test_unsupported_counts_fall_back_to_octagon_pattern(num_cells):
    sites = create_layout(num_cells, 200.0, 25.0, SPARSE_SUBURBAN)
    nine = create_layout(9, 200.0, 25.0, SPARSE_SUBURBAN)

    assert len(sites) == num_cells
    assert len({(round(s.x, 6), round(s.y, 6)) for s in sites}) == num_cells
    for site, reference in zip(sites, nine):
        assert (site.x, site.y) == pytest.approx((reference.x, reference.y))


def test_allocation_is_even_with_remainder_first():
    assert allocate_ues_per_cell(10, 3, SPARSE_SUBURBAN) == [4, 3, 3]
    assert sum(allocate_ues_per_cell(31, 7, SPARSE_SUBURBAN)) == 31


def test_dense_allocation_oversubscribes_first_and_middle_cells():
    assert allocate_ues_per_cell(30, 3, DENSE_URBAN) == [15, 15, 10]
    assert allocate_ues_per_cell(30, 1, DENSE_URBAN) == [45]
    assert allocate_ues_per_cell(45, 5, DENSE_URBAN) == [13, 9, 13, 9, 9]


@pytest.mark.parametrize('num_ues', [1, 7, 30, 45, 101])
@pytest.mark.parametrize('num_cells', [1, 3, 5, 7, 9])
@pytest.mark.parametrize('scenario', [DENSE_URBAN, SPARSE_SUBURBAN])
def test_every_terminal_gets_exactly_one_position(num_ues, num_cells, scenario):
    sites = create_layout(num_cells, 200.0, 25.0, scenario)
    terminals = distribute_ues(num_ues, sites, scenario, 200.0, 1.5, np.random.RandomState(7))

    assert len(terminals) == num_ues
    assert [t.index for t in terminals] == list(range(num_ues))
    assert all(np.isfinite([t.x, t.y, t.z]).all() for t in terminals)

    anchored = Counter(t.anchor_cell for t in terminals if t.anchor_cell is not None)
    fallback = sum(1 for t in terminals if t.anchor_cell is None)
    assert sum(anchored.values()) + fallback == num_ues


def test_dense_hotspot_starves_later_cells():
    sites = create_layout(3, 200.0, 25.0, DENSE_URBAN)
    terminals = distribute_ues(30, sites, DENSE_URBAN, 200.0, 1.5, np.random.RandomState(1))

    assert Counter(t.anchor_cell for t in terminals) == {0: 15, 1: 15}


def test_dense_radii_stay_within_coverage():
    sites = create_layout(7, 200.0, 25.0, DENSE_URBAN)
    terminals = distribute_ues(200, sites, DENSE_URBAN, 200.0, 1.5, np.random.RandomState(3))

    for t in terminals:
        site = sites[t.anchor_cell]
        radius = np.hypot(t.x - site.x, t.y - site.y)
        assert 10.0 - 1e-9 <= radius <= 80.0 + 1e-9
        assert t.z == 1.5


def test_sparse_radii_stay_within_coverage():
    sites = create_layout(5, 200.0, 25.0, SPARSE_SUBURBAN)
    terminals = distribute_ues(100, sites, SPARSE_SUBURBAN, 200.0, 1.5, np.random.RandomState(3))

    for t in terminals:
        site = sites[t.anchor_cell]
        radius = np.hypot(t.x - site.x, t.y - site.y)
        assert 50.0 - 1e-9 <= radius <= 160.0 + 1e-9


def test_distribution_is_deterministic_for_a_seed():
    params = make_params(num_cells=5, num_ues=40, dense_scenario=True, rng_seed=11)
    sites = create_layout(5, params.isd, params.gnb_height, params.deployment_scenario)

    first = [t.position for t in initialize_ues(params, sites)]
    second = [t.position for t in initialize_ues(params, sites)]
    other = [t.position for t in initialize_ues(make_params(num_cells=5, num_ues=40,
                                                            dense_scenario=True, rng_seed=12), sites)]

    assert first == second
    assert first != other


def test_associate_ues_picks_nearest_cell():
    sites = create_layout(3, 200.0, 25.0, SPARSE_SUBURBAN)
    terminals = distribute_ues(30, sites, SPARSE_SUBURBAN, 200.0, 1.5, np.random.RandomState(5))

    counts = associate_ues(terminals, sites)

    assert sum(counts.values()) == 30
    for t in terminals:
        distances = [distance_between(t.position, s.position) for s in sites]
        assert t.serving_cell == int(np.argmin(distances))
        assert t.distance == pytest.approx(min(distances))


def test_attachment_logs_one_summary_line(caplog):
    sites = create_layout(3, 200.0, 25.0, SPARSE_SUBURBAN)
    terminals = distribute_ues(12, sites, SPARSE_SUBURBAN, 200.0, 1.5, np.random.RandomState(2))

    caplog.set_level(logging.INFO, logger='nrscenario.network_init')
    associate_ues(terminals, sites)

    [record] = [r for r in caplog.records if r.name == 'nrscenario.network_init']
    assert record.levelno == logging.INFO
    assert 'Attached 12 terminals' in record.getMessage()
