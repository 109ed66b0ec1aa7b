import math

import numpy as np
import pytest

from mask_studio.core.region import RegionSelector, select_region


def test_click_selects_exact_block(block_class_map):
    region = select_region(block_class_map, 3, 3)

    expected = np.zeros((10, 10), dtype=bool)
    expected[2:5, 2:5] = True
    assert np.array_equal(region.data, expected)


def test_background_seed_selects_nothing(block_class_map):
    """Test that every background seed yields an empty region."""
    for y, x in zip(*np.nonzero(block_class_map == 0)):
        assert select_region(block_class_map, x, y).is_empty()


def test_out_of_bounds_seed_selects_nothing(block_class_map):
    assert select_region(block_class_map, -1, 3).is_empty()
    assert select_region(block_class_map, 3, 10).is_empty()


def test_same_class_regions_are_not_merged_across_gaps():
    class_map = np.zeros((6, 9), dtype=np.int32)
    class_map[1:3, 1:3] = 2
    class_map[1:3, 5:8] = 2

    region = select_region(class_map, 1, 1)

    assert region.count() == 4
    assert not region.get(5, 1)


def test_diagonal_neighbours_are_not_connected():
    class_map = np.array(
        [
            [3, 0, 0],
            [0, 3, 0],
            [0, 0, 3],
        ]
    )

    region = select_region(class_map, 1, 1)

    assert region.count() == 1


def test_region_is_connected_and_single_class():
    rng = np.random.default_rng(3)
    class_map = rng.integers(0, 3, size=(15, 15))
    class_map[7, 7] = 1

    region = select_region(class_map, 7, 7)

    assert np.all(class_map[region.data] == 1)
    # Every selected pixel other than the seed touches another selected pixel.
    data = region.data
    for y, x in zip(*np.nonzero(data)):
        if (x, y) == (7, 7):
            continue
        neighbours = [
            data[ny, nx]
            for nx, ny in ((x + 1, y), (x - 1, y), (x, y + 1), (x, y - 1))
            if 0 <= nx < 15 and 0 <= ny < 15
        ]
        assert any(neighbours)


def test_fractional_seed_is_floored(block_class_map):
    assert select_region(block_class_map, 4.9, 2.1).count() == 9
    assert select_region(block_class_map, 5.0, 2.1).is_empty()


def test_selector_checks_dimensions(block_class_map):
    selector = RegionSelector()

    with pytest.raises(ValueError):
        selector.select(block_class_map, 12, 10, 3, 3)


def test_seed_class_lookup(block_class_map):
    selector = RegionSelector()

    assert selector.seed_class(block_class_map, 3.5, 3.5) == 5
    assert selector.seed_class(block_class_map, 0, 0) == 0
    assert selector.seed_class(block_class_map, 20, 0) is None


@pytest.mark.parametrize("x, y", [(math.inf, 3), (3, -math.inf), (math.nan, 3), (3, math.nan)])
def test_non_finite_seed_selects_nothing(block_class_map, x, y):
    assert select_region(block_class_map, x, y).is_empty()
    assert RegionSelector().seed_class(block_class_map, x, y) is None


def test_nested_list_class_map_is_accepted():
    grid = [
        [0, 0, 0, 0],
        [0, 3, 3, 0],
        [0, 3, 0, 0],
        [0, 0, 0, 0],
    ]
    selector = RegionSelector()

    region = selector.select(grid, 4, 4, 1, 1)

    assert region.count() == 3
    assert select_region(grid, 2, 1) == region
    assert selector.seed_class(grid, 1, 2) == 3
    assert select_region(grid, 0, 0).is_empty()
