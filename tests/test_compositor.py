import numpy as np
import pytest

from mask_studio.core import compositor
from mask_studio.core.raster import RasterMask

from mask_helpers import masks_from_points


def _random_mask(seed, width=9, height=7):
    rng = np.random.default_rng(seed)
    return RasterMask.from_array(rng.integers(0, 2, size=(height, width)))


def test_double_invert_is_identity():
    for seed in range(5):
        mask = _random_mask(seed)
        assert compositor.invert(compositor.invert(mask)) == mask


def test_invert_returns_new_mask():
    mask = masks_from_points(4, 4, [(0, 0)])

    inverted = compositor.invert(mask)

    assert inverted.count() == 15
    assert mask.count() == 1


def _block_with(*points, size=14):
    data = np.zeros((size, size), dtype=bool)
    data[3:8, 3:8] = True
    for x, y in points:
        data[y, x] = not data[y, x]
    return RasterMask.from_array(data)


def test_close_fills_pinhole_but_keeps_speck():
    mask = _block_with((5, 5), (11, 2))

    closed = compositor.close_mask(mask)

    assert np.array_equal(closed.data, _block_with((11, 2)).data)
    assert mask.get(5, 5) is False


def test_open_drops_speck_but_keeps_block():
    mask = _block_with((11, 2))

    opened = compositor.open_mask(mask)

    assert np.array_equal(opened.data, _block_with().data)


def test_refine_is_close_then_open_per_iteration():
    mask = _block_with((5, 5), (11, 2))

    expected = compositor.open_mask(compositor.close_mask(mask))
    assert compositor.refine(mask, iterations=1) == expected
    assert compositor.refine(mask, iterations=2) == compositor.open_mask(compositor.close_mask(expected))


def test_refine_removes_isolated_pixel():
    mask = masks_from_points(10, 10, [(5, 5)])

    refined = compositor.refine(mask, iterations=1)

    assert refined.is_empty()


def test_refine_fills_pinhole_and_keeps_block():
    data = np.zeros((12, 12), dtype=bool)
    data[3:8, 3:8] = True
    data[5, 5] = False
    mask = RasterMask.from_array(data)

    refined = compositor.refine(mask, iterations=2)

    expected = np.zeros((12, 12), dtype=bool)
    expected[3:8, 3:8] = True
    assert np.array_equal(refined.data, expected)


def test_refine_never_touches_outer_ring():
    mask = masks_from_points(10, 10, [(0, 0), (9, 4)])

    refined = compositor.refine(mask, iterations=3)

    before, after = mask.data, refined.data
    assert np.array_equal(after[0, :], before[0, :])
    assert np.array_equal(after[-1, :], before[-1, :])
    assert np.array_equal(after[:, 0], before[:, 0])
    assert np.array_equal(after[:, -1], before[:, -1])


def test_refine_does_not_mutate_input():
    mask = masks_from_points(10, 10, [(5, 5)])

    compositor.refine(mask)

    assert mask.count() == 1


def test_refine_rejects_zero_iterations():
    with pytest.raises(ValueError):
        compositor.refine(RasterMask(5, 5), iterations=0)


def test_overlay_tints_only_selected_pixels():
    mask = masks_from_points(3, 3, [(1, 2)])

    rgba = compositor.render_overlay(mask, color=(10, 20, 30), alpha=99)

    assert rgba[2, 1].tolist() == [10, 20, 30, 99]
    assert np.count_nonzero(rgba[..., 3]) == 1


def test_lookup_table_maps_255_to_tint():
    lut = compositor.tint_lookup_table((1, 2, 3), 200)

    assert lut.shape == (256, 4)
    assert lut[255].tolist() == [1, 2, 3, 200]
    assert not lut[:255].any()


def test_display_threshold_for_greyscale():
    image = np.array([[0, 127, 128, 255]], dtype=np.uint8)

    mask = compositor.mask_from_display(image)

    assert mask.data.tolist() == [[False, False, True, True]]


def test_display_threshold_for_rgba_requires_opacity():
    image = np.zeros((1, 3, 4), dtype=np.uint8)
    image[0, 0] = (255, 0, 0, 255)
    image[0, 1] = (255, 255, 255, 40)
    image[0, 2] = (30, 30, 30, 255)

    mask = compositor.mask_from_display(image)

    assert mask.data.tolist() == [[True, False, False]]


def test_display_rejects_unknown_layout():
    with pytest.raises(ValueError):
        compositor.mask_from_display(np.zeros((2, 2, 2), dtype=np.uint8))
