"""Tests for post minus pre change detection."""

import numpy as np
import pytest
from rasterio.transform import from_origin

from landslide_pipeline import Raster, SchemaMismatchError, detect_change


def _indices(ndvi, ndsi, rog, shape=(2, 2)):
    bands = {
        "NDVI": np.full(shape, ndvi, dtype=float),
        "NDSI": np.full(shape, ndsi, dtype=float),
        "ROG": np.full(shape, rog, dtype=float),
    }
    return Raster.from_bands(bands, from_origin(0, shape[0], 1, 1))


def test_identical_inputs_give_zero_change():
    pre = _indices(0.5, 0.1, 1.2)

    change = detect_change(pre, _indices(0.5, 0.1, 1.2))

    assert change.band_names == ("NDVI", "NDSI", "ROG")
    assert change.data.dtype == np.float32
    np.testing.assert_array_equal(change.data.filled(np.nan), 0.0)


def test_change_is_post_minus_pre():
    pre = _indices(0.667, 0.231, 1.2)
    post = _indices(0.125, 0.1, 1.556)

    change = detect_change(pre, post)

    np.testing.assert_allclose(change.band("NDVI"), -0.542, rtol=1e-5)
    np.testing.assert_allclose(change.band("NDSI"), -0.131, rtol=1e-5)
    np.testing.assert_allclose(change.band("ROG"), 0.356, rtol=1e-5)


def test_post_bands_matched_by_name():
    pre = _indices(0.5, 0.1, 1.0)
    post = _indices(0.2, 0.3, 2.0).select("ROG", "NDVI", "NDSI")

    change = detect_change(pre, post)

    assert change.band_names == pre.band_names
    np.testing.assert_allclose(change.band("ROG"), 1.0)
    np.testing.assert_allclose(change.band("NDVI"), -0.3, rtol=1e-6)


def test_undefined_in_either_input_is_undefined():
    pre = _indices(0.5, 0.1, 1.0)
    post = _indices(0.2, 0.3, 2.0)
    pre_hole = np.zeros((2, 2), dtype=bool)
    pre_hole[0, 0] = True
    post_hole = np.zeros((2, 2), dtype=bool)
    post_hole[1, 1] = True

    change = detect_change(pre.mask_where(pre_hole), post.mask_where(post_hole))

    np.testing.assert_array_equal(change.valid_mask, [[False, True], [True, False]])


def test_band_set_mismatch_raises():
    pre = _indices(0.5, 0.1, 1.0)
    post = _indices(0.5, 0.1, 1.0).select("NDVI", "NDSI")

    with pytest.raises(SchemaMismatchError):
        detect_change(pre, post)


def test_grid_mismatch_raises():
    with pytest.raises(SchemaMismatchError):
        detect_change(_indices(0.5, 0.1, 1.0), _indices(0.5, 0.1, 1.0, shape=(3, 3)))


def test_fully_undefined_input_gives_undefined_change():
    pre = _indices(0.5, 0.1, 1.0)

    change = detect_change(pre, pre.empty_like())

    assert change.valid_fraction() == 0.0
