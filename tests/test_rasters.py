import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import numpy as np
from rasterio.crs import CRS
from rasterio.transform import from_bounds

from rasters import ArrayRaster, mask_height, presence_mask
from region import POI


def _raster(data) -> ArrayRaster:
    data = np.asarray(data, dtype="float32")
    h, w = data.shape
    transform = from_bounds(77.67, 13.01, 77.70, 13.03, w, h)
    return ArrayRaster(data, transform, CRS.from_epsg(4326))


def test_mask_height_boolean_and_nonzero_presence_agree():
    height = np.array([[3.0, 5.0], [0.0, 12.0]])
    as_bool = np.array([[1, 0], [1, 0]], dtype=bool)
    as_prob = np.array([[0.37, 0.0], [0.9, 0.0]])
    a = mask_height(height, as_bool)
    b = mask_height(height, as_prob)
    np.testing.assert_array_equal(a, b)
    assert np.isnan(a[0, 1]) and np.isnan(a[1, 1])
    assert a[0, 0] == 3.0 and a[1, 0] == 0.0


def test_mask_height_is_idempotent():
    height = np.array([[3.0, 5.0], [7.0, 12.0]])
    presence = np.array([[1.0, 0.0], [0.5, 0.0]])
    once = mask_height(height, presence)
    twice = mask_height(once, presence)
    np.testing.assert_array_equal(once, twice)


def test_presence_mask_threshold_and_nan():
    presence = np.array([0.0, 0.2, 0.8, np.nan])
    assert presence_mask(presence).tolist() == [False, True, True, False]
    assert presence_mask(presence, 0.5).tolist() == [False, False, True, False]


def test_mask_by_keeps_georeference():
    height = _raster([[4.0, 6.0], [8.0, 2.0]])
    presence = _raster([[1.0, 0.0], [0.0, 1.0]])
    masked = height.mask_by(presence)
    assert masked.transform == height.transform
    assert masked.crs == height.crs
    assert np.isnan(masked.data[0, 1])
    assert masked.data[1, 1] == 2.0


def test_clip_to_region():
    r = _raster(np.ones((20, 30)))
    clipped = r.clip(POI)
    assert clipped.data.shape[0] < 20 and clipped.data.shape[1] < 30
    assert np.isfinite(clipped.data).any()
    west, south, east, north = clipped.bounds
    xmin, ymin, xmax, ymax = POI.bounds
    assert west <= xmin + 0.001 and east >= xmax - 0.001
    assert south <= ymin + 0.001 and north >= ymax - 0.001


def test_to_rgba_clamps_and_hides_nodata():
    r = _raster([[0.0, 10.0], [25.0, np.nan]])
    rgba = r.to_rgba({"min": 0, "max": 10, "palette": ["#000000", "#cc0000"]})
    assert rgba.shape == (2, 2, 4)
    np.testing.assert_allclose(rgba[0, 0, :3], [0, 0, 0])
    np.testing.assert_allclose(rgba[0, 1, :3], rgba[1, 0, :3])
    assert rgba[1, 1, 3] == 0
    assert rgba[0, 0, 3] == 1
