"""In-memory rasters backed by numpy arrays and a rasterio geotransform."""

from __future__ import annotations

import math
from dataclasses import dataclass, replace
from typing import Optional

import folium
import matplotlib.pyplot as plt
import numpy as np
from matplotlib.colors import LinearSegmentedColormap
from rasterio.crs import CRS
from rasterio.features import geometry_mask
from rasterio.transform import Affine, array_bounds
from rasterio.warp import transform_bounds, transform_geom
from rasterio.windows import Window, from_bounds, transform as window_transform

from region import Region


def presence_mask(presence: np.ndarray, threshold: Optional[float] = None) -> np.ndarray:
    """Boolean array of pixels that count as "building present".

    Without ``threshold`` any finite non-zero value is present, otherwise values
    strictly above ``threshold`` are.
    """
    values = np.asarray(presence, dtype=float)
    finite = np.isfinite(values)
    if threshold is None:
        return finite & (values != 0)
    return finite & (values > threshold)


def mask_height(
    height: np.ndarray, presence: np.ndarray, threshold: Optional[float] = None
) -> np.ndarray:
    """Return ``height`` as float with non-present pixels set to NaN."""
    out = np.asarray(height, dtype="float32").copy()
    out[~presence_mask(presence, threshold)] = np.nan
    return out


@dataclass(frozen=True)
class ArrayRaster:
    """Single band raster. NaN marks nodata."""

    data: np.ndarray
    transform: Affine
    crs: CRS

    @property
    def bounds(self) -> tuple[float, float, float, float]:
        """Return ``(west, south, east, north)`` in the raster CRS."""
        h, w = self.data.shape
        return array_bounds(h, w, self.transform)

    def lonlat_bounds(self) -> tuple[float, float, float, float]:
        return transform_bounds(self.crs, "EPSG:4326", *self.bounds)

    def mask_by(self, presence: "ArrayRaster", threshold: Optional[float] = None) -> "ArrayRaster":
        return replace(self, data=mask_height(self.data, presence.data, threshold))

    def clip(self, region: Region) -> "ArrayRaster":
        """Crop to the region bounds and blank pixels outside the polygon."""
        geom = transform_geom("EPSG:4326", self.crs, region.geojson())
        xmin, ymin, xmax, ymax = transform_bounds("EPSG:4326", self.crs, *region.bounds)
        h, w = self.data.shape
        win = from_bounds(xmin, ymin, xmax, ymax, transform=self.transform)
        col0 = max(0, math.floor(win.col_off))
        row0 = max(0, math.floor(win.row_off))
        col1 = min(w, math.ceil(win.col_off + win.width))
        row1 = min(h, math.ceil(win.row_off + win.height))
        window = Window(col0, row0, max(0, col1 - col0), max(0, row1 - row0))
        rows, cols = window.toslices()
        data = self.data[rows, cols].astype("float32")
        out_transform = window_transform(window, self.transform)
        outside = geometry_mask(
            [geom], out_shape=data.shape, transform=out_transform, all_touched=True
        )
        data[outside] = np.nan
        return ArrayRaster(data=data, transform=out_transform, crs=self.crs)

    def to_rgba(self, vis: dict) -> np.ndarray:
        """Colorize with Earth Engine style ``{min, max, palette}`` parameters.

        Values are stretched linearly between ``min`` and ``max`` and clamped;
        without a palette the ramp runs from black to white. NaN is transparent.
        """
        arr = self.data.astype(float)
        vmin = float(vis.get("min", 0))
        vmax = float(vis.get("max", 1))
        norm = np.clip((arr - vmin) / max(vmax - vmin, 1e-12), 0, 1)
        palette = vis.get("palette")
        if palette:
            cm = LinearSegmentedColormap.from_list("vis", list(palette))
        else:
            cm = plt.get_cmap("gray")
        rgba = cm(np.nan_to_num(norm))
        rgba[..., -1] = np.where(np.isnan(arr), 0, rgba[..., -1])
        return rgba

    def folium_layer(self, vis: dict, name: str):
        west, south, east, north = self.lonlat_bounds()
        return folium.raster_layers.ImageOverlay(
            image=self.to_rgba(vis),
            bounds=[[south, west], [north, east]],
            name=name,
            mercator_project=True,
            interactive=False,
        )

