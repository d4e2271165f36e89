"""Offline backend over a directory of two-band building GeoTIFF tiles.

Each tile stores ``building_presence`` and ``building_height`` as band
descriptions and the acquisition time as the ``time_start`` tag in
epoch milliseconds, mirroring the Open Buildings Temporal image properties.
"""

from __future__ import annotations

from pathlib import Path
from typing import Dict, List

import numpy as np
import rasterio as rio
from rasterio.crs import CRS
from rasterio.errors import RasterioIOError
from rasterio.merge import merge
from rasterio.warp import Resampling, calculate_default_transform, reproject, transform_bounds
from rich.console import Console
from shapely.geometry import box

from errors import ExportSubmissionError, QueryError
from rasters import ArrayRaster
from region import Region
from timesteps import RasterPair

PRESENCE_BAND = "building_presence"
HEIGHT_BAND = "building_height"
TIME_TAG = "time_start"

console = Console()


def write_building_tile(
    path: Path,
    presence: np.ndarray,
    height: np.ndarray,
    *,
    timestamp: int,
    transform,
    crs: str = "EPSG:4326",
) -> Path:
    """Write a presence/height pair as a tile readable by :class:`GeoTiffDataset`."""
    h, w = presence.shape
    with rio.open(
        path,
        "w",
        driver="GTiff",
        height=h,
        width=w,
        count=2,
        dtype="float32",
        crs=crs,
        transform=transform,
    ) as dst:
        dst.write(presence.astype("float32"), 1)
        dst.write(height.astype("float32"), 2)
        dst.set_band_description(1, PRESENCE_BAND)
        dst.set_band_description(2, HEIGHT_BAND)
        dst.update_tags(**{TIME_TAG: str(int(timestamp))})
    return path


class GeoTiffDataset:
    """Building tiles on disk, indexed by acquisition time."""

    def __init__(self, directory: Path):
        self.directory = Path(directory)
        if not self.directory.exists():
            raise FileNotFoundError(self.directory)
        self._index: Dict[int, List[Path]] | None = None

    def _scan(self) -> Dict[int, List[Path]]:
        if self._index is None:
            index: Dict[int, List[Path]] = {}
            # Sorted by name: later files win where tiles overlap.
            for p in sorted(self.directory.glob("*.tif")):
                try:
                    with rio.open(p) as src:
                        stamp = src.tags().get(TIME_TAG)
                except RasterioIOError as exc:
                    raise QueryError(f"Cannot read {p}: {exc}") from exc
                if stamp is None:
                    console.log(f"[yellow]Skipping {p.name}: no {TIME_TAG} tag")
                    continue
                index.setdefault(int(stamp), []).append(p)
            self._index = index
        return self._index

    def list_distinct_timestamps(self, region: Region) -> List[int]:
        area = region.polygon
        found = set()
        for stamp, paths in self._scan().items():
            for p in paths:
                with rio.open(p) as src:
                    lonlat = transform_bounds(src.crs, "EPSG:4326", *src.bounds)
                if box(*lonlat).intersects(area):
                    found.add(stamp)
                    break
        return sorted(found)

    def fetch_mosaic(self, timestamp: int) -> RasterPair:
        paths = self._scan().get(int(timestamp))
        if not paths:
            raise QueryError(f"No tiles for timestamp {timestamp} in {self.directory}")
        srcs = [rio.open(p) for p in paths]
        try:
            bands = list(srcs[0].descriptions)
            if PRESENCE_BAND not in bands or HEIGHT_BAND not in bands:
                raise QueryError(f"{paths[0]} lacks {PRESENCE_BAND}/{HEIGHT_BAND} bands")
            indexes = [bands.index(PRESENCE_BAND) + 1, bands.index(HEIGHT_BAND) + 1]
            # merge keeps the first dataset on overlap, so feed it newest first.
            mosaic, transform = merge(srcs[::-1], indexes=indexes, nodata=np.nan, method="first")
            crs = srcs[0].crs
        finally:
            for s in srcs:
                s.close()
        return RasterPair(
            timestamp=int(timestamp),
            presence=ArrayRaster(mosaic[0].astype("float32"), transform, crs),
            height=ArrayRaster(mosaic[1].astype("float32"), transform, crs),
        )


class GeoTiffExporter:
    """Write export jobs as GeoTIFFs under ``root/<folder>/``."""

    def __init__(self, root: Path):
        self.root = Path(root)

    def submit(self, job) -> Path:
        raster: ArrayRaster = job.image
        data, transform = raster.data, raster.transform
        crs = CRS.from_user_input(job.crs)
        h, w = data.shape
        if raster.crs != crs:
            dst_transform, w, h = calculate_default_transform(
                raster.crs, crs, w, h, *raster.bounds
            )
            if w * h > job.max_pixels:
                raise ExportSubmissionError(
                    f"Export {job.description} needs {w * h} pixels, limit is {job.max_pixels:g}"
                )
            out = np.full((h, w), np.nan, dtype="float32")
            reproject(
                source=data,
                destination=out,
                src_transform=transform,
                src_crs=raster.crs,
                src_nodata=np.nan,
                dst_transform=dst_transform,
                dst_crs=crs,
                dst_nodata=np.nan,
                resampling=Resampling.nearest,
            )
            data, transform = out, dst_transform
        elif w * h > job.max_pixels:
            raise ExportSubmissionError(
                f"Export {job.description} needs {w * h} pixels, limit is {job.max_pixels:g}"
            )

        out_dir = self.root / job.folder
        out_dir.mkdir(parents=True, exist_ok=True)
        out_path = out_dir / f"{job.file_name_prefix}.tif"
        with rio.open(
            out_path,
            "w",
            driver="GTiff",
            height=data.shape[0],
            width=data.shape[1],
            count=1,
            dtype="float32",
            crs=crs,
            transform=transform,
            nodata=np.nan,
            compress="deflate",
        ) as dst:
            dst.write(data.astype("float32"), 1)
            dst.set_band_description(1, job.description)
        console.log(f"[cyan]Wrote {out_path}")
        return out_path
