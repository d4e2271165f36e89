"""Polygon of interest used as spatial filter and export boundary."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Sequence, Tuple

import ee
import geopandas as gpd
from shapely.geometry import Polygon, mapping

Coord = Tuple[float, float]


@dataclass(frozen=True)
class Region:
    """Ring of ``(lon, lat)`` pairs. The ring is not validated."""

    ring: Tuple[Coord, ...]

    @property
    def polygon(self) -> Polygon:
        return Polygon(self.ring)

    @property
    def bounds(self) -> tuple[float, float, float, float]:
        """Return ``(xmin, ymin, xmax, ymax)``."""
        xs = [c[0] for c in self.ring]
        ys = [c[1] for c in self.ring]
        return (min(xs), min(ys), max(xs), max(ys))

    @property
    def center(self) -> list[float]:
        """Return ``[lat, lon]`` of the bounding box center (Folium order)."""
        xmin, ymin, xmax, ymax = self.bounds
        return [(ymin + ymax) / 2, (xmin + xmax) / 2]

    def geojson(self) -> dict:
        return mapping(self.polygon)

    def to_ee(self):
        """Return a planar ``ee.Geometry.Polygon`` for this ring."""
        return ee.Geometry.Polygon([[list(c) for c in self.ring]], None, False)


# Area of interest in north-east Bengaluru.
POI = Region(
    (
        (77.67456719486366, 13.028734308323427),
        (77.67456719486366, 13.011842258079875),
        (77.69585320560584, 13.011842258079875),
        (77.69585320560584, 13.028734308323427),
    )
)


def region_from_bbox(xmin: float, ymin: float, xmax: float, ymax: float) -> Region:
    return Region(((xmin, ymax), (xmin, ymin), (xmax, ymin), (xmax, ymax)))


def load_region(path: Path) -> Region:
    """Read a vector file and use the exterior ring of its union."""
    try:
        gdf = gpd.read_file(path)
    except Exception as exc:
        raise ValueError(f"Cannot read region file {path}: {exc}") from exc
    if gdf.empty:
        raise ValueError(f"Region file {path} contains no geometries")
    if gdf.crs is not None and gdf.crs.to_epsg() != 4326:
        gdf = gdf.to_crs(4326)
    geom = gdf.union_all()
    if geom.geom_type != "Polygon":
        geom = geom.convex_hull
    if geom.geom_type != "Polygon":
        raise ValueError(f"Region file {path} has no areal geometry ({geom.geom_type})")
    return Region(tuple((float(x), float(y)) for x, y in geom.exterior.coords))


def region_from_config(value: Any) -> Region:
    """Build a region from a ring, a 4-number bbox or a vector file path."""
    if value is None:
        return POI
    if isinstance(value, (str, Path)):
        return load_region(Path(value))
    if isinstance(value, Sequence) and len(value) == 4 and all(
        isinstance(v, (int, float)) for v in value
    ):
        return region_from_bbox(*(float(v) for v in value))
    ring = tuple((float(c[0]), float(c[1])) for c in value)
    if len(ring) < 3:
        raise ValueError("region ring needs at least 3 coordinates")
    return Region(ring)
