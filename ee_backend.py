"""Google Earth Engine implementation of the dataset, raster and export seams."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

import ee
import folium
from rich.console import Console

from errors import ExportSubmissionError, QueryError
from region import Region
from timesteps import RasterPair

OPEN_BUILDINGS_TEMPORAL = "GOOGLE/Research/open-buildings-temporal/v1"
PRESENCE_BAND = "building_presence"
HEIGHT_BAND = "building_height"
TIME_PROPERTY = "system:time_start"

console = Console()


def initialize(project: Optional[str] = None) -> None:
    """Initialize the Earth Engine client, optionally against ``project``."""
    try:
        if project:
            ee.Initialize(project=project)
        else:
            ee.Initialize()
    except ee.EEException as exc:
        raise QueryError(f"Earth Engine initialization failed: {exc}") from exc
    console.log(f"[green]Earth Engine initialized{f' ({project})' if project else ''}")


@dataclass(frozen=True)
class EarthEngineRaster:
    """Thin wrapper so map and export code can treat EE images like local rasters."""

    image: "ee.Image"

    def mask_by(self, presence: "EarthEngineRaster", threshold: Optional[float] = None):
        if threshold is None:
            keep = presence.image.neq(0)
        else:
            keep = presence.image.gt(threshold)
        return EarthEngineRaster(self.image.updateMask(keep))

    def clip(self, region: Region) -> "EarthEngineRaster":
        return EarthEngineRaster(self.image.clip(region.to_ee()))

    def folium_layer(self, vis: dict, name: str):
        try:
            map_id = self.image.getMapId(vis)
        except ee.EEException as exc:
            raise QueryError(f"Could not fetch map tiles for {name}: {exc}") from exc
        return folium.TileLayer(
            tiles=map_id["tile_fetcher"].url_format,
            attr="Google Earth Engine",
            name=name,
            overlay=True,
            control=True,
        )


class EarthEngineDataset:
    """Image collection of timestamped building presence/height rasters."""

    def __init__(self, collection_id: str = OPEN_BUILDINGS_TEMPORAL):
        self.collection_id = collection_id

    @property
    def collection(self):
        return ee.ImageCollection(self.collection_id)

    def list_distinct_timestamps(self, region: Region) -> List[int]:
        query = (
            self.collection.filterBounds(region.to_ee())
            .aggregate_array(TIME_PROPERTY)
            .distinct()
            .sort()
        )
        try:
            return [int(t) for t in query.getInfo()]
        except ee.EEException as exc:
            raise QueryError(f"Timestamp query on {self.collection_id} failed: {exc}") from exc

    def fetch_mosaic(self, timestamp: int) -> RasterPair:
        # Mosaic of all tiles sharing the timestamp; EE puts later images on top.
        image = self.collection.filter(ee.Filter.eq(TIME_PROPERTY, timestamp)).mosaic()
        return RasterPair(
            timestamp=timestamp,
            presence=EarthEngineRaster(image.select(PRESENCE_BAND)),
            height=EarthEngineRaster(image.select(HEIGHT_BAND)),
        )


class EarthEngineExporter:
    """Submit export jobs as Google Drive tasks."""

    def submit(self, job) -> str:
        try:
            task = ee.batch.Export.image.toDrive(
                image=job.image.image,
                description=job.description,
                folder=job.folder,
                fileNamePrefix=job.file_name_prefix,
                region=job.region.to_ee(),
                scale=job.scale,
                crs=job.crs,
                maxPixels=job.max_pixels,
            )
            task.start()
        except ee.EEException as exc:
            raise ExportSubmissionError(f"Export {job.description} rejected: {exc}") from exc
        console.log(f"[cyan]Submitted export task {task.id} → {job.folder}/{job.file_name_prefix}")
        return task.id
