"""Export the latest masked height and presence rasters."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, Optional, Protocol, Sequence, Tuple

from rich.console import Console

from errors import PreconditionError
from region import Region
from timesteps import BuildingDataset, latest, year_of

EXPORT_FOLDER = "GEE_Exports"
EXPORT_SCALE = 4
EXPORT_CRS = "EPSG:4326"
EXPORT_MAX_PIXELS = 1e13

console = Console()


@dataclass(frozen=True)
class ExportJob:
    image: Any
    description: str
    file_name_prefix: str
    region: Region
    folder: str = EXPORT_FOLDER
    scale: float = EXPORT_SCALE
    crs: str = EXPORT_CRS
    max_pixels: float = EXPORT_MAX_PIXELS


class JobSubmitter(Protocol):
    def submit(self, job: ExportJob) -> Any: ...


def build_export_jobs(
    height,
    presence,
    year: int,
    region: Region,
    *,
    folder: str = EXPORT_FOLDER,
    scale: float = EXPORT_SCALE,
    crs: str = EXPORT_CRS,
    max_pixels: float = EXPORT_MAX_PIXELS,
) -> Tuple[ExportJob, ExportJob]:
    """Return the ``(height, presence)`` jobs for ``year``, both clipped to ``region``."""
    common = dict(region=region, folder=folder, scale=scale, crs=crs, max_pixels=max_pixels)
    height_job = ExportJob(
        image=height.clip(region),
        description=f"Building_Height_{year}",
        file_name_prefix=f"building_height_{year}",
        **common,
    )
    presence_job = ExportJob(
        image=presence.clip(region),
        description=f"building_presence_{year}",
        file_name_prefix=f"building_presence_{year}",
        **common,
    )
    return height_job, presence_job


def export_latest(
    dataset: BuildingDataset,
    submitter: JobSubmitter,
    timestamps: Sequence[int],
    region: Region,
    *,
    folder: str = EXPORT_FOLDER,
    scale: float = EXPORT_SCALE,
    crs: str = EXPORT_CRS,
    max_pixels: float = EXPORT_MAX_PIXELS,
    presence_threshold: Optional[float] = None,
) -> List[Any]:
    """Submit height and presence exports for the most recent of ``timestamps``.

    ``timestamps`` must be ascending and non-empty. Returns the job handles in
    submission order (height first). Jobs are not awaited.
    """
    if not timestamps:
        raise PreconditionError("export requested but no timestamps were resolved")
    stamp = latest(list(timestamps))
    year = year_of(stamp)
    console.log(f"Exporting building rasters for {year}")

    pair = dataset.fetch_mosaic(stamp)
    jobs = build_export_jobs(
        pair.masked_height(presence_threshold),
        pair.presence,
        year,
        region,
        folder=folder,
        scale=scale,
        crs=crs,
        max_pixels=max_pixels,
    )
    return [submitter.submit(job) for job in jobs]
