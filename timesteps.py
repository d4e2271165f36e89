"""Resolve which acquisition epochs of the building dataset to show."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable, List, Optional, Protocol

from errors import PreconditionError
from region import Region


@dataclass(frozen=True)
class RasterPair:
    """Mosaicked presence and height rasters for one acquisition time."""

    timestamp: int
    presence: Any
    height: Any

    def masked_height(self, threshold: Optional[float] = None):
        """Height with pixels where presence is zero (or below ``threshold``) masked."""
        return self.height.mask_by(self.presence, threshold)


class BuildingDataset(Protocol):
    def list_distinct_timestamps(self, region: Region) -> Iterable[int]: ...

    def fetch_mosaic(self, timestamp: int) -> RasterPair: ...


def year_of(timestamp: int) -> int:
    """Return the UTC calendar year of an epoch-millisecond ``timestamp``."""
    return datetime.fromtimestamp(timestamp / 1000, tz=timezone.utc).year


def resolve_recent_timestamps(
    dataset: BuildingDataset, region: Region, count: int = 5
) -> List[int]:
    """Return the ``count`` most recent distinct timestamps intersecting ``region``.

    The result is ascending and may be shorter than ``count`` (or empty).
    Query failures are not caught here.
    """
    if count < 1:
        raise PreconditionError(f"count must be at least 1, got {count}")
    stamps = sorted({int(t) for t in dataset.list_distinct_timestamps(region)})
    return stamps[-count:]


def latest(timestamps: List[int]) -> int:
    if not timestamps:
        raise PreconditionError("no timestamps available")
    return timestamps[-1]
