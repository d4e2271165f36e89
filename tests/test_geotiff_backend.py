import sys
from datetime import datetime, timezone
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import numpy as np
import pytest
import rasterio as rio
from rasterio.transform import from_bounds

from errors import ExportSubmissionError, QueryError
from exporter import ExportJob
from geotiff_backend import GeoTiffDataset, GeoTiffExporter, write_building_tile
from region import POI

AOI_BOUNDS = (77.67, 13.01, 77.70, 13.03)


def _ms(year: int) -> int:
    return int(datetime(year, 6, 30, tzinfo=timezone.utc).timestamp() * 1000)


def _tile(path: Path, year: int, presence, height, bounds=AOI_BOUNDS, size=(20, 30)) -> Path:
    h, w = size
    transform = from_bounds(*bounds, w, h)
    return write_building_tile(
        path,
        np.full(size, presence, dtype="float32"),
        np.full(size, height, dtype="float32"),
        timestamp=_ms(year),
        transform=transform,
    )


def test_list_distinct_timestamps_filters_by_region(tmp_path: Path) -> None:
    _tile(tmp_path / "a_2018.tif", 2018, 1, 3)
    _tile(tmp_path / "b_2018.tif", 2018, 1, 3)
    _tile(tmp_path / "c_2020.tif", 2020, 1, 3)
    # Far away from the area of interest
    _tile(tmp_path / "d_2022.tif", 2022, 1, 3, bounds=(10.0, 10.0, 10.1, 10.1))

    ds = GeoTiffDataset(tmp_path)
    assert ds.list_distinct_timestamps(POI) == [_ms(2018), _ms(2020)]


def test_untagged_files_are_skipped(tmp_path: Path) -> None:
    _tile(tmp_path / "a.tif", 2019, 1, 3)
    with rio.open(
        tmp_path / "plain.tif",
        "w",
        driver="GTiff",
        height=2,
        width=2,
        count=1,
        dtype="float32",
        crs="EPSG:4326",
        transform=from_bounds(*AOI_BOUNDS, 2, 2),
    ) as dst:
        dst.write(np.zeros((2, 2), dtype="float32"), 1)
    assert GeoTiffDataset(tmp_path).list_distinct_timestamps(POI) == [_ms(2019)]


def test_fetch_mosaic_later_tile_wins(tmp_path: Path) -> None:
    _tile(tmp_path / "tile_a.tif", 2021, 1, 3)
    _tile(tmp_path / "tile_b.tif", 2021, 0.5, 8, bounds=(77.685, 13.01, 77.70, 13.03), size=(20, 15))

    pair = GeoTiffDataset(tmp_path).fetch_mosaic(_ms(2021))
    assert pair.timestamp == _ms(2021)
    assert pair.height.data.shape == (20, 30)
    assert pair.height.data[5, 2] == 3
    assert pair.height.data[5, 25] == 8
    assert pair.presence.data[5, 25] == pytest.approx(0.5)


def test_fetch_mosaic_unknown_timestamp(tmp_path: Path) -> None:
    _tile(tmp_path / "a.tif", 2021, 1, 3)
    with pytest.raises(QueryError):
        GeoTiffDataset(tmp_path).fetch_mosaic(_ms(1999))


def test_missing_directory() -> None:
    with pytest.raises(FileNotFoundError):
        GeoTiffDataset(Path("/nonexistent/building/tiles"))


def test_exporter_writes_geotiff(tmp_path: Path) -> None:
    src = tmp_path / "src"
    src.mkdir()
    _tile(src / "a.tif", 2023, 1, 6)
    pair = GeoTiffDataset(src).fetch_mosaic(_ms(2023))
    job = ExportJob(
        image=pair.height.clip(POI),
        description="Building_Height_2023",
        file_name_prefix="building_height_2023",
        region=POI,
    )
    out = GeoTiffExporter(tmp_path / "exports").submit(job)
    assert out == tmp_path / "exports" / "GEE_Exports" / "building_height_2023.tif"
    with rio.open(out) as ds:
        assert ds.crs.to_epsg() == 4326
        data = ds.read(1)
    assert np.nanmax(data) == 6


def test_exporter_reprojects_to_job_crs(tmp_path: Path) -> None:
    src = tmp_path / "src"
    src.mkdir()
    _tile(src / "a.tif", 2023, 1, 6)
    pair = GeoTiffDataset(src).fetch_mosaic(_ms(2023))
    job = ExportJob(
        image=pair.presence,
        description="building_presence_2023",
        file_name_prefix="building_presence_2023",
        region=POI,
        crs="EPSG:32643",
    )
    out = GeoTiffExporter(tmp_path).submit(job)
    with rio.open(out) as ds:
        assert ds.crs.to_epsg() == 32643


def test_exporter_enforces_pixel_budget(tmp_path: Path) -> None:
    src = tmp_path / "src"
    src.mkdir()
    _tile(src / "a.tif", 2023, 1, 6)
    pair = GeoTiffDataset(src).fetch_mosaic(_ms(2023))
    job = ExportJob(
        image=pair.height,
        description="Building_Height_2023",
        file_name_prefix="building_height_2023",
        region=POI,
        max_pixels=10,
    )
    with pytest.raises(ExportSubmissionError):
        GeoTiffExporter(tmp_path).submit(job)
    assert not (tmp_path / "GEE_Exports").exists()
