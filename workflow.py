"""Render recent building epochs for a region and export the latest one.

Configuration comes from an optional YAML file; every key has a default so an
empty config reproduces the standard Bengaluru run against Earth Engine.
"""

from __future__ import annotations

import argparse
import sys
import webbrowser
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from rich.console import Console

import ee_backend
from errors import WorkflowError
from exporter import (
    EXPORT_CRS,
    EXPORT_FOLDER,
    EXPORT_MAX_PIXELS,
    EXPORT_SCALE,
    export_latest,
)
from geotiff_backend import GeoTiffDataset, GeoTiffExporter
from legend import HEIGHT_PALETTE, LEGEND_LABELS, build_legend, labels_from_breakpoints
from map_view import DEFAULT_ZOOM, MapView, render_layers, save_map
from region import Region, region_from_config
from timesteps import resolve_recent_timestamps, year_of

console = Console()


@dataclass
class WorkflowResult:
    region: Region
    timestamps: List[int]
    view: MapView
    jobs: List[Any] = field(default_factory=list)
    map_path: Optional[Path] = None


# ---------------------------------------------------------------------------
# Utility helpers
# ---------------------------------------------------------------------------


def load_config(path: Path) -> Dict[str, Any]:
    """Load YAML configuration."""
    with open(path, "r") as f:
        return yaml.safe_load(f) or {}


def make_backend(cfg: Dict[str, Any]):
    """Return ``(dataset, exporter)`` for the ``backend`` config section."""
    kind = cfg.get("type", "earthengine")
    if kind == "earthengine":
        ee_backend.initialize(cfg.get("project"))
        dataset = ee_backend.EarthEngineDataset(
            cfg.get("collection", ee_backend.OPEN_BUILDINGS_TEMPORAL)
        )
        return dataset, ee_backend.EarthEngineExporter()
    if kind == "geotiff":
        directory = cfg.get("directory")
        if not directory:
            raise ValueError("backend.directory is required for the geotiff backend")
        return GeoTiffDataset(Path(directory)), GeoTiffExporter(Path(cfg.get("out_dir", ".")))
    raise ValueError(f"unknown backend type {kind!r}")


def legend_labels(setting: Any) -> List[str]:
    if setting is None or setting == "authored":
        return list(LEGEND_LABELS)
    if setting == "breakpoints":
        return labels_from_breakpoints(HEIGHT_PALETTE.breakpoints)
    if isinstance(setting, (list, tuple)):
        return [str(s) for s in setting]
    raise ValueError(f"unknown legend labels setting {setting!r}")


# ---------------------------------------------------------------------------
# Workflow steps
# ---------------------------------------------------------------------------


def step_resolve(dataset, region: Region, count: int) -> List[int]:
    console.rule("[bold green]Resolve recent timestamps")
    timestamps = resolve_recent_timestamps(dataset, region, count)
    if timestamps:
        years = ", ".join(str(year_of(t)) for t in timestamps)
        console.log(f"Found {len(timestamps)} epoch(s): {years}")
    else:
        console.log("[yellow]No building data intersects the region")
    return timestamps


def step_render(cfg: Dict[str, Any], view: MapView, dataset, timestamps: List[int]) -> None:
    console.rule("[bold green]Render building layers")
    render_layers(
        view,
        dataset,
        timestamps,
        HEIGHT_PALETTE,
        presence_threshold=cfg.get("presence_threshold"),
    )


def step_legend(cfg: Dict[str, Any], view: MapView) -> None:
    if not cfg.get("enabled", True):
        return
    labels = legend_labels(cfg.get("labels"))
    view.add_legend(build_legend(HEIGHT_PALETTE, labels))
    console.log("[cyan]Added height legend")


def step_export(
    cfg: Dict[str, Any],
    dataset,
    exporter,
    timestamps: List[int],
    region: Region,
    presence_threshold: Optional[float],
) -> List[Any]:
    if not cfg.get("enabled", True):
        console.log("[yellow]Export disabled")
        return []
    console.rule("[bold green]Export latest rasters")
    return export_latest(
        dataset,
        exporter,
        timestamps,
        region,
        folder=cfg.get("folder", EXPORT_FOLDER),
        scale=cfg.get("scale", EXPORT_SCALE),
        crs=cfg.get("crs", EXPORT_CRS),
        max_pixels=float(cfg.get("max_pixels", EXPORT_MAX_PIXELS)),
        presence_threshold=presence_threshold,
    )


# ---------------------------------------------------------------------------
# Main entry point
# ---------------------------------------------------------------------------


def run_workflow(
    config: Dict[str, Any],
    *,
    dataset=None,
    exporter=None,
) -> WorkflowResult:
    """Run the whole workflow; any stage failure propagates and stops later stages."""
    region = region_from_config(config.get("region"))
    if dataset is None or exporter is None:
        backend_cfg = dict(config.get("backend", {}))
        backend_cfg.setdefault("out_dir", config.get("export", {}).get("out_dir", "exports"))
        dataset, exporter = make_backend(backend_cfg)

    view = MapView()
    timestamps = step_resolve(dataset, region, int(config.get("count", 5)))
    result = WorkflowResult(region=region, timestamps=timestamps, view=view)

    threshold = config.get("presence_threshold")
    if timestamps:
        step_render({"presence_threshold": threshold}, view, dataset, timestamps)

    view.center_on(region, int(config.get("zoom", DEFAULT_ZOOM)))
    step_legend(config.get("legend", {}), view)

    if timestamps:
        result.jobs = step_export(
            config.get("export", {}), dataset, exporter, timestamps, region, threshold
        )
    else:
        console.log("[yellow]Skipping export: nothing to export")

    out_html = config.get("out_html")
    if out_html:
        result.map_path = save_map(view, Path(out_html))
        if config.get("open_browser", False):
            webbrowser.open(result.map_path.resolve().as_uri())
    return result


def main(argv=None) -> int:
    ap = argparse.ArgumentParser(description="Map recent building epochs and export the latest")
    ap.add_argument("config", nargs="?", help="Path to YAML config file")
    ap.add_argument("--backend", choices=["earthengine", "geotiff"], help="Override backend type")
    ap.add_argument("--data-dir", help="Tile directory for the geotiff backend")
    ap.add_argument("--project", help="Earth Engine cloud project")
    ap.add_argument("--no-export", action="store_true", help="Only render the map")
    ap.add_argument("-o", "--output", help="HTML output file")
    ap.add_argument("--open", action="store_true", help="Open the map in a browser")
    args = ap.parse_args(argv)

    cfg = load_config(Path(args.config)) if args.config else {}
    backend = cfg.setdefault("backend", {})
    if args.backend:
        backend["type"] = args.backend
    if args.data_dir:
        backend["directory"] = args.data_dir
    if args.project:
        backend["project"] = args.project
    if args.no_export:
        cfg.setdefault("export", {})["enabled"] = False
    if args.output:
        cfg["out_html"] = args.output
    cfg.setdefault("out_html", "building_layers.html")
    if args.open:
        cfg["open_browser"] = True

    try:
        result = run_workflow(cfg)
    except (WorkflowError, ValueError, FileNotFoundError) as exc:
        console.print(f"[bold red]Workflow failed: {exc}")
        return 1
    console.print(
        f"[bold cyan]{len(result.view.layers)} layer(s) rendered, "
        f"{len(result.jobs)} export job(s) submitted"
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
