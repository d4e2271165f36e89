"""Map state for the building layers and its Folium rendering."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Optional, Sequence

import folium
from rich.console import Console

from legend import HEIGHT_PALETTE, PRESENCE_VIS, Legend, Palette
from region import Region
from timesteps import BuildingDataset, year_of

DEFAULT_ZOOM = 14
ESRI_WORLD_IMAGERY = (
    "https://server.arcgisonline.com/ArcGIS/rest/services/"
    "World_Imagery/MapServer/tile/{z}/{y}/{x}"
)

console = Console()


@dataclass
class MapLayer:
    label: str
    raster: Any
    vis_params: dict
    overlay: Any = None


@dataclass
class MapView:
    """Layers, legend and view extent collected before the map is drawn.

    Layer overlays are built when the layer is added. Layers keep insertion
    order, which is also their stacking order.
    """

    layers: List[MapLayer] = field(default_factory=list)
    legend: Optional[Legend] = None
    region: Optional[Region] = None
    zoom: int = DEFAULT_ZOOM

    def add_layer(self, raster, vis_params: dict, label: str) -> MapLayer:
        """Build the overlay for ``raster`` now and append it.

        Building the overlay runs the tile query, so a failing query leaves
        the view unchanged.
        """
        overlay = raster.folium_layer(dict(vis_params), label)
        layer = MapLayer(label=label, raster=raster, vis_params=dict(vis_params), overlay=overlay)
        self.layers.append(layer)
        return layer

    def add_legend(self, legend: Legend) -> None:
        self.legend = legend

    def center_on(self, region: Region, zoom: int = DEFAULT_ZOOM) -> None:
        self.region = region
        self.zoom = zoom

    @property
    def labels(self) -> List[str]:
        return [layer.label for layer in self.layers]

    def to_folium(self) -> folium.Map:
        center = self.region.center if self.region else [0.0, 0.0]
        m = folium.Map(location=center, zoom_start=self.zoom, tiles=None)
        folium.TileLayer(
            ESRI_WORLD_IMAGERY,
            name="Esri World Imagery",
            attr="Esri",
            overlay=False,
            control=True,
        ).add_to(m)
        folium.TileLayer("OpenStreetMap", name="OpenStreetMap", overlay=False).add_to(m)

        for layer in self.layers:
            layer.overlay.add_to(m)

        if self.region is not None:
            folium.Polygon(
                locations=[[lat, lon] for lon, lat in self.region.ring],
                color="yellow",
                weight=2,
                fill=False,
                tooltip="Area of Interest",
            ).add_to(m)

        if self.legend is not None:
            m.get_root().html.add_child(folium.Element(self.legend.to_html()))

        folium.LayerControl().add_to(m)
        return m


def render_layer(
    view: MapView,
    dataset: BuildingDataset,
    timestamp: int,
    palette: Palette = HEIGHT_PALETTE,
    presence_threshold: Optional[float] = None,
) -> MapView:
    """Add the presence and masked height layers for ``timestamp`` to ``view``."""
    year = year_of(timestamp)
    pair = dataset.fetch_mosaic(timestamp)
    view.add_layer(pair.presence, PRESENCE_VIS, f"Building Presence {year}")
    view.add_layer(
        pair.masked_height(presence_threshold),
        palette.vis_params(),
        f"Building Height {year}",
    )
    console.log(f"[cyan]Added building layers for {year}")
    return view


def render_layers(
    view: MapView,
    dataset: BuildingDataset,
    timestamps: Sequence[int],
    palette: Palette = HEIGHT_PALETTE,
    presence_threshold: Optional[float] = None,
) -> MapView:
    for stamp in timestamps:
        render_layer(view, dataset, stamp, palette, presence_threshold)
    return view


def save_map(view: MapView, output: Path) -> Path:
    """Write ``view`` as a self-contained HTML map."""
    output = Path(output)
    output.parent.mkdir(parents=True, exist_ok=True)
    view.to_folium().save(output)
    console.log(f"[cyan]Saved map to {output.resolve()}")
    return output
