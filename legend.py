"""Height palette and the static legend panel drawn on the map."""

from __future__ import annotations

import html
from dataclasses import dataclass
from typing import NamedTuple, Sequence, Tuple

from errors import PreconditionError


@dataclass(frozen=True)
class Palette:
    """Colors for building height; index 0 is "no building"."""

    colors: Tuple[str, ...]
    breakpoints: Tuple[float, ...]
    vmin: float = 0
    vmax: float = 10

    def vis_params(self) -> dict:
        return {"min": self.vmin, "max": self.vmax, "palette": list(self.colors)}


HEIGHT_PALETTE = Palette(
    colors=("#000000", "#ffcccc", "#ff9999", "#ff6666", "#ff3333", "#cc0000"),
    breakpoints=(0, 1, 2, 4, 7, 9, 10),
)

# Labels as authored for the published map. They do not line up with
# HEIGHT_PALETTE.breakpoints ("5-7" vs 4-7); see labels_from_breakpoints.
LEGEND_LABELS = ("1-2", "2-4", "5-7", "7-9", "10+")

PRESENCE_VIS = {"max": 1}


class LegendEntry(NamedTuple):
    color: str
    label: str


@dataclass(frozen=True)
class Legend:
    title: str
    entries: Tuple[LegendEntry, ...]

    def to_html(self) -> str:
        rows = "\n".join(
            f'<div style="display:flex;align-items:center;">'
            f'<span style="background-color:{html.escape(e.color)};padding:8px;margin:0 0 4px 0;'
            f'display:inline-block;"></span>'
            f'<span style="margin:0 0 4px 6px;">{html.escape(e.label)}</span></div>'
            for e in self.entries
        )
        return f"""
<div class="building-height-legend" style="position: fixed;
     bottom: 30px; right: 10px; z-index:9999;
     background-color: white; padding: 8px 15px;">
<div style="font-weight:bold;font-size:16px;margin:0 0 4px 0;padding:0;">{html.escape(self.title)}</div>
{rows}
</div>
"""


def labels_from_breakpoints(breakpoints: Sequence[float]) -> list[str]:
    """Derive one label per non-zero band from the palette breakpoints.

    ``[0, 1, 2, 4, 7, 9, 10]`` gives ``["1-2", "2-4", "4-7", "7-9", "9+"]``:
    the bands between consecutive breakpoints starting at the second one,
    with the last band open ended.
    """
    bps = list(breakpoints)[1:-1]
    labels = [f"{_fmt(lo)}-{_fmt(hi)}" for lo, hi in zip(bps, bps[1:])]
    labels.append(f"{_fmt(bps[-1])}+")
    return labels


def _fmt(value: float) -> str:
    return f"{value:g}"


def build_legend(
    palette: Palette,
    labels: Sequence[str],
    title: str = "Building Height (meters)",
) -> Legend:
    """Pair ``palette.colors[1:]`` with ``labels`` into a legend."""
    if len(labels) != len(palette.colors) - 1:
        raise PreconditionError(
            f"legend needs {len(palette.colors) - 1} labels for "
            f"{len(palette.colors)} colors, got {len(labels)}"
        )
    entries = tuple(
        LegendEntry(palette.colors[i], labels[i - 1])
        for i in range(1, len(palette.colors))
    )
    return Legend(title=title, entries=entries)
