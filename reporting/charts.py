"""
Chart rasterizer for sales reports
Renders bar, line and pie charts to PNG files issued by the run's temp arena
"""

import os
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

from config.settings import SETTINGS
from data.models import (
    ChartKind,
    ChartSpec,
    RasterArtifact,
    RenderResult,
    SkippedNoData,
    SkippedNoRasterBackend,
    SkippedRenderFailure,
)
from storage.temp_arena import TempArena

logger = logging.getLogger(__name__)

PALETTE = [
    '#3498db', '#e74c3c', '#2ecc71', '#f39c12', '#9b59b6',
    '#1abc9c', '#34495e', '#e67e22', '#95a5a6', '#d35400',
]


def palette_color(index: int) -> str:
    return PALETTE[index % len(PALETTE)]


@dataclass(frozen=True)
class PieSlice:
    label: str
    value: float
    start_angle: float
    extent: float
    color: str


def cap_dataset(spec: ChartSpec) -> Dict[str, float]:
    """Apply the chart's entry limit.

    Bar and pie charts keep the largest `category_cap` values; line charts keep
    the first `max_points` entries in their given order.
    """
    items = [(str(k), float(v)) for k, v in spec.dataset.items()]
    if spec.kind == ChartKind.LINE:
        return dict(items[:spec.max_points])
    if len(items) > spec.category_cap:
        items = sorted(items, key=lambda kv: kv[1], reverse=True)[:spec.category_cap]
    return dict(items)


def pie_slices(dataset: Dict[str, float]) -> List[PieSlice]:
    """Angular layout of a pie; empty when the values sum to zero"""
    total = sum(float(v) for v in dataset.values())
    if total <= 0:
        return []
    slices = []
    start = 0.0
    for i, (label, value) in enumerate(dataset.items()):
        extent = float(value) / total * 360.0
        slices.append(PieSlice(label=label, value=float(value), start_angle=start, extent=extent,
                               color=palette_color(i)))
        start += extent
    return slices


class ChartRasterizer:
    """Draws charts with matplotlib (Agg backend) into temp arena files"""

    def __init__(self, arena: TempArena, font_path: Optional[str] = None, dpi: Optional[int] = None):
        self.arena = arena
        self.font_path = font_path
        self.dpi = dpi or SETTINGS['chart_dpi']
        self.font_fallback = False
        self._plt = None
        self._font = None

    def render(self, spec: ChartSpec) -> RenderResult:
        """
        Render one chart.

        Returns:
            RasterArtifact on success; SkippedNoData, SkippedNoRasterBackend or
            SkippedRenderFailure otherwise. Never raises for rendering problems.
        """
        if not spec.dataset:
            logger.info(f"Chart '{spec.title}' skipped: empty dataset")
            return SkippedNoData(f"{spec.title}: empty dataset")

        data = cap_dataset(spec)
        slices = None
        if spec.kind == ChartKind.PIE:
            slices = pie_slices(data)
            if not slices:
                logger.info(f"Chart '{spec.title}' skipped: values sum to zero")
                return SkippedNoData(f"{spec.title}: values sum to zero")

        try:
            plt = self._backend()
        except ImportError as e:
            logger.warning(f"Chart '{spec.title}' skipped: raster backend unavailable ({e})")
            return SkippedNoRasterBackend(str(e))

        path = self.arena.issue(prefix=f"chart_{spec.kind.value}_", suffix=f".{SETTINGS['chart_format']}")
        fig = None
        try:
            fig, ax = plt.subplots(figsize=(spec.width / self.dpi, spec.height / self.dpi), dpi=self.dpi)
            font = self._font_properties()
            if spec.kind == ChartKind.PIE:
                self._draw_pie(ax, slices, font)
            elif spec.kind == ChartKind.LINE:
                self._draw_line(ax, data, font)
            else:
                self._draw_bar(ax, data, font)
            ax.set_title(spec.title, fontproperties=font, fontsize=12, fontweight='bold')
            if spec.x_label:
                ax.set_xlabel(spec.x_label, fontproperties=font)
            if spec.y_label:
                ax.set_ylabel(spec.y_label, fontproperties=font)
            fig.tight_layout()
            fig.savefig(str(path), dpi=self.dpi, format=SETTINGS['chart_format'])
        except Exception as e:
            logger.error(f"Error creating chart '{spec.title}': {e}")
            return SkippedRenderFailure(f"{spec.title}: {e}")
        finally:
            if fig is not None:
                plt.close(fig)

        logger.info(f"Rendered {spec.kind.value} chart '{spec.title}' ({len(data)} entries) to {path.name}")
        return RasterArtifact(path=path, format=SETTINGS['chart_format'])

    def _backend(self):
        if self._plt is None:
            import matplotlib
            matplotlib.use('Agg')  # Use non-interactive backend
            import matplotlib.pyplot as plt
            self._plt = plt
        return self._plt

    def _font_properties(self):
        """Embedded font when present, matplotlib's bundled default otherwise"""
        if self._font is not None:
            return self._font
        from matplotlib import font_manager

        if self.font_path and os.path.isfile(self.font_path):
            try:
                font_manager.fontManager.addfont(self.font_path)
                self._font = font_manager.FontProperties(fname=self.font_path)
                return self._font
            except (OSError, RuntimeError, ValueError) as e:
                logger.warning(f"Font {self.font_path} unreadable ({e}); using default font")
        else:
            logger.info(f"Font not found at {self.font_path}; using default font")
        self.font_fallback = True
        self._font = font_manager.FontProperties()
        return self._font

    @staticmethod
    def _scale_y(ax, values: List[float]):
        from matplotlib.ticker import FuncFormatter

        top = max(values) if values else 0
        ax.set_ylim(0, top * 1.15 if top > 0 else 1)
        ax.yaxis.set_major_formatter(FuncFormatter(lambda v, _: f"{v:,.0f}"))
        ax.grid(True, axis='y', alpha=0.3)

    def _draw_bar(self, ax, data: Dict[str, float], font):
        labels = list(data.keys())
        values = list(data.values())
        positions = range(len(labels))
        bars = ax.bar(positions, values, color=[palette_color(i) for i in positions])
        ax.set_xticks(list(positions))
        ax.set_xticklabels(labels, rotation=45, ha='right', fontproperties=font, fontsize=8)
        self._scale_y(ax, values)

        # Value labels on bars
        for bar, value in zip(bars, values):
            ax.text(bar.get_x() + bar.get_width() / 2., bar.get_height(),
                    f"{value:,.0f}", ha='center', va='bottom', fontsize=7, fontproperties=font)

    def _draw_line(self, ax, data: Dict[str, float], font):
        labels = list(data.keys())
        values = list(data.values())
        positions = list(range(len(labels)))
        ax.plot(positions, values, marker='o', markersize=3, color=palette_color(0), linewidth=1.5)

        # Thin out tick labels on long series
        step = max(1, len(labels) // 10)
        ax.set_xticks(positions[::step])
        ax.set_xticklabels(labels[::step], rotation=45, ha='right', fontproperties=font, fontsize=8)
        self._scale_y(ax, values)

    def _draw_pie(self, ax, slices: List[PieSlice], font):
        wedges, _ = ax.pie(
            [s.value for s in slices],
            colors=[s.color for s in slices],
            startangle=90,
            counterclock=False,
            wedgeprops={'linewidth': 0.5, 'edgecolor': 'white'},
        )
        legend_labels = [f"{s.label} ({s.extent / 360.0 * 100:.1f}%)" for s in slices]
        ax.legend(wedges, legend_labels, loc='center left', bbox_to_anchor=(1.0, 0.5),
                  prop=font, fontsize=8)
        ax.axis('equal')
