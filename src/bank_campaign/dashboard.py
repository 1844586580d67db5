"""
Chart catalogue and static rendering of the campaign dashboard.

Everything here consumes prepared data; nothing feeds back into the
pipeline. Colours and placeholder texts come from ``DashboardConfig``,
passed explicitly to ``Plotter`` and the page writers.
"""

from __future__ import annotations

import html
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional

import matplotlib.pyplot as plt
import pandas as pd

from bank_campaign.metrics import (
    PLACEHOLDER,
    CountWhere,
    RateWhere,
    format_count,
    format_rate,
    format_value,
)


@dataclass(frozen=True)
class Palette:
    crimson: str = "#C0392B"
    coral: str = "#E8523F"
    magenta: str = "#A0286E"
    purple: str = "#6B2FA0"
    steel: str = "#2D6FA0"
    muted: str = "#B5A898"
    subtle: str = "#EDE8DE"
    text_primary: str = "#1C1410"

    @property
    def series(self) -> tuple[str, ...]:
        # bar colours, cycled in this order
        return (self.crimson, self.magenta, self.purple, self.coral, self.steel)


@dataclass(frozen=True)
class DashboardConfig:
    palette: Palette = field(default_factory=Palette)
    title: str = "Bank marketing campaigns"
    thousands: str = "."
    placeholder: str = PLACEHOLDER
    error_message: str = "Error loading data"
    figsize: tuple[float, float] = (6.4, 3.6)


@dataclass(frozen=True)
class ChartSpec:
    name: str
    title: str
    kind: str = "bar"
    key: Optional[str] = None
    reducer: Optional[Callable[[pd.DataFrame], float]] = None
    value_label: str = ""
    x: Optional[str] = None
    y: Optional[str] = None


CHARTS = (
    ChartSpec(
        name="subscriptions_by_education",
        title="Subscriptions by education",
        key="education",
        reducer=CountWhere("subscribed"),
        value_label="subscribed clients",
    ),
    ChartSpec(
        name="conversion_by_job",
        title="Conversion rate by job",
        key="job",
        reducer=RateWhere("subscribed"),
        value_label="% subscribed",
    ),
    ChartSpec(
        name="duration_vs_campaign",
        title="Call duration vs calls this campaign",
        kind="scatter",
        x="duration",
        y="campaign",
    ),
    ChartSpec(
        name="conversion_by_poutcome",
        title="Conversion rate by previous outcome",
        key="poutcome",
        reducer=RateWhere("subscribed"),
        value_label="% subscribed",
    ),
)


def _label(category) -> str:
    return "(missing)" if pd.isna(category) else str(category)


@dataclass
class Plotter:
    config: DashboardConfig = field(default_factory=DashboardConfig)

    def plot(self, data, out_dir: Path) -> dict[str, Path]:
        """Write one PNG per chart in CHARTS; returns chart name -> path."""
        out_dir.mkdir(parents=True, exist_ok=True)
        paths: dict[str, Path] = {}
        for spec in CHARTS:
            fig, ax = plt.subplots(figsize=self.config.figsize)
            if spec.kind == "scatter":
                self._scatter(ax, data.prepared, spec)
            else:
                self._bar(ax, data.charts.get(spec.name), spec)
            ax.set_title(spec.title, color=self.config.palette.text_primary)
            fig.tight_layout()
            path = out_dir / f"{spec.name}.png"
            fig.savefig(path)
            plt.close(fig)
            paths[spec.name] = path
        return paths

    def _no_data(self, ax) -> None:
        ax.text(0.5, 0.5, "no data", ha="center", va="center",
                color=self.config.palette.muted, transform=ax.transAxes)
        ax.set_axis_off()

    def _bar(self, ax, result: pd.DataFrame | None, spec: ChartSpec) -> None:
        if result is None or result.empty:
            self._no_data(ax)
            return
        labels = [_label(c) for c in result["category"]]
        values = result["value"].astype("float64")
        series = self.config.palette.series
        colors = [series[i % len(series)] for i in range(len(labels))]
        ax.bar(labels, values, color=colors)
        ax.set_ylabel(spec.value_label)
        ax.tick_params(axis="x", labelrotation=45)

    def _scatter(self, ax, prepared: pd.DataFrame, spec: ChartSpec) -> None:
        frame = prepared.dropna(subset=[spec.x, spec.y])
        if frame.empty:
            self._no_data(ax)
            return
        palette = self.config.palette
        for flag, color, label in ((False, palette.muted, "no"), (True, palette.crimson, "yes")):
            part = frame[frame["subscribed"] == flag]
            ax.scatter(
                part[spec.x].astype("float64"),
                part[spec.y].astype("float64"),
                s=8, alpha=0.5, color=color, label=label,
            )
        ax.set_xlabel(f"{spec.x} (s)")
        ax.set_ylabel(spec.y)
        ax.legend(title="subscribed")


_PAGE = """<!DOCTYPE html>
<html lang="es">
<head>
<meta charset="utf-8">
<title>{title}</title>
<style>
body {{ font-family: sans-serif; color: {text}; background: #fff; }}
.kpis {{ display: flex; gap: 1rem; }}
.kpi {{ background: {subtle}; padding: 1rem; flex: 1; }}
.kpi__value {{ font-size: 2rem; }}
.charts {{ display: grid; grid-template-columns: 1fr 1fr; gap: 1rem; margin-top: 1rem; }}
.chart-card__canvas {{ min-height: 280px; }}
.chart-card__canvas img {{ max-width: 100%; }}
</style>
</head>
<body>
<h1>{title}</h1>
<section class="kpis">
{kpis}
</section>
<section class="charts">
{cards}
</section>
</body>
</html>
"""


def _render(config: DashboardConfig, kpis: list[tuple[str, str]], cards: list[tuple[str, str]]) -> str:
    kpi_html = "\n".join(
        f'<div class="kpi"><div class="kpi__label">{html.escape(label)}</div>'
        f'<div class="kpi__value" id="kpi-{i}">{html.escape(value)}</div></div>'
        for i, (label, value) in enumerate(kpis, start=1)
    )
    card_html = "\n".join(
        f'<div class="chart-card"><h2>{html.escape(title)}</h2>'
        f'<div class="chart-card__canvas" id="canvas-{i}">{inner}</div></div>'
        for i, (title, inner) in enumerate(cards, start=1)
    )
    p = config.palette
    return _PAGE.format(
        title=html.escape(config.title),
        text=p.text_primary,
        subtle=p.subtle,
        kpis=kpi_html,
        cards=card_html,
    )


def _kpis(summary, config: DashboardConfig) -> list[tuple[str, str]]:
    ph = config.placeholder
    if summary is None:
        return [("Clients", ph), ("Conversion rate", ph), ("Calls per client", ph), ("Previous success", ph)]
    calls = ph if summary.mean_calls is None else f"{format_value(summary.mean_calls)}x"
    return [
        ("Clients", format_count(summary.total, config.thousands)),
        ("Conversion rate", format_rate(summary.subscription_rate, ph)),
        ("Calls per client", calls),
        ("Previous success", format_rate(summary.previous_success_rate, ph)),
    ]


def write_page(path: Path, data, images: dict[str, Path], config: DashboardConfig | None = None) -> Path:
    config = config or DashboardConfig()
    path.parent.mkdir(parents=True, exist_ok=True)
    cards = []
    for spec in CHARTS:
        image = images.get(spec.name)
        if image is None:
            inner = html.escape(config.placeholder)
        else:
            src = Path(os.path.relpath(image, path.parent)).as_posix()
            inner = f'<img src="{html.escape(src)}" alt="{html.escape(spec.title)}">'
        cards.append((spec.title, inner))
    path.write_text(_render(config, _kpis(data.summary, config), cards), encoding="utf-8")
    return path


def write_error_page(path: Path, config: DashboardConfig | None = None) -> Path:
    """Same layout with the load-failure message in every chart slot."""
    config = config or DashboardConfig()
    path.parent.mkdir(parents=True, exist_ok=True)
    message = (
        f'<p class="error" style="color: {config.palette.crimson}">'
        f"{html.escape(config.error_message)}</p>"
    )
    cards = [(spec.title, message) for spec in CHARTS]
    path.write_text(_render(config, _kpis(None, config), cards), encoding="utf-8")
    return path
