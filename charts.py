"""
Chart figures for the analytics page.

Every chart kind consumes the same list of ``ChartRow`` values, so switching
the chart never touches the filtering / merge / pagination pipeline. Figures
are Plotly objects; the browser renders their JSON.
"""
from __future__ import annotations

from enum import Enum
from typing import Callable, Dict, List, Sequence, Tuple

import numpy as np
import plotly.graph_objects as go

from errors import UnknownChartKindError

FORECAST_STEPS = 3

_PLOTLY_LAYOUT_BASE = dict(
    template="plotly_white",
    paper_bgcolor="rgba(0,0,0,0)",
    plot_bgcolor="rgba(0,0,0,0)",
    legend=dict(orientation="h", yanchor="bottom", y=1.02, xanchor="right", x=1),
    margin=dict(l=20, r=20, t=40, b=20),
    height=400,
)

# (label, row attribute, colour)
_PRIMARY_SERIES = (
    ("Apples (Primary)", "apples", "#8884d8"),
    ("Trees (Primary)", "trees", "#82ca9d"),
)
_COMPARISON_SERIES = (
    ("Apples (Comparison)", "apples_comparison", "#ffc658"),
    ("Trees (Comparison)", "trees_comparison", "#ff8042"),
)


class ChartKind(str, Enum):
    BAR = "Bar Chart"
    STACKED_BAR = "Stacked Bar Chart"
    LINE = "Line Chart"
    PIE = "Pie Chart"
    RADAR = "Radar Chart"
    CUMULATIVE_SUM = "Cumulative Sum Graph"
    BOX_PLOT = "Box Plot"
    SCATTER = "Scatter Plot"
    TREE_MAP = "Tree Map"
    LINE_FORECAST = "Line Chart with Forecasting"
    CONTROL = "Control Chart"

    @classmethod
    def parse(cls, value) -> "ChartKind":
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise UnknownChartKindError(str(value))


def _values(rows, attr: str) -> List[int]:
    return [getattr(row, attr) or 0 for row in rows]


def _series(rows, compare: bool) -> List[Tuple[str, List[int], str]]:
    specs = _PRIMARY_SERIES + (_COMPARISON_SERIES if compare else ())
    return [(label, _values(rows, attr), color) for label, attr, color in specs]


def _names(rows) -> List[str]:
    return [row.file_name for row in rows]


def _bar(rows, compare: bool) -> go.Figure:
    fig = go.Figure()
    for label, values, color in _series(rows, compare):
        fig.add_trace(go.Bar(x=_names(rows), y=values, name=label, marker_color=color))
    fig.update_layout(**_PLOTLY_LAYOUT_BASE, barmode="group")
    return fig


def _stacked_bar(rows, compare: bool) -> go.Figure:
    fig = go.Figure()
    names = _names(rows)
    groups = [("primary", _PRIMARY_SERIES)]
    if compare:
        groups.append(("comparison", _COMPARISON_SERIES))
    for group, specs in groups:
        base = [0] * len(rows)
        for label, attr, color in specs:
            values = _values(rows, attr)
            fig.add_trace(go.Bar(
                x=names, y=values, base=base, name=label,
                marker_color=color, offsetgroup=group,
            ))
            base = [b + v for b, v in zip(base, values)]
    fig.update_layout(**_PLOTLY_LAYOUT_BASE, barmode="group")
    return fig


def _line(rows, compare: bool) -> go.Figure:
    fig = go.Figure()
    for label, values, color in _series(rows, compare):
        fig.add_trace(go.Scatter(
            x=_names(rows), y=values, name=label, mode="lines+markers",
            line=dict(color=color, shape="spline"),
        ))
    fig.update_layout(**_PLOTLY_LAYOUT_BASE)
    return fig


def _pie(rows, compare: bool) -> go.Figure:
    series = _series(rows, compare)
    width = 1.0 / len(series)
    fig = go.Figure()
    for position, (label, values, _color) in enumerate(series):
        fig.add_trace(go.Pie(
            labels=_names(rows), values=values, name=label, title=dict(text=label),
            hole=0.5 if "Trees" in label else 0.0,
            domain=dict(x=[position * width, (position + 1) * width]),
        ))
    fig.update_layout(**_PLOTLY_LAYOUT_BASE)
    return fig


def _radar(rows, compare: bool) -> go.Figure:
    fig = go.Figure()
    for label, values, color in _series(rows, compare):
        fig.add_trace(go.Scatterpolar(
            r=values, theta=_names(rows), name=label, fill="toself",
            line_color=color, opacity=0.6,
        ))
    fig.update_layout(**_PLOTLY_LAYOUT_BASE, polar=dict(radialaxis=dict(visible=True)))
    return fig


def _cumulative_sum(rows, compare: bool) -> go.Figure:
    fig = go.Figure()
    for label, attr, color in (("Apples", "apples", "#8884d8"), ("Trees", "trees", "#82ca9d")):
        running = np.cumsum(_values(rows, attr)).tolist() if rows else []
        fig.add_trace(go.Scatter(
            x=_names(rows), y=running, name=label, mode="lines",
            fill="tozeroy", line_color=color,
        ))
    fig.update_layout(**_PLOTLY_LAYOUT_BASE)
    return fig


def _box_plot(rows, compare: bool) -> go.Figure:
    fig = go.Figure()
    for label, values, color in _series(rows, compare):
        fig.add_trace(go.Box(y=values, name=label, marker_color=color, boxmean=True))
    fig.update_layout(**_PLOTLY_LAYOUT_BASE)
    return fig


def _scatter(rows, compare: bool) -> go.Figure:
    fig = go.Figure()
    fig.add_trace(go.Scatter(
        x=_values(rows, "trees"), y=_values(rows, "apples"), text=_names(rows),
        mode="markers", name="Tree vs. Apple Correlation", marker_color="#8884d8",
    ))
    fig.update_layout(
        **_PLOTLY_LAYOUT_BASE,
        xaxis=dict(title=dict(text="Trees")),
        yaxis=dict(title=dict(text="Apples")),
    )
    return fig


def _tree_map(rows, compare: bool) -> go.Figure:
    fig = go.Figure(go.Treemap(
        ids=[f"{index}:{row.file_name}" for index, row in enumerate(rows)],
        labels=_names(rows),
        parents=[""] * len(rows),
        values=_values(rows, "apples"),
        marker=dict(line=dict(color="#fff", width=1)),
    ))
    fig.update_layout(**_PLOTLY_LAYOUT_BASE)
    return fig


def linear_forecast(values: Sequence[float], steps: int = FORECAST_STEPS) -> List[float]:
    """Least-squares linear trend extended ``steps`` points past the data."""
    if not values:
        return []
    if len(values) == 1:
        return [float(values[0])] * steps
    x = np.arange(len(values))
    slope, intercept = np.polyfit(x, np.asarray(values, dtype=float), 1)
    future = np.arange(len(values), len(values) + steps)
    return (slope * future + intercept).tolist()


def _line_forecast(rows, compare: bool) -> go.Figure:
    fig = go.Figure()
    positions = list(range(len(rows)))
    future = list(range(len(rows), len(rows) + FORECAST_STEPS)) if rows else []
    for label, values, color in _series(rows, compare):
        fig.add_trace(go.Scatter(
            x=positions, y=values, name=label, mode="lines+markers", line_color=color,
        ))
        forecast = linear_forecast(values)
        if forecast:
            fig.add_trace(go.Scatter(
                x=positions[-1:] + future, y=values[-1:] + forecast,
                name=f"{label} Forecast", mode="lines",
                line=dict(color=color, dash="dash"),
            ))
    fig.update_layout(
        **_PLOTLY_LAYOUT_BASE,
        xaxis=dict(
            tickmode="array",
            tickvals=positions + future,
            ticktext=_names(rows) + [f"Forecast +{step}" for step in range(1, len(future) + 1)],
        ),
    )
    return fig


def control_limits(values: Sequence[float], sigmas: float = 3.0) -> Tuple[float, float, float]:
    """(mean, upper, lower) with the lower limit floored at zero."""
    if not values:
        return 0.0, 0.0, 0.0
    data = np.asarray(values, dtype=float)
    mean = float(data.mean())
    spread = sigmas * float(data.std())
    return mean, mean + spread, max(0.0, mean - spread)


def _control(rows, compare: bool) -> go.Figure:
    fig = _line(rows, compare)
    names = _names(rows)
    _, upper, lower = control_limits(_values(rows, "apples"))
    fig.add_trace(go.Scatter(
        x=names, y=[upper] * len(rows), name="Upper Control Limit",
        mode="lines", line=dict(color="red", dash="dot"),
    ))
    fig.add_trace(go.Scatter(
        x=names, y=[lower] * len(rows), name="Lower Control Limit",
        mode="lines", line=dict(color="green", dash="dot"),
    ))
    return fig


_BUILDERS: Dict[ChartKind, Callable[..., go.Figure]] = {
    ChartKind.BAR: _bar,
    ChartKind.STACKED_BAR: _stacked_bar,
    ChartKind.LINE: _line,
    ChartKind.PIE: _pie,
    ChartKind.RADAR: _radar,
    ChartKind.CUMULATIVE_SUM: _cumulative_sum,
    ChartKind.BOX_PLOT: _box_plot,
    ChartKind.SCATTER: _scatter,
    ChartKind.TREE_MAP: _tree_map,
    ChartKind.LINE_FORECAST: _line_forecast,
    ChartKind.CONTROL: _control,
}


def build_figure(kind, rows, compare: bool = False, title: str | None = None) -> go.Figure:
    chart_kind = ChartKind.parse(kind)
    fig = _BUILDERS[chart_kind](list(rows), compare)
    if title:
        fig.update_layout(title=dict(text=title))
    return fig
