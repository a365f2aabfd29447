from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Dict, List, Optional, Sequence

from zoneinfo import ZoneInfo

from charts import ChartKind
from pipeline import (
    Bound,
    ChartRow,
    ChartTotals,
    PageControls,
    TimeframeSummary,
    UTC,
    chart_totals,
    filter_by_date_range,
    merge_comparison,
    page_controls,
    paginate,
    timeframe_summary,
    validate_pagination,
)
from records import DetectionRequest


@dataclass(frozen=True)
class AnalyticsFilters:
    """
    Every control on the analytics page.

    The comparison range only takes effect while ``compare`` is on.
    """

    start: Bound = None
    end: Bound = None
    compare: bool = False
    comparison_start: Bound = None
    comparison_end: Bound = None
    page: int = 1
    page_size: int = 10
    chart_kind: ChartKind = ChartKind.BAR

    def with_page_size(self, page_size: int) -> "AnalyticsFilters":
        return replace(self, page_size=page_size, page=1)

    def with_page(self, page: int) -> "AnalyticsFilters":
        return replace(self, page=page)


@dataclass(frozen=True)
class AnalyticsView:
    rows: List[ChartRow]
    total_rows: int
    controls: PageControls
    totals: ChartTotals
    summary: TimeframeSummary
    compare: bool
    chart_kind: ChartKind

    @property
    def title(self) -> str:
        if self.compare:
            return f"Comparing {self.chart_kind.value} for Selected Time Frames"
        return f"Showing {self.chart_kind.value} for Selected Time Frame"

    def as_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "chartType": self.chart_kind.value,
            "compare": self.compare,
            "rows": [row.as_dict(self.compare) for row in self.rows],
            "pagination": self.controls.as_dict(),
            "currentChartTotals": self.totals.as_dict(),
            "timeframe": self.summary.as_dict(),
        }


def build_analytics_view(
    requests: Sequence[DetectionRequest],
    filters: AnalyticsFilters,
    tz: ZoneInfo = UTC,
) -> AnalyticsView:
    validate_pagination(filters.page, filters.page_size)

    primary = filter_by_date_range(requests, filters.start, filters.end, tz)
    comparison: Optional[Sequence[DetectionRequest]] = None
    if filters.compare:
        comparison = filter_by_date_range(
            requests, filters.comparison_start, filters.comparison_end, tz
        )

    merged = merge_comparison(primary, comparison)
    rows = paginate(merged, filters.page, filters.page_size)

    return AnalyticsView(
        rows=rows,
        total_rows=len(merged),
        controls=page_controls(filters.page, filters.page_size, len(merged)),
        totals=chart_totals(rows, filters.compare),
        summary=timeframe_summary(primary),
        compare=filters.compare,
        chart_kind=filters.chart_kind,
    )
