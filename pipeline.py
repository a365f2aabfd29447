"""
Pure data-shaping steps shared by the history and analytics pages.

Order of application is always filter → group / merge → paginate → totals;
nothing downstream of ``filter_by_date_range`` ever sees unfiltered data.
"""
from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Any, Dict, List, Optional, Sequence, Tuple, TypeVar, Union
from zoneinfo import ZoneInfo

from config import PAGE_SIZE_OPTIONS, UNKNOWN_SESSION
from errors import InvalidPaginationError
from records import DetectionRequest

T = TypeVar("T")
Bound = Union[date, datetime, None]

UTC = ZoneInfo("UTC")


def _normalize_datetime(dt: datetime, tz: ZoneInfo) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=tz)
    return dt.astimezone(tz)


def _normalize_bound(bound: Bound, tz: ZoneInfo, end: bool = False) -> Optional[datetime]:
    """
    A bare ``date`` covers the whole calendar day in ``tz``; datetimes are
    compared as given (naive ones read in ``tz``).
    """
    if bound is None:
        return None
    if not isinstance(bound, datetime):
        bound = datetime.combine(bound, time.max if end else time.min)
    return _normalize_datetime(bound, tz)


def filter_by_date_range(
    requests: Sequence[DetectionRequest],
    start: Bound = None,
    end: Bound = None,
    tz: ZoneInfo = UTC,
) -> Sequence[DetectionRequest]:
    if start is None and end is None:
        return requests

    window_start = _normalize_bound(start, tz)
    window_end = _normalize_bound(end, tz, end=True)

    def _inside(request: DetectionRequest) -> bool:
        created = request.created
        if window_start is not None and created < window_start:
            return False
        if window_end is not None and created > window_end:
            return False
        return True

    return [request for request in requests if _inside(request)]


def day_key(request: DetectionRequest, tz: ZoneInfo = UTC) -> str:
    return request.created.astimezone(tz).strftime("%Y-%m-%d")


def group_by_day(
    requests: Sequence[DetectionRequest], tz: ZoneInfo = UTC
) -> Dict[str, List[DetectionRequest]]:
    groups: Dict[str, List[DetectionRequest]] = defaultdict(list)
    for request in requests:
        groups[day_key(request, tz)].append(request)
    return dict(groups)


def group_by_session(requests: Sequence[DetectionRequest]) -> Dict[str, List[DetectionRequest]]:
    groups: Dict[str, List[DetectionRequest]] = defaultdict(list)
    for request in requests:
        groups[request.session_id or UNKNOWN_SESSION].append(request)
    return dict(groups)


def select_session(
    requests: Sequence[DetectionRequest], session_id: Optional[str]
) -> Sequence[DetectionRequest]:
    """Narrow what gets rendered to one session; ``None`` keeps everything."""
    if session_id is None:
        return requests
    return [r for r in requests if (r.session_id or UNKNOWN_SESSION) == session_id]


def detection_totals(requests: Sequence[DetectionRequest]) -> Tuple[int, int]:
    apples = sum(request.apple_count for request in requests)
    trees = sum(request.tree_count for request in requests)
    return apples, trees


@dataclass
class ChartRow:
    file_name: str
    apples: int
    trees: int
    apples_comparison: Optional[int] = None
    trees_comparison: Optional[int] = None

    def as_dict(self, compare: bool = True) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "fileName": self.file_name,
            "apples": self.apples,
            "trees": self.trees,
        }
        if compare:
            data["applesComparison"] = self.apples_comparison or 0
            data["treesComparison"] = self.trees_comparison or 0
        return data


def merge_comparison(
    primary: Sequence[DetectionRequest],
    comparison: Optional[Sequence[DetectionRequest]] = None,
) -> List[ChartRow]:
    """
    Build one chart row per primary request, then overlay the comparison set
    by ``fileName``.

    ``comparison=None`` means comparison mode is off and the comparison fields
    stay ``None``. Primary requests sharing a ``fileName`` keep separate rows.
    Only the first comparison request per name counts: it fills the
    comparison fields of every row with that name, or appends a row with zero
    primary counts. Later requests with the same name are ignored.
    """
    compare = comparison is not None
    rows = [
        ChartRow(
            file_name=request.file_name,
            apples=request.apple_count,
            trees=request.tree_count,
            apples_comparison=0 if compare else None,
            trees_comparison=0 if compare else None,
        )
        for request in primary
    ]
    if not compare:
        return rows

    index: Dict[str, List[ChartRow]] = defaultdict(list)
    for row in rows:
        index[row.file_name].append(row)

    # input is newest first
    seen = set()
    for request in comparison:
        if request.file_name in seen:
            continue
        seen.add(request.file_name)
        matches = index.get(request.file_name)
        if matches:
            for row in matches:
                row.apples_comparison = request.apple_count
                row.trees_comparison = request.tree_count
            continue
        rows.append(ChartRow(
            file_name=request.file_name,
            apples=0,
            trees=0,
            apples_comparison=request.apple_count,
            trees_comparison=request.tree_count,
        ))

    return rows


@dataclass(frozen=True)
class ChartTotals:
    apples: int
    trees: int
    apples_comparison: Optional[int] = None
    trees_comparison: Optional[int] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "apples": self.apples,
            "trees": self.trees,
            "applesComparison": self.apples_comparison,
            "treesComparison": self.trees_comparison,
        }


def chart_totals(rows: Sequence[ChartRow], compare: bool) -> ChartTotals:
    return ChartTotals(
        apples=sum(row.apples for row in rows),
        trees=sum(row.trees for row in rows),
        apples_comparison=sum(row.apples_comparison or 0 for row in rows) if compare else None,
        trees_comparison=sum(row.trees_comparison or 0 for row in rows) if compare else None,
    )


@dataclass(frozen=True)
class TimeframeSummary:
    total_apples: int
    total_trees: int

    @property
    def avg_apples_per_tree(self) -> str:
        if self.total_trees <= 0:
            return "0.00"
        return f"{self.total_apples / self.total_trees:.2f}"

    def as_dict(self) -> Dict[str, Any]:
        return {
            "totalApples": self.total_apples,
            "totalTrees": self.total_trees,
            "avgApplesPerTree": self.avg_apples_per_tree,
        }


def timeframe_summary(requests: Sequence[DetectionRequest]) -> TimeframeSummary:
    apples, trees = detection_totals(requests)
    return TimeframeSummary(total_apples=apples, total_trees=trees)


def validate_pagination(page: int, page_size: int) -> None:
    if page < 1:
        raise InvalidPaginationError("page must be >= 1", {"page": page})
    if page_size not in PAGE_SIZE_OPTIONS:
        raise InvalidPaginationError(
            f"page_size must be one of {list(PAGE_SIZE_OPTIONS)}", {"page_size": page_size}
        )


def paginate(rows: Sequence[T], page: int, page_size: int) -> List[T]:
    if page < 1 or page_size < 1:
        raise InvalidPaginationError(
            "page and page_size must be positive", {"page": page, "page_size": page_size}
        )
    start = (page - 1) * page_size
    return list(rows[start:start + page_size])


@dataclass(frozen=True)
class PageControls:
    page: int
    page_size: int
    total: int

    @property
    def has_previous(self) -> bool:
        return self.page > 1

    @property
    def has_next(self) -> bool:
        return self.page * self.page_size < self.total

    @property
    def page_count(self) -> int:
        return max(1, -(-self.total // self.page_size))

    def as_dict(self) -> Dict[str, Any]:
        return {
            "page": self.page,
            "pageSize": self.page_size,
            "total": self.total,
            "pageCount": self.page_count,
            "hasPrevious": self.has_previous,
            "hasNext": self.has_next,
        }


def page_controls(page: int, page_size: int, total: int) -> PageControls:
    return PageControls(page=page, page_size=page_size, total=total)
