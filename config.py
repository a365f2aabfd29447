# config.py

import logging
import os
from dataclasses import dataclass
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv

load_dotenv()

DELETE_ALL_CONFIRMATION = "DELETE-ALL-HISTORY"
UNKNOWN_SESSION = "Unknown Session"
PAGE_SIZE_OPTIONS = (5, 10, 20, 50, 100)
DEFAULT_PAGE_SIZE = 10

logger = logging.getLogger(__name__)


def _coerce_timezone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo("UTC")


def _coerce_page_size(value: str) -> int:
    try:
        page_size = int(value)
    except ValueError:
        page_size = None
    if page_size not in PAGE_SIZE_OPTIONS:
        logger.warning(
            f"DASHBOARD_PAGE_SIZE={value!r} is not one of {list(PAGE_SIZE_OPTIONS)}, "
            f"using {DEFAULT_PAGE_SIZE}"
        )
        return DEFAULT_PAGE_SIZE
    return page_size


@dataclass(frozen=True)
class DashboardConfig:
    """
    Runtime knobs for the history and analytics pages.

    ``timezone`` decides which calendar day a detection request belongs to
    when grouping by day and how naive date-picker bounds are read.
    """

    timezone: str = "UTC"
    page_size: int = DEFAULT_PAGE_SIZE
    max_retries: int = 3
    retry_delay_ms: int = 1000
    files_root: str = "uploads/root"

    @classmethod
    def from_env(cls) -> "DashboardConfig":
        return cls(
            timezone=os.getenv("DASHBOARD_TIMEZONE", "UTC"),
            page_size=_coerce_page_size(os.getenv("DASHBOARD_PAGE_SIZE", str(DEFAULT_PAGE_SIZE))),
            max_retries=int(os.getenv("DASHBOARD_MAX_RETRIES", "3")),
            retry_delay_ms=int(os.getenv("DASHBOARD_RETRY_DELAY_MS", "1000")),
            files_root=os.getenv("DASHBOARD_FILES_ROOT", "uploads/root"),
        )

    @property
    def zone(self) -> ZoneInfo:
        return _coerce_timezone(self.timezone)


settings = DashboardConfig.from_env()
