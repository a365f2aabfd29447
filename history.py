"""
History page state: a live query with bounded retry, date/session filtering,
day and session groupings, running totals and deletes.

The subscription lifecycle is an explicit state machine::

    idle -> subscribing -> active
    subscribing | active --error--> backoff --timer--> subscribing
    third failed retry -> failed (terminal until refresh)

At most one subscription handle is alive at any moment; every re-subscribe
releases the previous handle and cancels a pending backoff timer first.
"""
from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Sequence
from zoneinfo import ZoneInfo

from config import DELETE_ALL_CONFIRMATION, DashboardConfig, settings
from errors import ConfirmationMismatchError, NotAuthenticatedError
from feed import RequestFeed, Unsubscribe
from pipeline import (
    Bound,
    UTC,
    detection_totals,
    filter_by_date_range,
    group_by_day,
    group_by_session,
    select_session,
)
from records import DetectionRequest

logger = logging.getLogger(__name__)

Scheduler = Callable[[float, Callable[[], None]], Any]
Notifier = Callable[[str, str, str], None]


class SubscriptionState(str, Enum):
    IDLE = "idle"
    SUBSCRIBING = "subscribing"
    ACTIVE = "active"
    BACKOFF = "backoff"
    FAILED = "failed"


def thread_scheduler(delay: float, callback: Callable[[], None]) -> threading.Timer:
    timer = threading.Timer(delay, callback)
    timer.daemon = True
    timer.start()
    return timer


class _ElapsedTimer:
    """Handle for a delay that has already run; there is nothing to cancel."""

    def cancel(self) -> None:
        pass


def blocking_scheduler(delay: float, callback: Callable[[], None]) -> _ElapsedTimer:
    """Wait out ``delay`` on the calling thread, then run ``callback``.

    Used when one HTTP request owns the controller and must return a settled
    state (active or failed) instead of a pending backoff.
    """
    time.sleep(delay)
    callback()
    return _ElapsedTimer()


def log_notification(title: str, description: str, variant: str = "default") -> None:
    level = logging.ERROR if variant == "destructive" else logging.INFO
    logger.log(level, f"{title}: {description}")


def check_confirmation(confirmation: str) -> None:
    if confirmation != DELETE_ALL_CONFIRMATION:
        raise ConfirmationMismatchError()


@dataclass(frozen=True)
class HistorySnapshot:
    requests: Sequence[DetectionRequest] = ()
    by_day: Dict[str, List[DetectionRequest]] = field(default_factory=dict)
    by_session: Dict[str, List[DetectionRequest]] = field(default_factory=dict)
    total_apples: int = 0
    total_trees: int = 0

    def rendered_days(self, session_id: Optional[str], tz: ZoneInfo = UTC) -> Dict[str, List[DetectionRequest]]:
        return group_by_day(select_session(self.requests, session_id), tz)

    def rendered_sessions(self, session_id: Optional[str]) -> Dict[str, List[DetectionRequest]]:
        if session_id is None:
            return self.by_session
        return {session_id: self.by_session.get(session_id, [])}

    def as_dict(self, session_id: Optional[str] = None, tz: ZoneInfo = UTC) -> Dict[str, Any]:
        def _dump(groups: Dict[str, List[DetectionRequest]]) -> Dict[str, Any]:
            return {key: [r.as_dict(tz) for r in items] for key, items in groups.items()}

        return {
            "totalApples": self.total_apples,
            "totalTrees": self.total_trees,
            "count": len(self.requests),
            "sessions": list(self.by_session.keys()),
            "selectedSession": session_id,
            "byDay": _dump(self.rendered_days(session_id, tz)),
            "bySession": _dump(self.rendered_sessions(session_id)),
        }


def build_history(
    requests: Sequence[DetectionRequest],
    start: Bound = None,
    end: Bound = None,
    tz: ZoneInfo = UTC,
) -> HistorySnapshot:
    filtered = filter_by_date_range(requests, start, end, tz)
    apples, trees = detection_totals(filtered)
    return HistorySnapshot(
        requests=list(filtered),
        by_day=group_by_day(filtered, tz),
        by_session=group_by_session(filtered),
        total_apples=apples,
        total_trees=trees,
    )


class HistoryController:
    def __init__(
        self,
        feed: RequestFeed,
        user_id: Optional[str],
        config: DashboardConfig = settings,
        scheduler: Scheduler = thread_scheduler,
        notify: Notifier = log_notification,
    ):
        self.feed = feed
        self.user_id = user_id
        self.config = config
        self._scheduler = scheduler
        self._notify = notify
        self._lock = threading.RLock()

        self._state = SubscriptionState.IDLE
        self._handle: Optional[Unsubscribe] = None
        self._timer: Any = None
        self._generation = 0
        self._attempts = 0
        self._error: Optional[str] = None

        self._start: Bound = None
        self._end: Bound = None
        self._session: Optional[str] = None
        self._snapshot = HistorySnapshot()

        self._deleting_ids: set = set()
        self._bulk_deleting = False

    # ---- read-only state ----

    @property
    def state(self) -> SubscriptionState:
        return self._state

    @property
    def error(self) -> Optional[str]:
        return self._error

    @property
    def attempts(self) -> int:
        return self._attempts

    @property
    def snapshot(self) -> HistorySnapshot:
        return self._snapshot

    @property
    def selected_session(self) -> Optional[str]:
        return self._session

    @property
    def deleting_ids(self) -> FrozenSet[str]:
        return frozenset(self._deleting_ids)

    @property
    def bulk_deleting(self) -> bool:
        return self._bulk_deleting

    @property
    def is_subscribed(self) -> bool:
        return self._handle is not None

    # ---- lifecycle ----

    def start(self) -> None:
        if not self.user_id:
            self._notify(
                "Authentication Error",
                "Please sign in to view your AI history.",
                "destructive",
            )
            raise NotAuthenticatedError()
        self.refresh()

    def refresh(self) -> None:
        with self._lock:
            self._cancel_timer()
            self._attempts = 0
            self._error = None
            self._subscribe()

    def stop(self) -> None:
        with self._lock:
            self._cancel_timer()
            self._release()
            self._generation += 1
            self._state = SubscriptionState.IDLE

    def set_date_range(self, start: Bound = None, end: Bound = None) -> None:
        with self._lock:
            self._start, self._end = start, end
            if self._state is not SubscriptionState.IDLE:
                self.refresh()

    def select_session(self, session_id: Optional[str]) -> None:
        with self._lock:
            self._session = session_id

    def view(self) -> Dict[str, Any]:
        with self._lock:
            data = self._snapshot.as_dict(self._session, self.config.zone)
            data.update({"state": self._state.value, "error": self._error})
        return data

    # ---- subscription internals ----

    def _release(self) -> None:
        handle, self._handle = self._handle, None
        if handle is not None:
            handle()

    def _cancel_timer(self) -> None:
        timer, self._timer = self._timer, None
        if timer is not None:
            timer.cancel()

    def _subscribe(self) -> None:
        self._release()
        self._generation += 1
        generation = self._generation
        self._state = SubscriptionState.SUBSCRIBING
        logger.info(f"Fetching AI requests for user: {self.user_id}")

        handle = self.feed.subscribe(
            self.user_id,
            lambda requests: self._on_snapshot(generation, requests),
            lambda exc: self._on_error(generation, exc),
        )
        with self._lock:
            if generation != self._generation or self._state in (
                SubscriptionState.BACKOFF,
                SubscriptionState.FAILED,
            ):
                # superseded, or errored before subscribe() returned
                handle()
            else:
                self._handle = handle

    def _on_snapshot(self, generation: int, requests: List[DetectionRequest]) -> None:
        with self._lock:
            if generation != self._generation:
                return
            self._attempts = 0
            self._error = None
            self._state = SubscriptionState.ACTIVE
            self._snapshot = build_history(requests, self._start, self._end, self.config.zone)

    def _on_error(self, generation: int, exc: Exception) -> None:
        with self._lock:
            if generation != self._generation:
                return
            self._release()
            if self._attempts < self.config.max_retries:
                self._attempts += 1
                delay = self.config.retry_delay_ms * self._attempts / 1000
                logger.warning(f"Retrying... Attempt {self._attempts} in {delay:.1f}s ({exc})")
                self._state = SubscriptionState.BACKOFF
                self._timer = self._scheduler(delay, lambda: self._retry(generation))
                return

            self._state = SubscriptionState.FAILED
            self._error = f"Failed to fetch AI requests after multiple attempts: {exc}"
            logger.error(self._error)
            self._notify("Error", self._error, "destructive")

    def _retry(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation or self._state is not SubscriptionState.BACKOFF:
                return
            self._timer = None
            self._subscribe()

    # ---- mutations ----

    def delete(self, request_id: str, file_name: Optional[str] = None) -> bool:
        label = file_name or request_id
        with self._lock:
            if request_id in self._deleting_ids:
                return False
            self._deleting_ids.add(request_id)
        try:
            deleted = self.feed.delete_one(self.user_id, request_id)
        except Exception as exc:
            logger.error(f"Error deleting request {request_id}: {exc}")
            self._notify("Error", f"Failed to delete {label}. Please try again.", "destructive")
            return False
        finally:
            with self._lock:
                self._deleting_ids.discard(request_id)

        if not deleted:
            self._notify("Error", f"Failed to delete {label}. Please try again.", "destructive")
            return False
        logger.info(f"Deleted request {request_id} for user {self.user_id}")
        self._notify("Request Deleted", f"{label} has been successfully deleted.", "default")
        return True

    def delete_all(self, confirmation: str) -> int:
        """
        Delete every currently loaded (filtered) request in one batch.

        A wrong confirmation phrase is rejected before the store is touched.
        """
        try:
            check_confirmation(confirmation)
        except ConfirmationMismatchError as exc:
            self._notify("Error", exc.message, "destructive")
            raise

        with self._lock:
            if self._bulk_deleting:
                return 0
            self._bulk_deleting = True
            ids = [request.id for request in self._snapshot.requests]
        try:
            deleted = self.feed.delete_many(self.user_id, ids)
        except Exception as exc:
            logger.error(f"Error deleting all requests: {exc}")
            self._notify("Error", "Failed to delete all requests. Please try again.", "destructive")
            return 0
        finally:
            with self._lock:
                self._bulk_deleting = False

        logger.info(f"Deleted {deleted} requests for user {self.user_id}")
        self._notify("All Requests Deleted", "All AI requests have been successfully deleted.", "default")
        return deleted
