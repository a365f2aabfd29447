"""
Live query over a user's detection requests.

``RequestFeed.subscribe`` delivers the current snapshot straight away and a
fresh one after every delete committed through the feed, always ordered by
``createdAt`` descending and always scoped to a single owner.
"""
import itertools
import logging
import threading
from typing import Callable, Dict, Iterable, List, Tuple

from sqlalchemy.orm import Session

from db import SessionLocal
from queries import delete_request, delete_requests_batch, get_user_requests
from records import DetectionRequest, requests_from_models

logger = logging.getLogger(__name__)

SnapshotCallback = Callable[[List[DetectionRequest]], None]
ErrorCallback = Callable[[Exception], None]
Unsubscribe = Callable[[], None]


class RequestFeed:
    def __init__(self, session_factory: Callable[[], Session] = SessionLocal):
        self._session_factory = session_factory
        self._listeners: Dict[str, Dict[int, Tuple[SnapshotCallback, ErrorCallback]]] = {}
        self._tokens = itertools.count(1)
        self._lock = threading.RLock()

    def fetch(self, user_id: str) -> List[DetectionRequest]:
        """One-shot read of every request owned by ``user_id``."""
        db = self._session_factory()
        try:
            return requests_from_models(get_user_requests(db, user_id))
        finally:
            db.close()

    def subscribe(self, user_id: str, on_snapshot: SnapshotCallback,
                  on_error: ErrorCallback) -> Unsubscribe:
        token = next(self._tokens)
        with self._lock:
            self._listeners.setdefault(user_id, {})[token] = (on_snapshot, on_error)
        logger.info(f"Subscribed listener {token} for user {user_id}")

        def unsubscribe() -> None:
            with self._lock:
                listeners = self._listeners.get(user_id, {})
                if listeners.pop(token, None) is not None:
                    logger.info(f"Released listener {token} for user {user_id}")
                if not listeners:
                    self._listeners.pop(user_id, None)

        self._deliver(user_id, [(on_snapshot, on_error)])
        return unsubscribe

    def listener_count(self, user_id: str) -> int:
        with self._lock:
            return len(self._listeners.get(user_id, {}))

    def publish(self, user_id: str) -> None:
        with self._lock:
            listeners = list(self._listeners.get(user_id, {}).values())
        if listeners:
            self._deliver(user_id, listeners)

    def delete_one(self, user_id: str, request_id: str) -> bool:
        db = self._session_factory()
        try:
            deleted = delete_request(db, request_id, user_id)
        finally:
            db.close()
        if deleted:
            self.publish(user_id)
        return deleted

    def delete_many(self, user_id: str, request_ids: Iterable[str]) -> int:
        db = self._session_factory()
        try:
            deleted = delete_requests_batch(db, request_ids, user_id)
        finally:
            db.close()
        self.publish(user_id)
        return deleted

    def _deliver(self, user_id: str,
                 listeners: List[Tuple[SnapshotCallback, ErrorCallback]]) -> None:
        try:
            snapshot = self.fetch(user_id)
        except Exception as exc:
            logger.error(f"Live query for user {user_id} failed: {exc}")
            for _, on_error in listeners:
                on_error(exc)
            return
        logger.debug(f"Query snapshot size: {len(snapshot)}")
        for on_snapshot, _ in listeners:
            on_snapshot(list(snapshot))
