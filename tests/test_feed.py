# tests/test_feed.py
import unittest
from datetime import datetime
from unittest.mock import MagicMock

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from config import UNKNOWN_SESSION
from db import init_db
from feed import RequestFeed
from models import AIRequest, DetectionObject
from queries import create_user, delete_requests_batch, save_detection, save_request


class TestRequestFeed(unittest.TestCase):
    def setUp(self):
        engine = create_engine(
            "sqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        init_db(engine)
        self.Session = sessionmaker(bind=engine, autoflush=False, autocommit=False)
        self.feed = RequestFeed(self.Session)

        db = self.Session()
        create_user(db, "alice", "hash")
        create_user(db, "bob", "hash")
        save_request(db, "a1", "alice", "tree-row-1.jpg", "https://cdn/a1.jpg",
                     "2024-04-01T08:00:00Z", session_id="morning", status="complete",
                     visualizations=["https://cdn/a1-vis.png"],
                     processing_start_time=datetime(2024, 4, 1, 8, 0, 0),
                     processing_end_time=datetime(2024, 4, 1, 8, 0, 42))
        save_request(db, "a2", "alice", "tree-row-2.jpg", "https://cdn/a2.jpg",
                     "2024-04-03T08:00:00Z")
        save_request(db, "b1", "bob", "bob.jpg", "https://cdn/b1.jpg", "2024-04-02T08:00:00Z")
        save_detection(db, "a1", "apple", 0.91, [1, 2, 3, 4])
        save_detection(db, "a1", "apple", 0.82, [5, 6, 7, 8])
        save_detection(db, "a1", "tree", 0.77, [0, 0, 50, 80], label="tree")
        db.close()

    def test_fetch_scoped_and_ordered_desc(self):
        requests = self.feed.fetch("alice")
        self.assertEqual([r.id for r in requests], ["a2", "a1"])
        first = requests[1]
        self.assertEqual(first.apple_count, 2)
        self.assertEqual(first.tree_count, 1)
        self.assertEqual(first.apple_detections[0].box, (1.0, 2.0, 3.0, 4.0))
        self.assertEqual(first.preview_url, "https://cdn/a1-vis.png")
        self.assertEqual(first.processing_time, "00:42")
        self.assertEqual(requests[0].session_id, UNKNOWN_SESSION)

    def test_subscribe_delivers_current_snapshot(self):
        snapshots = []
        unsubscribe = self.feed.subscribe("alice", snapshots.append, MagicMock())
        self.assertEqual([[r.id for r in s] for s in snapshots], [["a2", "a1"]])
        self.assertEqual(self.feed.listener_count("alice"), 1)
        unsubscribe()
        unsubscribe()
        self.assertEqual(self.feed.listener_count("alice"), 0)

    def test_delete_pushes_new_snapshot(self):
        snapshots = []
        self.feed.subscribe("alice", snapshots.append, MagicMock())
        self.assertTrue(self.feed.delete_one("alice", "a1"))
        self.assertEqual([r.id for r in snapshots[-1]], ["a2"])

        db = self.Session()
        self.assertEqual(db.query(DetectionObject).filter_by(request_id="a1").count(), 0)
        db.close()

    def test_delete_is_owner_scoped(self):
        self.assertFalse(self.feed.delete_one("alice", "b1"))
        self.assertEqual([r.id for r in self.feed.fetch("bob")], ["b1"])

    def test_delete_many_single_batch(self):
        bob_snapshots = []
        self.feed.subscribe("bob", bob_snapshots.append, MagicMock())
        deleted = self.feed.delete_many("alice", ["a1", "a2", "b1"])
        self.assertEqual(deleted, 2)
        self.assertEqual(self.feed.fetch("alice"), [])
        self.assertEqual([r.id for r in self.feed.fetch("bob")], ["b1"])
        # bob's listener is not disturbed by alice's delete
        self.assertEqual(len(bob_snapshots), 1)

    def test_batch_rolls_back_on_failure(self):
        db = MagicMock()
        db.commit.side_effect = RuntimeError("write rejected")
        with self.assertRaises(RuntimeError):
            delete_requests_batch(db, ["a1", "a2"], "alice")
        db.rollback.assert_called_once()

        session = self.Session()
        self.assertEqual(session.query(AIRequest).filter_by(user_id="alice").count(), 2)
        session.close()

    def test_query_failure_goes_to_error_callback(self):
        broken = MagicMock(side_effect=RuntimeError("store offline"))
        feed = RequestFeed(broken)
        on_snapshot, on_error = MagicMock(), MagicMock()
        feed.subscribe("alice", on_snapshot, on_error)
        on_snapshot.assert_not_called()
        on_error.assert_called_once()
        self.assertIn("store offline", str(on_error.call_args[0][0]))


if __name__ == "__main__":
    unittest.main()
