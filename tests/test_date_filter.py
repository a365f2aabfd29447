# tests/test_date_filter.py
import unittest
from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

from pipeline import detection_totals, filter_by_date_range, group_by_day
from records import Detection, DetectionRequest


def make_request(rid, created_at, apples=0, trees=0):
    box = (0.0, 0.0, 10.0, 10.0)
    return DetectionRequest(
        id=rid,
        user_id="testuser",
        file_name=f"{rid}.jpg",
        download_url=f"https://cdn.example.com/{rid}.jpg",
        created_at=created_at,
        apple_detections=tuple(Detection(0.9, box) for _ in range(apples)),
        tree_detections=tuple(Detection(0.8, box) for _ in range(trees)),
    )


class TestDateRangeFilter(unittest.TestCase):
    def setUp(self):
        self.requests = [
            make_request("r3", "2024-01-03T09:00:00Z"),
            make_request("r2", "2024-01-02T12:30:00Z"),
            make_request("r1", "2024-01-01T00:00:00Z"),
        ]

    def test_no_bounds_is_identity(self):
        """Omitting both bounds hands back the input untouched"""
        result = filter_by_date_range(self.requests)
        self.assertIs(result, self.requests)

    def test_both_bounds_inclusive(self):
        result = filter_by_date_range(
            self.requests,
            datetime(2024, 1, 1, tzinfo=timezone.utc),
            datetime(2024, 1, 2, 12, 30, tzinfo=timezone.utc),
        )
        self.assertEqual([r.id for r in result], ["r2", "r1"])

    def test_only_start(self):
        result = filter_by_date_range(self.requests, start=date(2024, 1, 2))
        self.assertEqual([r.id for r in result], ["r3", "r2"])

    def test_only_end(self):
        result = filter_by_date_range(self.requests, end=date(2024, 1, 2))
        self.assertEqual([r.id for r in result], ["r2", "r1"])

    def test_date_bounds_cover_whole_day(self):
        result = filter_by_date_range(self.requests, date(2024, 1, 3), date(2024, 1, 3))
        self.assertEqual([r.id for r in result], ["r3"])

    def test_naive_bounds_read_in_configured_zone(self):
        # 2024-01-02 12:30 UTC is 2024-01-02 21:30 in Tokyo
        tokyo = ZoneInfo("Asia/Tokyo")
        result = filter_by_date_range(
            self.requests, datetime(2024, 1, 2, 21, 0), datetime(2024, 1, 2, 22, 0), tokyo
        )
        self.assertEqual([r.id for r in result], ["r2"])

    def test_empty_range(self):
        result = filter_by_date_range(self.requests, date(2025, 1, 1), date(2025, 12, 31))
        self.assertEqual(result, [])

    def test_single_day_scenario(self):
        """Two requests on Jan 1 and one on Jan 2; Jan 1 only -> one bucket, 5 apples, 1 tree"""
        requests = [
            make_request("a", "2024-01-01T08:00:00Z", apples=2, trees=1),
            make_request("b", "2024-01-01T17:00:00Z", apples=3, trees=0),
            make_request("c", "2024-01-02T10:00:00Z", apples=0, trees=4),
        ]
        filtered = filter_by_date_range(requests, date(2024, 1, 1), date(2024, 1, 1))
        self.assertEqual(len(filtered), 2)

        groups = group_by_day(filtered)
        self.assertEqual(list(groups.keys()), ["2024-01-01"])
        self.assertEqual(detection_totals(filtered), (5, 1))


if __name__ == "__main__":
    unittest.main()
