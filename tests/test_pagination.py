import unittest
from datetime import date

from analytics import AnalyticsFilters, build_analytics_view
from charts import ChartKind
from errors import InvalidPaginationError
from pipeline import page_controls, paginate
from records import Detection, DetectionRequest


def make_request(n, created_at, apples=1, trees=1):
    box = (0.0, 0.0, 1.0, 1.0)
    return DetectionRequest(
        id=f"r{n}",
        user_id="testuser",
        file_name=f"img{n}.jpg",
        download_url=f"https://cdn.example.com/img{n}.jpg",
        created_at=created_at,
        apple_detections=tuple(Detection(0.9, box) for _ in range(apples)),
        tree_detections=tuple(Detection(0.9, box) for _ in range(trees)),
    )


class TestPaginate(unittest.TestCase):
    def test_pages_never_exceed_size_and_concatenate_back(self):
        rows = list(range(23))
        for size in (5, 10, 20):
            pages = [paginate(rows, page, size) for page in range(1, -(-len(rows) // size) + 1)]
            self.assertTrue(all(len(p) <= size for p in pages))
            self.assertEqual([x for p in pages for x in p], rows)
            expected_last = len(rows) % size or size
            self.assertEqual(len(pages[-1]), expected_last)

    def test_exact_multiple_last_page_full(self):
        rows = list(range(20))
        self.assertEqual(len(paginate(rows, 2, 10)), 10)
        self.assertEqual(paginate(rows, 3, 10), [])

    def test_invalid_page(self):
        with self.assertRaises(InvalidPaginationError):
            paginate([1, 2, 3], 0, 10)

    def test_page_controls_boundaries(self):
        first = page_controls(1, 10, 25)
        self.assertFalse(first.has_previous)
        self.assertTrue(first.has_next)
        last = page_controls(3, 10, 25)
        self.assertTrue(last.has_previous)
        self.assertFalse(last.has_next)
        self.assertEqual(last.page_count, 3)
        self.assertFalse(page_controls(2, 10, 20).has_next)
        self.assertEqual(page_controls(1, 10, 0).page_count, 1)


class TestAnalyticsView(unittest.TestCase):
    def setUp(self):
        self.requests = [make_request(n, f"2024-06-{n:02d}T12:00:00Z", apples=n, trees=1) for n in range(1, 13)]

    def test_page_size_change_resets_page(self):
        filters = AnalyticsFilters(page=3, page_size=5)
        changed = filters.with_page_size(20)
        self.assertEqual((changed.page, changed.page_size), (1, 20))
        self.assertEqual(filters.with_page(2).page, 2)

    def test_unknown_page_size_rejected(self):
        with self.assertRaises(InvalidPaginationError):
            build_analytics_view(self.requests, AnalyticsFilters(page_size=7))

    def test_totals_cover_current_page_only(self):
        filters = AnalyticsFilters(page=2, page_size=5)
        view = build_analytics_view(self.requests, filters)
        self.assertEqual([row.file_name for row in view.rows], [f"img{n}.jpg" for n in range(6, 11)])
        self.assertEqual(view.totals.apples, sum(range(6, 11)))
        self.assertEqual(view.totals.trees, 5)
        self.assertIsNone(view.totals.apples_comparison)
        # the timeframe summary covers the full primary set
        self.assertEqual(view.summary.total_apples, sum(range(1, 13)))
        self.assertEqual(view.total_rows, 12)
        self.assertTrue(view.controls.has_next)
        self.assertTrue(view.controls.has_previous)

    def test_merged_rows_are_paginated(self):
        filters = AnalyticsFilters(
            start=date(2024, 6, 1), end=date(2024, 6, 3),
            compare=True, comparison_start=date(2024, 6, 10), comparison_end=date(2024, 6, 12),
            page=1, page_size=5, chart_kind=ChartKind.LINE,
        )
        view = build_analytics_view(self.requests, filters)
        self.assertEqual(view.total_rows, 6)
        self.assertEqual(len(view.rows), 5)
        self.assertTrue(view.controls.has_next)
        self.assertEqual(view.totals.apples, 1 + 2 + 3)
        self.assertEqual(view.totals.apples_comparison, 10 + 11)
        self.assertEqual(view.title, "Comparing Line Chart for Selected Time Frames")

        second = build_analytics_view(self.requests, filters.with_page(2))
        self.assertEqual([row.file_name for row in second.rows], ["img12.jpg"])
        self.assertFalse(second.controls.has_next)

    def test_view_as_dict(self):
        data = build_analytics_view(self.requests, AnalyticsFilters(page_size=5)).as_dict()
        self.assertEqual(data["title"], "Showing Bar Chart for Selected Time Frame")
        self.assertEqual(data["pagination"]["pageCount"], 3)
        self.assertNotIn("applesComparison", data["rows"][0])


if __name__ == "__main__":
    unittest.main()
