#!/usr/bin/env python3
"""
Tests for the SEO helper reports.

The executor is mocked; each test checks the query a helper builds and the
frame it returns.
"""

import unittest
from datetime import date
from unittest.mock import Mock

import pandas as pd

from plausible_query import seo
from plausible_query.query_models import QueryResponse
from plausible_query.validator import validate_query


def response(rows):
    return QueryResponse.model_validate({
        "results": [{"dimensions": dims, "metrics": metrics} for dims, metrics in rows],
        "meta": {},
    })


class TestBreakdownHelpers(unittest.TestCase):

    def setUp(self):
        self.executor = Mock()

    def sent_params(self):
        return self.executor.execute.call_args[0][0]

    def test_top_pages(self):
        self.executor.execute.return_value = response([(["/"], [120, 300]), (["/blog"], [80, 95])])
        df = seo.top_pages(self.executor, date_range="7d", limit=5)

        self.assertEqual(list(df.columns), ["page", "visitors", "pageviews"])
        self.assertEqual(df["page"].tolist(), ["/", "/blog"])
        params = self.sent_params()
        self.assertEqual(params["dimensions"], ["event:page"])
        self.assertEqual(params["pagination"], {"limit": 5, "offset": 0})
        self.assertEqual(params["order_by"], [["visitors", "desc"]])
        self.assertNotIn("site_id", params)

    def test_site_id_passed_through(self):
        self.executor.execute.return_value = response([])
        seo.top_pages(self.executor, site_id="example.com")
        self.assertEqual(self.sent_params()["site_id"], "example.com")

    def test_custom_range_becomes_list(self):
        self.executor.execute.return_value = response([])
        seo.device_breakdown(self.executor, date_range=("2024-01-01", "2024-01-31"))
        self.assertEqual(self.sent_params()["date_range"], ["2024-01-01", "2024-01-31"])

    def test_traffic_sources_are_graded(self):
        self.executor.execute.return_value = response([
            (["Google"], [500, 25, 200]),
            (["Direct / None"], [300, 80, 10]),
        ])
        df = seo.traffic_sources(self.executor)
        self.assertEqual(df["source"].tolist(), ["Google", "Direct / None"])
        self.assertEqual(df["quality_score"].tolist(), [100, 0])
        self.assertEqual(df["grade"].tolist(), ["A", "F"])
        self.assertEqual(self.sent_params()["dimensions"], ["visit:source"])

    def test_entry_pages_use_visit_dimension(self):
        self.executor.execute.return_value = response([
            (["/guide"], [90, 20, 240]),
            (["/pricing"], [40, 75, 12]),
        ])
        df = seo.entry_pages(self.executor)
        self.assertEqual(self.sent_params()["dimensions"], ["visit:entry_page"])
        self.assertEqual(df["entry_page"].tolist(), ["/guide", "/pricing"])
        self.assertEqual(df["quality"].tolist(), ["excellent", "very-poor"])

    def test_sources_missing_metrics_are_not_graded(self):
        self.executor.execute.return_value = response([
            (["Google"], [500, 25, 200]),
            (["Newsletter"], [40, None, 90]),
        ])
        df = seo.traffic_sources(self.executor)
        self.assertEqual(df["grade"].tolist(), ["A", None])
        self.assertEqual(df["quality_score"].iloc[0], 100)
        self.assertTrue(pd.isna(df["quality_score"].iloc[1]))

    def test_entry_pages_missing_metrics_have_no_label(self):
        self.executor.execute.return_value = response([
            (["/guide"], [90, 20, 240]),
            (["/new"], [3, 50, None]),
        ])
        df = seo.entry_pages(self.executor)
        self.assertEqual(df["quality"].tolist(), ["excellent", None])

    def test_empty_results_keep_columns(self):
        self.executor.execute.return_value = response([])
        df = seo.traffic_sources(self.executor)
        self.assertTrue(df.empty)
        self.assertIn("grade", df.columns)
        df = seo.entry_pages(self.executor)
        self.assertIn("quality", df.columns)

    def test_goal_conversions(self):
        self.executor.execute.return_value = response([(["Signup"], [12, 15, 3.4])])
        df = seo.goal_conversions(self.executor)
        self.assertEqual(list(df.columns), ["goal", "visitors", "events", "conversion_rate"])
        self.assertAlmostEqual(df["conversion_rate"][0], 3.4)

    def test_every_helper_builds_a_valid_query(self):
        """Preset queries must pass local validation"""
        self.executor.execute.return_value = response([])
        for helper in (seo.top_pages, seo.traffic_sources, seo.entry_pages,
                       seo.device_breakdown, seo.goal_conversions):
            helper(self.executor, date_range="30d", limit=10, site_id="example.com")
            validate_query(self.sent_params())


class TestCompareAndDecay(unittest.TestCase):

    def test_period_ranges(self):
        current, previous = seo.period_ranges(7, today=date(2024, 3, 15))
        self.assertEqual(current, ["2024-03-08", "2024-03-14"])
        self.assertEqual(previous, ["2024-03-01", "2024-03-07"])

    def test_period_ranges_single_day(self):
        current, previous = seo.period_ranges(1, today=date(2024, 3, 1))
        self.assertEqual(current, ["2024-02-29", "2024-02-29"])
        self.assertEqual(previous, ["2024-02-28", "2024-02-28"])

    def test_period_ranges_rejects_zero(self):
        with self.assertRaises(ValueError):
            seo.period_ranges(0)

    def test_compare_periods(self):
        totals = {
            "2024-03-08": [130, 150, 400, 40, 90],
            "2024-03-01": [100, 150, 500, 40, 0],
        }
        executor = Mock()
        executor.execute.side_effect = lambda params: response(
            [([], totals[params["date_range"][0]])])

        changes = seo.compare_periods(executor, ["2024-03-08", "2024-03-14"], ["2024-03-01", "2024-03-07"])
        by_metric = {c.metric: c for c in changes}

        self.assertEqual([c.metric for c in changes], list(seo.COMPARE_METRICS))
        self.assertEqual(by_metric["visitors"].direction, "up")
        self.assertEqual(by_metric["visitors"].significance, "significant")
        self.assertEqual(by_metric["visits"].direction, "flat")
        self.assertEqual(by_metric["pageviews"].direction, "down")
        self.assertEqual(by_metric["visit_duration"].percent_change, 0)
        self.assertEqual(executor.execute.call_count, 2)

        frame = seo.comparison_frame(changes)
        self.assertEqual(frame["metric"].tolist(), list(seo.COMPARE_METRICS))
        self.assertEqual(frame.loc[0, "percent_change"], 30.0)

    def test_aggregate_handles_null_and_empty(self):
        executor = Mock()
        executor.execute.return_value = response([([], [10, None])])
        self.assertEqual(seo.aggregate(executor, ["visitors", "bounce_rate"], "7d"),
                         {"visitors": 10, "bounce_rate": 0})
        executor.execute.return_value = response([])
        self.assertEqual(seo.aggregate(executor, ["visitors"], "7d"), {"visitors": 0})

    def test_content_decay(self):
        pages = {
            "baseline": [(["/a"], [100]), (["/b"], [100]), (["/c"], [100]), (["/d"], [5]), (["/e"], [60])],
            "recent": [(["/a"], [40]), (["/b"], [75]), (["/c"], [120]), (["/d"], [0])],
        }
        executor = Mock()
        executor.execute.side_effect = lambda params: response(
            pages["baseline" if params["date_range"] == "28d" else "recent"])

        df = seo.content_decay(executor, "28d", "7d")

        self.assertEqual(list(df.columns), ["page", "baseline_visitors", "recent_visitors",
                                            "drop_percent", "severity"])
        self.assertEqual(df["page"].tolist(), ["/e", "/a", "/b"])
        self.assertEqual(df["severity"].tolist(), ["critical", "critical", "medium"])
        self.assertEqual(df["drop_percent"].tolist(), [100.0, 60.0, 25.0])
        self.assertEqual(df["recent_visitors"].tolist(), [0, 40, 75])

    def test_content_decay_thresholds(self):
        executor = Mock()
        executor.execute.side_effect = lambda params: response(
            [(["/a"], [100])] if params["date_range"] == "28d" else [(["/a"], [75])])
        self.assertEqual(len(seo.content_decay(executor, "28d", "7d", threshold=30)), 0)
        self.assertEqual(len(seo.content_decay(executor, "28d", "7d", min_visitors=200)), 0)
        self.assertEqual(len(seo.content_decay(executor, "28d", "7d")), 1)


if __name__ == '__main__':
    unittest.main()
