#!/usr/bin/env python3
"""
Tests for DataFrame conversion and file export
"""

import json
import os
import shutil
import tempfile
import unittest

import pandas as pd

from plausible_query.export import column_name, response_to_dataframe, save_dataframe
from plausible_query.query_models import QueryResponse
from plausible_query.validator import validate_query

QUERY = validate_query({
    "site_id": "example.com",
    "metrics": ["visitors", "pageviews"],
    "dimensions": ["event:page", "visit:country"],
    "date_range": ["2024-01-01", "2024-01-31"],
    "pagination": {"limit": 10, "offset": 0},
})

RESPONSE = QueryResponse.model_validate({
    "results": [
        {"dimensions": ["/", "DE"], "metrics": [120, 340]},
        {"dimensions": ["/blog", "US"], "metrics": [80, 95]},
    ],
})


class TestDataFrame(unittest.TestCase):

    def test_column_names(self):
        self.assertEqual(column_name("event:page"), "page")
        self.assertEqual(column_name("visit:entry_page"), "entry_page")
        self.assertEqual(column_name("event:props:author"), "props:author")
        self.assertEqual(column_name("time:day"), "time:day")

    def test_response_to_dataframe(self):
        df = response_to_dataframe(RESPONSE, QUERY)
        self.assertEqual(list(df.columns), ["page", "country", "visitors", "pageviews"])
        self.assertEqual(df["visitors"].tolist(), [120, 80])
        self.assertEqual(df.iloc[1]["country"], "US")


class TestSaveDataFrame(unittest.TestCase):

    def setUp(self):
        self.tmp_dir = tempfile.mkdtemp()
        self.df = response_to_dataframe(RESPONSE, QUERY)

    def tearDown(self):
        shutil.rmtree(self.tmp_dir, ignore_errors=True)

    def test_csv(self):
        path = save_dataframe(self.df, os.path.join(self.tmp_dir, "pages.csv"))
        loaded = pd.read_csv(path)
        self.assertEqual(list(loaded.columns), list(self.df.columns))
        self.assertEqual(loaded["page"].tolist(), ["/", "/blog"])

    def test_json(self):
        path = save_dataframe(self.df, os.path.join(self.tmp_dir, "pages.json"))
        with open(path) as f:
            records = json.load(f)
        self.assertEqual(records[0], {"page": "/", "country": "DE", "visitors": 120, "pageviews": 340})

    def test_excel_has_data_and_params_sheets(self):
        path = save_dataframe(self.df, os.path.join(self.tmp_dir, "pages.xlsx"), query=QUERY)
        sheets = pd.read_excel(path, sheet_name=None)
        self.assertEqual(set(sheets), {"data", "params"})
        self.assertEqual(sheets["data"]["page"].tolist(), ["/", "/blog"])
        params = sheets["params"]
        self.assertEqual(params["site_id"][0], "example.com")
        self.assertEqual(json.loads(params["metrics"][0]), ["visitors", "pageviews"])
        self.assertIn("generated_at", params.columns)

    def test_unsupported_extension(self):
        with self.assertRaises(ValueError):
            save_dataframe(self.df, os.path.join(self.tmp_dir, "pages.parquet"))


if __name__ == '__main__':
    unittest.main()
