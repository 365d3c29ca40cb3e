#!/usr/bin/env python3
"""
Tests for environment-driven settings
"""

import os
import unittest

from plausible_query.config import (
    DEFAULT_API_URL,
    DEFAULT_CACHE_DIR,
    DEFAULT_CACHE_TTL,
    DEFAULT_TIMEOUT,
    Settings,
    load_settings,
)
from plausible_query.errors import ConfigFailure


class TestLoadSettings(unittest.TestCase):

    def test_defaults(self):
        settings = load_settings(env={})
        self.assertIsNone(settings.api_key)
        self.assertIsNone(settings.site_id)
        self.assertEqual(settings.api_url, DEFAULT_API_URL)
        self.assertEqual(settings.cache_dir, DEFAULT_CACHE_DIR)
        self.assertEqual(settings.timeout, DEFAULT_TIMEOUT)
        self.assertEqual(settings.cache_ttl, DEFAULT_CACHE_TTL)
        self.assertFalse(settings.debug)

    def test_environment(self):
        settings = load_settings(env={
            "PLAUSIBLE_API_KEY": "key",
            "PLAUSIBLE_SITE_ID": "example.com",
            "PLAUSIBLE_API_URL": "https://stats.internal/api/v2/query",
            "PLAUSIBLE_CACHE_DIR": "/tmp/pq",
            "PLAUSIBLE_TIMEOUT": "5",
            "PLAUSIBLE_CACHE_TTL": "60",
            "DEBUG_MODE": "True",
        })
        self.assertEqual(settings.api_key, "key")
        self.assertEqual(settings.site_id, "example.com")
        self.assertEqual(settings.api_url, "https://stats.internal/api/v2/query")
        self.assertEqual(settings.timeout, 5.0)
        self.assertEqual(settings.cache_ttl, 60)
        self.assertTrue(settings.debug)

    def test_empty_values_fall_back(self):
        settings = load_settings(env={"PLAUSIBLE_SITE_ID": "", "PLAUSIBLE_TIMEOUT": " "})
        self.assertIsNone(settings.site_id)
        self.assertEqual(settings.timeout, DEFAULT_TIMEOUT)

    def test_overrides_win_unless_none(self):
        settings = load_settings(env={"PLAUSIBLE_SITE_ID": "example.com", "PLAUSIBLE_API_KEY": "key"},
                                 site_id="other.org", api_key=None)
        self.assertEqual(settings.site_id, "other.org")
        self.assertEqual(settings.api_key, "key")

    def test_invalid_numbers(self):
        for env in ({"PLAUSIBLE_TIMEOUT": "soon"}, {"PLAUSIBLE_TIMEOUT": "0"}, {"PLAUSIBLE_CACHE_TTL": "-5"}):
            with self.assertRaises(ConfigFailure) as ctx:
                load_settings(env=env)
            self.assertEqual(ctx.exception.code, "INVALID_SETTING")


class TestSettings(unittest.TestCase):

    def test_require_site_id(self):
        settings = Settings(site_id="example.com")
        self.assertEqual(settings.require_site_id(), "example.com")
        self.assertEqual(settings.require_site_id("other.org"), "other.org")

    def test_missing_site_id(self):
        with self.assertRaises(ConfigFailure) as ctx:
            Settings().require_site_id()
        self.assertEqual(ctx.exception.code, "MISSING_SITE_ID")
        self.assertIn("--site-id", ctx.exception.suggestion)

    def test_missing_api_key(self):
        with self.assertRaises(ConfigFailure) as ctx:
            Settings().require_api_key()
        self.assertEqual(ctx.exception.code, "MISSING_API_KEY")

    def test_audit_log_path(self):
        self.assertEqual(Settings(cache_dir="/tmp/pq").audit_log_path, os.path.join("/tmp/pq", "query.log"))
        self.assertEqual(Settings(log_file="/var/log/pq.log").audit_log_path, "/var/log/pq.log")


if __name__ == '__main__':
    unittest.main()
