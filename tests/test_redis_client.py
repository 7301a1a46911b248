#!/usr/bin/env python3
"""
Unit tests for the Redis profile cache and rate limiter
"""

import unittest
from unittest.mock import MagicMock

import redis

from common.redis_client import RedisClient
from fakes import ALICE


class TestRedisClient(unittest.TestCase):

    def setUp(self):
        self.redis = RedisClient(url="redis://localhost:6399/0")
        self.redis.client = MagicMock()
        self.pipe = self.redis.client.pipeline.return_value

    def test_rate_limit_allows_within_window(self):
        self.pipe.execute.return_value = [3, True]
        verdict = self.redis.check_rate_limit(202, "follow", max_requests=30, window_seconds=60)
        self.assertTrue(verdict["allowed"])
        self.assertEqual(verdict["remaining"], 27)
        key = self.pipe.incr.call_args[0][0]
        self.assertTrue(key.startswith("rate_limit:202:follow:"))

    def test_rate_limit_blocks_over_limit(self):
        self.pipe.execute.return_value = [31, True]
        verdict = self.redis.check_rate_limit(202, "follow", max_requests=30, window_seconds=60)
        self.assertFalse(verdict["allowed"])
        self.assertEqual(verdict["remaining"], 0)
        self.assertGreater(verdict["retry_after"], 0)

    def test_rate_limit_fails_open(self):
        self.pipe.execute.side_effect = redis.ConnectionError("down")
        verdict = self.redis.check_rate_limit(202, "orders", max_requests=30, window_seconds=60)
        self.assertTrue(verdict["allowed"])

    def test_cached_profile_round_trip(self):
        self.redis.client.get.return_value = ALICE.model_dump_json()
        self.assertEqual(self.redis.get_cached_profile("username:alice"), ALICE)
        self.redis.client.get.assert_called_with("profile:username:alice")

    def test_cache_write_uses_ttl(self):
        self.redis.client.setex.return_value = True
        self.assertTrue(self.redis.cache_profile("fid:101", ALICE, ttl_seconds=120))
        key, ttl, _ = self.redis.client.setex.call_args[0]
        self.assertEqual((key, ttl), ("profile:fid:101", 120))

    def test_cache_disabled_with_zero_ttl(self):
        self.assertFalse(self.redis.cache_profile("fid:101", ALICE, ttl_seconds=0))
        self.redis.client.setex.assert_not_called()

    def test_cache_read_failure_is_a_miss(self):
        self.redis.client.get.side_effect = redis.TimeoutError("slow")
        self.assertIsNone(self.redis.get_cached_profile("username:alice"))


if __name__ == "__main__":
    unittest.main()
