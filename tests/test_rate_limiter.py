"""
Tests for the hybrid memory + Redis booking rate limiter
"""

import asyncio
import unittest
from unittest.mock import patch

import redis
from fastapi import HTTPException
from starlette.requests import Request

from clinic_booking import rate_limiter


class FakeRedis:
    """Just enough of redis.Redis for the limiter"""

    def __init__(self, stored=None, ttl=-2, broken=False):
        self.values = dict(stored or {})
        self._ttl = ttl
        self.broken = broken
        self.writes = []

    def get(self, key):
        if self.broken:
            raise redis.ConnectionError("redis down")
        return self.values.get(key)

    def ttl(self, key):
        return self._ttl if key in self.values else -2

    def set(self, key, value, ex=None):
        if self.broken:
            raise redis.ConnectionError("redis down")
        self.values[key] = value
        self.writes.append((key, value, ex))


def make_request(ip="203.0.113.7", forwarded_for=None) -> Request:
    headers = [(b"x-forwarded-for", forwarded_for.encode())] if forwarded_for else []
    return Request({"type": "http", "method": "POST", "path": "/", "headers": headers, "client": (ip, 4321)})


class RateLimiterTestCase(unittest.TestCase):
    def setUp(self):
        cache = patch.dict(rate_limiter.memory_cache, clear=True)
        cache.start()
        self.addCleanup(cache.stop)


class TestCheckRateLimit(RateLimiterTestCase):
    def test_counts_up_to_limit(self):
        client = FakeRedis()

        results = [rate_limiter.check_rate_limit("booking:1", 2, 600, client) for _ in range(3)]

        self.assertEqual([r[0] for r in results], [True, True, False])
        self.assertEqual([r[1] for r in results], [1, 2, 2])
        self.assertTrue(0 < results[-1][2] <= 600)

    def test_resumes_from_redis(self):
        client = FakeRedis(stored={"booking:1": "5"}, ttl=300)

        allowed, count, ttl = rate_limiter.check_rate_limit("booking:1", 5, 600, client)

        self.assertFalse(allowed)
        self.assertEqual(count, 5)
        self.assertLessEqual(ttl, 300)

    def test_keys_are_independent(self):
        client = FakeRedis()
        rate_limiter.check_rate_limit("booking:1", 1, 600, client)

        allowed, _, _ = rate_limiter.check_rate_limit("booking:2", 1, 600, client)

        self.assertTrue(allowed)

    def test_redis_errors_fall_back_to_memory(self):
        client = FakeRedis(broken=True)

        allowed, count, _ = rate_limiter.check_rate_limit("booking:1", 3, 600, client)

        self.assertTrue(allowed)
        self.assertEqual(count, 1)


class TestRateLimitDependency(RateLimiterTestCase):
    def run_limiter(self, limiter, request):
        return asyncio.run(limiter(request))

    def test_over_limit_is_429(self):
        limiter = rate_limiter.create_rate_limiter(1, 600, key_prefix="booking")
        with patch.object(rate_limiter, "get_redis_client", return_value=FakeRedis()):
            self.run_limiter(limiter, make_request())
            with self.assertRaises(HTTPException) as ctx:
                self.run_limiter(limiter, make_request())

        self.assertEqual(ctx.exception.status_code, 429)
        self.assertIn("Retry-After", ctx.exception.headers)

    def test_fails_closed_without_redis(self):
        limiter = rate_limiter.create_rate_limiter(10, 600)
        with patch.object(rate_limiter, "get_redis_client", side_effect=redis.ConnectionError("down")):
            with self.assertRaises(HTTPException) as ctx:
                self.run_limiter(limiter, make_request())

        self.assertEqual(ctx.exception.status_code, 503)

    def test_uses_forwarded_client_ip(self):
        request = make_request(ip="10.0.0.1", forwarded_for="198.51.100.4, 10.0.0.1")

        self.assertEqual(rate_limiter.client_ip(request), "198.51.100.4")
        self.assertEqual(rate_limiter.client_ip(make_request()), "203.0.113.7")
