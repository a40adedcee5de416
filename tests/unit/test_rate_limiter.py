"""Test rate limiting and throttling"""

import pytest

from talktofolder.security.rate_limiter import RateLimiter, TokenBucket


class FakeRedis:
    def __init__(self):
        self.values = {}

    def get(self, key):
        return self.values.get(key)

    def setex(self, key, ttl, value):
        self.values[key] = str(value)

    def incr(self, key):
        self.values[key] = str(int(self.values[key]) + 1)


class BrokenRedis:
    def get(self, key):
        raise ConnectionError("redis down")


def test_allows_up_to_limit():
    limiter = RateLimiter(redis_client=FakeRedis())

    allowed = [limiter.allow_request("user-1", limit=3) for _ in range(5)]

    assert allowed == [True, True, True, False, False]
    assert limiter.get_remaining("user-1", limit=3) == 0
    assert limiter.get_remaining("user-2", limit=3) == 3


def test_fails_open_when_redis_unavailable():
    limiter = RateLimiter(redis_client=BrokenRedis())
    assert limiter.allow_request("user-1", limit=1) is True
    assert limiter.get_remaining("user-1", limit=4) == 4


def test_token_bucket_burst_then_waits():
    now = [0.0]
    waits = []
    bucket = TokenBucket(rate=2, burst=2, clock=lambda: now[0], sleep=waits.append)

    assert bucket.acquire() == 0.0
    assert bucket.acquire() == 0.0
    assert bucket.acquire() == pytest.approx(0.5)
    assert waits == [pytest.approx(0.5)]


def test_token_bucket_refills_over_time():
    now = [0.0]
    waits = []
    bucket = TokenBucket(rate=1, burst=1, clock=lambda: now[0], sleep=waits.append)

    bucket.acquire()
    now[0] = 5.0
    bucket.acquire()

    assert waits == []


def test_zero_rate_disables_pacing():
    waits = []
    bucket = TokenBucket(rate=0, sleep=waits.append)

    for _ in range(10):
        assert bucket.acquire() == 0.0
    assert waits == []


def test_token_bucket_rejects_bad_arguments():
    with pytest.raises(ValueError):
        TokenBucket(rate=-1)
    with pytest.raises(ValueError):
        TokenBucket(rate=1, burst=0)
