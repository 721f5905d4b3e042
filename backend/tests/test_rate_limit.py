"""
Tests for the sliding window rate limiter
"""
from starlette.requests import Request

from app.core.rate_limit import (SlidingWindowRateLimiter, get_client_ip,
                                 retry_after_seconds)


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def make_request(headers=None, client=("10.0.0.1", 1234)) -> Request:
    scope = {
        "type": "http",
        "method": "GET",
        "path": "/",
        "headers": [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()],
        "client": client,
    }
    return Request(scope)


class TestSlidingWindowRateLimiter:

    def test_blocks_after_max_attempts(self):
        limiter = SlidingWindowRateLimiter(max_attempts=3, window_seconds=60, clock=FakeClock())
        for _ in range(3):
            assert limiter.check_limit("ip") is True
            limiter.record_attempt("ip")
        assert limiter.check_limit("ip") is False
        assert limiter.remaining_attempts("ip") == 0

    def test_keys_are_independent(self):
        limiter = SlidingWindowRateLimiter(max_attempts=1, window_seconds=60, clock=FakeClock())
        limiter.record_attempt("a")
        assert limiter.check_limit("a") is False
        assert limiter.check_limit("b") is True

    def test_window_slides(self):
        clock = FakeClock()
        limiter = SlidingWindowRateLimiter(max_attempts=2, window_seconds=60, clock=clock)
        limiter.record_attempt("ip")
        clock.now += 30
        limiter.record_attempt("ip")
        assert limiter.check_limit("ip") is False

        assert limiter.time_until_reset("ip") == 30
        assert retry_after_seconds(limiter, "ip") == 30

        clock.now += 31
        assert limiter.check_limit("ip") is True
        assert limiter.remaining_attempts("ip") == 1

    def test_time_until_reset_without_attempts(self):
        limiter = SlidingWindowRateLimiter(max_attempts=2, window_seconds=60, clock=FakeClock())
        assert limiter.time_until_reset("ip") == 0

    def test_cleanup_drops_expired_keys(self):
        clock = FakeClock()
        limiter = SlidingWindowRateLimiter(
            max_attempts=2, window_seconds=10, cleanup_interval_seconds=20, clock=clock
        )
        limiter.record_attempt("old")
        clock.now += 25
        limiter.check_limit("new")
        assert "old" not in limiter._attempts

    def test_reset(self):
        limiter = SlidingWindowRateLimiter(max_attempts=1, window_seconds=60, clock=FakeClock())
        limiter.record_attempt("a")
        limiter.record_attempt("b")
        limiter.reset("a")
        assert limiter.check_limit("a") is True
        assert limiter.check_limit("b") is False
        limiter.reset()
        assert limiter.check_limit("b") is True


class TestClientIp:

    def test_forwarded_for_first_hop(self):
        request = make_request({"X-Forwarded-For": "203.0.113.5, 10.0.0.2"})
        assert get_client_ip(request) == "203.0.113.5"

    def test_real_ip(self):
        assert get_client_ip(make_request({"X-Real-IP": " 198.51.100.7 "})) == "198.51.100.7"

    def test_peer_address(self):
        assert get_client_ip(make_request()) == "10.0.0.1"

    def test_unknown(self):
        assert get_client_ip(make_request(client=None)) == "unknown"
