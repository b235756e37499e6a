"""
Unit tests for the sliding-window rate limiter.
"""

from starlette.requests import Request

from app.api.rate_limit import SlidingWindowLimiter, client_ip, get_limiter


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def make_request(headers=None, host="10.0.0.1") -> Request:
    raw_headers = [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()]
    return Request({"type": "http", "headers": raw_headers, "client": (host, 1234)})


def test_allows_up_to_limit():
    limiter = SlidingWindowLimiter(max_requests=3, window_seconds=60, clock=FakeClock())

    assert [limiter.allow("ip") for _ in range(4)] == [True, True, True, False]


def test_window_slides():
    clock = FakeClock()
    limiter = SlidingWindowLimiter(max_requests=2, window_seconds=60, clock=clock)

    limiter.allow("ip")
    clock.now += 30
    limiter.allow("ip")
    assert not limiter.allow("ip")

    # First event expires, second is still inside the window
    clock.now += 30
    assert limiter.allow("ip")
    assert not limiter.allow("ip")


def test_keys_are_independent():
    limiter = SlidingWindowLimiter(max_requests=1, clock=FakeClock())
    assert limiter.allow("a")
    assert limiter.allow("b")
    assert not limiter.allow("a")


def test_retry_after():
    clock = FakeClock()
    limiter = SlidingWindowLimiter(max_requests=1, window_seconds=60, clock=clock)
    limiter.allow("ip")
    clock.now += 20

    assert limiter.retry_after("ip") == 41
    assert limiter.retry_after("unknown") == 0


def test_group_limits_come_from_settings():
    assert get_limiter("checkout").max_requests == 10
    assert get_limiter("webhook").max_requests == 300
    assert get_limiter("general").max_requests == 100
    assert get_limiter("checkout") is get_limiter("checkout")


def test_client_ip_prefers_forwarded_for():
    request = make_request({"X-Forwarded-For": "203.0.113.5, 10.0.0.2"})
    assert client_ip(request) == "203.0.113.5"


def test_client_ip_falls_back():
    assert client_ip(make_request({"X-Real-IP": "198.51.100.7"})) == "198.51.100.7"
    assert client_ip(make_request()) == "10.0.0.1"
