from web3dash.rate_limit import RateLimiter


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def test_blocks_after_limit_until_window_ends():
    clock = FakeClock()
    limiter = RateLimiter(max_requests=2, window_seconds=60, clock=clock)

    assert limiter.hit("ip") == (True, 0)
    assert limiter.hit("ip") == (True, 0)
    clock.now += 10
    allowed, retry_after = limiter.hit("ip")
    assert allowed is False
    assert retry_after == 51

    clock.now += 50
    assert limiter.hit("ip") == (True, 0)


def test_keys_are_independent():
    limiter = RateLimiter(max_requests=1, window_seconds=60, clock=FakeClock())
    assert limiter.hit("a")[0] is True
    assert limiter.hit("b")[0] is True
    assert limiter.hit("a")[0] is False

    limiter.reset()
    assert limiter.hit("a")[0] is True


def test_login_endpoint_rate_limited(client, monkeypatch):
    from web3dash.rate_limit import auth_limiter

    monkeypatch.setattr(auth_limiter, "max_requests", 2)
    payload = {"email": "alice@example.com", "code": "000000"}
    codes = [client.post("/api/auth/verify-code", json=payload).status_code for _ in range(3)]
    assert codes[-1] == 429
    assert 429 not in codes[:2]


def test_expired_windows_are_pruned():
    clock = FakeClock()
    limiter = RateLimiter(max_requests=5, window_seconds=60, clock=clock)
    for i in range(1000):
        limiter.hit(f"client-{i}")

    clock.now += 61
    limiter.hit("late-client")
    assert len(limiter._windows) == 1
