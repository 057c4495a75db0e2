import asyncio

import httpx
import pytest

from edgefinder.core.errors import UpstreamUnavailable
from edgefinder.utils.retry import compute_delay, is_transient, retry_with_backoff


def _status_error(code):
    request = httpx.Request("GET", "https://example.test/markets")
    response = httpx.Response(code, request=request)
    return httpx.HTTPStatusError(f"HTTP {code}", request=request, response=response)


class Flaky:
    def __init__(self, errors, result="ok"):
        self.errors = list(errors)
        self.calls = 0
        self.result = result

    async def __call__(self):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return self.result


def _no_sleep(record):
    async def sleep(delay):
        record.append(delay)

    return sleep


def test_transient_classification():
    assert is_transient(_status_error(429))
    assert is_transient(_status_error(503))
    assert is_transient(httpx.ConnectTimeout("timeout"))
    assert not is_transient(_status_error(404))
    assert not is_transient(ValueError("bad"))


def test_rate_limit_is_retried_then_succeeds():
    delays = []
    func = Flaky([_status_error(429), _status_error(502)])
    result = asyncio.run(retry_with_backoff(func, max_retries=3, initial_delay=0.1, sleep=_no_sleep(delays)))
    assert result == "ok"
    assert func.calls == 3
    assert len(delays) == 2


def test_client_error_is_not_retried():
    delays = []
    func = Flaky([_status_error(404)])
    with pytest.raises(httpx.HTTPStatusError):
        asyncio.run(retry_with_backoff(func, max_retries=5, sleep=_no_sleep(delays)))
    assert func.calls == 1
    assert delays == []


def test_exhausted_attempts_raise_upstream_unavailable():
    func = Flaky([_status_error(500)] * 3)
    with pytest.raises(UpstreamUnavailable) as info:
        asyncio.run(retry_with_backoff(func, max_retries=3, sleep=_no_sleep([]), label="kalshi GET"))
    assert func.calls == 3
    assert info.value.kind == "upstream_unavailable"
    assert "kalshi GET" in info.value.message


def test_delay_grows_and_is_capped():
    assert compute_delay(0, 1.0, 2.0, 10.0, jitter=False) == 1.0
    assert compute_delay(2, 1.0, 2.0, 10.0, jitter=False) == 4.0
    assert compute_delay(6, 1.0, 2.0, 10.0, jitter=False) == 10.0
    for attempt in range(5):
        assert 0.0 < compute_delay(attempt, 1.0, 2.0, 10.0) <= 10.0
