from __future__ import annotations

import io
import json
import urllib.error

import pytest

from fdc_browser.errors import UsdaApiError
from fdc_browser.services import usda_client


class _FakeResponse:
    def __init__(self, payload, status=200):
        self.status = status
        self._body = payload if isinstance(payload, bytes) else json.dumps(payload).encode("utf-8")

    def read(self):
        return self._body

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False


@pytest.fixture()
def captured(monkeypatch):
    requests = []
    responses = []

    def fake_urlopen(request, timeout):
        requests.append((request, json.loads(request.data)))
        return responses.pop(0)

    monkeypatch.setattr(usda_client.urllib.request, "urlopen", fake_urlopen)
    return requests, responses


def test_search_foods_posts_query(captured):
    requests, responses = captured
    responses.append(_FakeResponse({"totalHits": 1, "foods": [{"fdcId": 1, "description": "Apple"}]}))

    result = usda_client.search_foods("k&y", "apple", page_size=5, data_types=["Foundation"])

    assert result["foods"][0]["fdcId"] == 1
    request, payload = requests[0]
    assert request.full_url == f"{usda_client.API_ROOT}/foods/search?api_key=k%26y"
    assert request.get_method() == "POST"
    assert payload == {"query": "apple", "pageSize": 5, "pageNumber": 1, "dataType": ["Foundation"]}


def test_search_foods_rejects_non_json(captured):
    _, responses = captured
    responses.append(_FakeResponse(b"<html>oops</html>"))

    with pytest.raises(UsdaApiError):
        usda_client.search_foods("key", "apple")


def test_search_foods_rejects_unexpected_shape(captured):
    _, responses = captured
    responses.append(_FakeResponse([1, 2, 3]))

    with pytest.raises(UsdaApiError):
        usda_client.search_foods("key", "apple")


def test_search_foods_wraps_http_errors(monkeypatch):
    def fake_urlopen(request, timeout):
        raise urllib.error.HTTPError(request.full_url, 403, "Forbidden", {}, io.BytesIO(b"API_KEY_INVALID"))

    monkeypatch.setattr(usda_client.urllib.request, "urlopen", fake_urlopen)

    with pytest.raises(UsdaApiError, match="API_KEY_INVALID"):
        usda_client.search_foods("bad", "apple")


def test_search_foods_wraps_connection_errors(monkeypatch):
    def fake_urlopen(request, timeout):
        raise urllib.error.URLError("timed out")

    monkeypatch.setattr(usda_client.urllib.request, "urlopen", fake_urlopen)

    with pytest.raises(UsdaApiError, match="Failed to reach"):
        usda_client.search_foods("key", "apple")


def test_iter_search_foods_pages_until_exhausted(captured):
    requests, responses = captured
    responses.append(_FakeResponse({"totalPages": 2, "foods": [{"fdcId": 1}, {"fdcId": 2}]}))
    responses.append(_FakeResponse({"totalPages": 2, "foods": [{"fdcId": 3}]}))

    foods = list(
        usda_client.iter_search_foods("key", "apple", page_size=2, max_pages=None, requests_per_hour=None)
    )

    assert [food["fdcId"] for food in foods] == [1, 2, 3]
    assert [payload["pageNumber"] for _, payload in requests] == [1, 2]


def test_iter_search_foods_respects_max_pages(captured):
    requests, responses = captured
    responses.append(_FakeResponse({"totalPages": 5, "foods": [{"fdcId": 1}, {"fdcId": 2}]}))

    foods = list(usda_client.iter_search_foods("key", "apple", page_size=2, max_pages=1))

    assert len(foods) == 2
    assert len(requests) == 1


class _FakeClock:
    def __init__(self):
        self.now = 100.0
        self.sleeps = []

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


def test_rate_limiter_pauses_until_oldest_call_leaves_window():
    clock = _FakeClock()
    limiter = usda_client._RateLimiter(max_calls=2, window_seconds=60.0, clock=clock, sleep=clock.sleep)

    assert limiter.wait() == 0.0
    clock.now += 10.0
    assert limiter.wait() == 0.0
    clock.now += 5.0

    assert limiter.wait() == pytest.approx(45.0)
    assert clock.sleeps == [pytest.approx(45.0)]
    # second call from t=110 is still inside the window at t=160
    assert limiter.wait() == pytest.approx(10.0)


def test_rate_limiter_does_not_sleep_once_window_has_passed():
    clock = _FakeClock()
    limiter = usda_client._RateLimiter(max_calls=1, window_seconds=60.0, clock=clock, sleep=clock.sleep)

    limiter.wait()
    clock.now += 61.0
    limiter.wait()

    assert clock.sleeps == []


def test_rate_limiter_without_cap_never_sleeps():
    clock = _FakeClock()
    limiter = usda_client._RateLimiter(max_calls=None, window_seconds=60.0, clock=clock, sleep=clock.sleep)

    for _ in range(50):
        limiter.wait()

    assert clock.sleeps == []


def test_iter_search_foods_waits_on_limiter_before_each_page(captured):
    requests, responses = captured
    responses.append(_FakeResponse({"foods": [{"fdcId": 1}]}))
    responses.append(_FakeResponse({"foods": [{"fdcId": 2}]}))
    responses.append(_FakeResponse({"foods": []}))
    clock = _FakeClock()
    limiter = usda_client._RateLimiter(max_calls=1, window_seconds=30.0, clock=clock, sleep=clock.sleep)

    foods = list(usda_client.iter_search_foods("key", "apple", page_size=1, max_pages=None, rate_limiter=limiter))

    assert [food["fdcId"] for food in foods] == [1, 2]
    assert len(requests) == 3
    assert clock.sleeps == [pytest.approx(30.0), pytest.approx(30.0)]
