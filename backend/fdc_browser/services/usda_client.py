from __future__ import annotations

import itertools
import json
import logging
import time
import urllib.error
import urllib.parse
import urllib.request
from collections import deque
from typing import Callable, Deque, Iterable, Optional, Sequence

from ..errors import UsdaApiError

logger = logging.getLogger(__name__)

API_ROOT = "https://api.nal.usda.gov/fdc/v1"
DEFAULT_DATA_TYPES = (
    "Branded",
    "Survey (FNDDS)",
    "Foundation",
    "SR Legacy",
)


class _RateLimiter:
    """Sliding-window cap on outbound calls: at most ``max_calls`` per ``window_seconds``.

    ``clock`` and ``sleep`` default to the real monotonic clock and
    ``time.sleep``; tests pass fakes.
    """

    def __init__(
        self,
        *,
        max_calls: Optional[int],
        window_seconds: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.max_calls = max_calls
        self.window_seconds = window_seconds
        self._clock = clock
        self._sleep = sleep
        self._sent: Deque[float] = deque()

    def _expire(self, now: float) -> None:
        while self._sent and now - self._sent[0] >= self.window_seconds:
            self._sent.popleft()

    def wait(self) -> float:
        """Block until another call fits in the window; returns seconds slept."""
        if not self.max_calls:
            return 0.0
        now = self._clock()
        self._expire(now)
        slept = 0.0
        if len(self._sent) >= self.max_calls:
            slept = self._sent[0] + self.window_seconds - now
            logger.info("USDA request budget spent, pausing %.1fs", slept)
            self._sleep(slept)
            now = self._clock()
            self._sent.popleft()
            self._expire(now)
        self._sent.append(now)
        return slept


def _decode(body: bytes) -> dict:
    try:
        parsed = json.loads(body)
    except json.JSONDecodeError as exc:
        raise UsdaApiError("Failed to decode USDA API response as JSON") from exc
    if not isinstance(parsed, dict):
        raise UsdaApiError("Unexpected USDA API response format; expected an object")
    return parsed


def _post(api_key: str, path: str, payload: dict, timeout: float) -> dict:
    request = urllib.request.Request(
        f"{API_ROOT}/{path}?{urllib.parse.urlencode({'api_key': api_key})}",
        data=json.dumps(payload).encode("utf-8"),
        headers={"Content-Type": "application/json", "Accept": "application/json"},
        method="POST",
    )
    try:
        with urllib.request.urlopen(request, timeout=timeout) as response:
            if response.status != 200:
                raise UsdaApiError(f"Unexpected status code {response.status}")
            return _decode(response.read())
    except urllib.error.HTTPError as exc:
        detail = exc.read().decode("utf-8", errors="replace")
        raise UsdaApiError(f"USDA API request failed: {exc.reason}: {detail}") from exc
    except urllib.error.URLError as exc:
        raise UsdaApiError(f"Failed to reach USDA API: {exc.reason}") from exc


def search_foods(
    api_key: str,
    query: str,
    *,
    page_size: int = 25,
    page_number: int = 1,
    data_types: Optional[Sequence[str]] = None,
    timeout: float = 30.0,
) -> dict:
    """Run one ``foods/search`` call and return the decoded response."""
    payload: dict = {"query": query, "pageSize": page_size, "pageNumber": page_number}
    if data_types:
        payload["dataType"] = list(data_types)
    logger.info("Searching USDA FoodData Central for %r (page %d)", query, page_number)
    result = _post(api_key, "foods/search", payload, timeout)
    if not isinstance(result.get("foods", []), list):
        raise UsdaApiError("Unexpected USDA API response format; 'foods' is not a list")
    return result


def _is_last_page(response: dict, page: int, page_size: int) -> bool:
    total_pages = response.get("totalPages")
    if isinstance(total_pages, int) and page >= total_pages:
        return True
    return len(response.get("foods") or []) < page_size


def iter_search_foods(
    api_key: str,
    query: str,
    *,
    page_size: int = 25,
    start_page: int = 1,
    max_pages: Optional[int] = 1,
    data_types: Optional[Sequence[str]] = None,
    delay: float = 0.0,
    timeout: float = 30.0,
    requests_per_hour: Optional[int] = 1000,
    rate_limiter: Optional[_RateLimiter] = None,
) -> Iterable[dict]:
    """Yield search hits page by page until the results or ``max_pages`` run out."""
    limiter = rate_limiter or _RateLimiter(max_calls=requests_per_hour, window_seconds=3600.0)
    for page in itertools.count(start_page):
        limiter.wait()
        response = search_foods(
            api_key,
            query,
            page_size=page_size,
            page_number=page,
            data_types=data_types,
            timeout=timeout,
        )
        foods = response.get("foods") or []
        yield from foods
        if not foods or _is_last_page(response, page, page_size) or (max_pages is not None and page - start_page + 1 >= max_pages):
            return
        if delay:
            time.sleep(delay)


__all__ = ["API_ROOT", "DEFAULT_DATA_TYPES", "search_foods", "iter_search_foods"]
