"""Pytest configuration and fixtures."""

from collections import defaultdict
from typing import Any

import fakeredis.aioredis
import httpx
import pytest

from seoreport.config import Settings

BASE_URL = "https://api.dataforseo.com/v3"


def envelope(result: Any, status_code: int = 20000, status_message: str = "Ok.") -> dict[str, Any]:
    """Wrap a result list in the provider's task envelope."""
    return {
        "version": "0.1.20250101",
        "status_code": 20000,
        "status_message": "Ok.",
        "tasks_count": 1,
        "tasks_error": 0 if status_code == 20000 else 1,
        "tasks": [
            {
                "id": "01011200-0000-0000-0000-000000000000",
                "status_code": status_code,
                "status_message": status_message,
                "result": result,
            }
        ],
    }


def history_body(etv: float = 1234.6, count: int = 42, cost: float = 500.4) -> dict[str, Any]:
    return envelope(
        [
            {
                "target": "example.com",
                "items": [
                    {"year": 2025, "month": 1, "metrics": {"organic": {"etv": 10.0, "count": 1}}},
                    {
                        "year": 2025,
                        "month": 2,
                        "metrics": {
                            "organic": {
                                "etv": etv,
                                "count": count,
                                "estimated_paid_traffic_cost": cost,
                            }
                        },
                    },
                ],
            }
        ]
    )


def backlinks_body(total: int = 1500, domains: int = 120, nofollow: int = 300) -> dict[str, Any]:
    return envelope(
        [
            {
                "target": "example.com",
                "backlinks": total,
                "referring_domains": domains,
                "referring_links_attributes": {"nofollow": nofollow, "ugc": 2},
            }
        ]
    )


def maps_item(
    title: str,
    domain: str | None,
    city: str,
    votes: int = 0,
    rating: float | None = 4.5,
    category: str = "Pizza restaurant",
) -> dict[str, Any]:
    return {
        "type": "maps_search",
        "title": title,
        "domain": domain,
        "category": category,
        "address": f"1 Main St, {city}, CT 06001",
        "rating": {"value": rating, "votes_count": votes},
    }


def maps_body(items: list[dict[str, Any]]) -> dict[str, Any]:
    return envelope([{"keyword": "query", "items": items}])


def ranked_item(keyword: str, position: int, volume: int, cpc: float = 1.5) -> dict[str, Any]:
    return {
        "keyword_data": {
            "keyword": keyword,
            "keyword_info": {"search_volume": volume, "cpc": cpc, "competition_level": "LOW"},
        },
        "ranked_serp_element": {
            "serp_item": {
                "type": "organic",
                "rank_group": position,
                "rank_absolute": position + 1,
                "url": f"https://example.com/{keyword.replace(' ', '-')}",
            }
        },
    }


def ranked_body(items: list[dict[str, Any]]) -> dict[str, Any]:
    return envelope([{"target": "example.com", "total_count": len(items), "items": items}])


def volume_body(rows: list[tuple[str, int]]) -> dict[str, Any]:
    return envelope(
        [
            {"keyword": keyword, "search_volume": volume, "cpc": 2.25, "competition": "HIGH"}
            for keyword, volume in rows
        ]
    )


class FakeProvider:
    """Stands in for the DataForSEO API behind an httpx.MockTransport."""

    def __init__(self) -> None:
        self.routes: dict[str, list[Any]] = defaultdict(list)
        self.requests: list[httpx.Request] = []

    def add(self, endpoint: str, body: Any = None, status: int = 200, error: Exception | None = None) -> None:
        """Queue a response for an endpoint; the last one queued is repeated."""
        self.routes[endpoint].append(error if error is not None else (status, body))

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        endpoint = request.url.path.removeprefix("/v3/")
        queue = self.routes.get(endpoint)
        if not queue:
            return httpx.Response(404, json={"status_code": 40400, "status_message": "Not Found."})
        response = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(response, Exception):
            raise response
        if isinstance(response, httpx.Response):
            return response
        status, body = response
        return httpx.Response(status, json=body)

    def calls(self, endpoint: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path == f"/v3/{endpoint}"]

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def settings():
    """Settings with credentials and no retries."""
    return Settings(
        _env_file=None,
        dataforseo_login="login@example.com",
        dataforseo_password="secret",
        dataforseo_base_url=BASE_URL,
        upstream_max_retries=0,
        upstream_retry_base_delay_seconds=0.0,
        report_timeout_seconds=5.0,
        tracking_webhook_url="",
    )


@pytest.fixture
def settings_without_credentials(settings):
    return settings.model_copy(update={"dataforseo_login": "", "dataforseo_password": ""})


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def mock_redis():
    """Create a fake Redis client for testing."""
    return fakeredis.aioredis.FakeRedis(decode_responses=True)
