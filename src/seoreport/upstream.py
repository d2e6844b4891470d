"""
DataForSEO API client.

Every call returns an outcome instead of raising: ``Success`` with the parsed
JSON body, or ``Failure`` tagged with a ``FailureKind``. HTTP errors, network
errors and provider-reported error codes all become
``Failure(FailureKind.UPSTREAM_ERROR, ...)``.
"""

import asyncio
import time
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Optional, Union

import httpx
import structlog

from seoreport.config import Settings, get_settings
from seoreport.exceptions import UpstreamError
from seoreport.metrics import metrics

logger = structlog.get_logger()

# Provider endpoints, relative to the v3 base URL
HISTORICAL_RANK_OVERVIEW = "dataforseo_labs/google/historical_rank_overview/live"
MAPS_SEARCH = "serp/google/maps/live/advanced"
BACKLINKS_SUMMARY = "backlinks/summary/live"
RANKED_KEYWORDS = "dataforseo_labs/google/ranked_keywords/live"
SEARCH_VOLUME = "keywords_data/google_ads/search_volume/live"
USER_DATA = "appendix/user_data"

# Provider's "Ok." status code, used both on the envelope and on each task
SUCCESS_CODE = 20000


class FailureKind(StrEnum):
    """Why an upstream call failed."""

    CONFIG_MISSING = "config_missing"
    UPSTREAM_ERROR = "upstream_error"


@dataclass(frozen=True)
class Success:
    """A call that returned a usable body."""

    body: dict[str, Any]
    ok: bool = True


@dataclass(frozen=True)
class Failure:
    """A call that failed."""

    kind: FailureKind
    message: str
    status_code: Optional[int] = None
    ok: bool = False


UpstreamOutcome = Union[Success, Failure]


class DataForSEOClient:
    """Async client for the DataForSEO REST API."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Initialize the client.

        Args:
            settings: Service settings; defaults to the cached environment settings
            transport: Optional httpx transport, used to stub the provider in tests
        """
        self._settings = settings if settings is not None else get_settings()
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def has_credentials(self) -> bool:
        return bool(self._settings.dataforseo_login and self._settings.dataforseo_password)

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._settings.dataforseo_base_url.rstrip("/") + "/",
                auth=httpx.BasicAuth(
                    self._settings.dataforseo_login, self._settings.dataforseo_password
                ),
                headers={"Content-Type": "application/json"},
                timeout=httpx.Timeout(self._settings.upstream_timeout_seconds),
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def call(
        self,
        endpoint: str,
        payload: Optional[list[dict[str, Any]]] = None,
        method: str = "POST",
    ) -> UpstreamOutcome:
        """
        Call one provider endpoint.

        Args:
            endpoint: Path relative to the API base URL
            payload: Task array sent as the JSON body (POST only)
            method: HTTP method

        Returns:
            Success with the parsed body, or Failure
        """
        if not self.has_credentials:
            return Failure(FailureKind.CONFIG_MISSING, "DataForSEO credentials not configured")

        max_retries = self._settings.upstream_max_retries
        attempt = 0
        while True:
            start_time = time.perf_counter()
            try:
                body = await self._request(endpoint, payload, method)
            except UpstreamError as e:
                metrics.upstream_latency.labels(endpoint=endpoint).observe(
                    time.perf_counter() - start_time
                )
                if e.retryable and attempt < max_retries:
                    delay = self._settings.upstream_retry_base_delay_seconds * (2**attempt)
                    logger.warning(
                        "upstream_call_retrying",
                        endpoint=endpoint,
                        attempt=attempt + 1,
                        delay=delay,
                        error=e.message,
                    )
                    attempt += 1
                    await asyncio.sleep(delay)
                    continue

                metrics.upstream_calls_total.labels(endpoint=endpoint, outcome="failure").inc()
                logger.warning(
                    "upstream_call_failed",
                    endpoint=endpoint,
                    status_code=e.status_code,
                    error=e.message,
                )
                return Failure(FailureKind.UPSTREAM_ERROR, e.message, e.status_code)

            metrics.upstream_latency.labels(endpoint=endpoint).observe(
                time.perf_counter() - start_time
            )
            metrics.upstream_calls_total.labels(endpoint=endpoint, outcome="success").inc()
            logger.debug("upstream_call_succeeded", endpoint=endpoint, attempts=attempt + 1)
            return Success(body)

    async def _request(
        self,
        endpoint: str,
        payload: Optional[list[dict[str, Any]]],
        method: str,
    ) -> dict[str, Any]:
        client = self._get_client()
        try:
            if method.upper() == "GET":
                response = await client.get(endpoint)
            else:
                response = await client.request(method.upper(), endpoint, json=payload or [])
        except httpx.TimeoutException:
            raise UpstreamError(
                f"Request timed out after {self._settings.upstream_timeout_seconds}s",
                retryable=True,
            )
        except httpx.HTTPError as e:
            raise UpstreamError(f"Network error: {e}", retryable=True)

        if not response.is_success:
            raise UpstreamError(
                f"HTTP {response.status_code} from provider",
                status_code=response.status_code,
                retryable=response.status_code >= 500,
            )

        try:
            body = response.json()
        except ValueError:
            raise UpstreamError("Provider returned invalid JSON", status_code=response.status_code)

        if not isinstance(body, dict):
            raise UpstreamError("Provider returned an unexpected body", status_code=response.status_code)

        envelope_code = body.get("status_code")
        if envelope_code is not None and envelope_code != SUCCESS_CODE:
            raise UpstreamError(
                body.get("status_message") or f"Provider error {envelope_code}",
                status_code=response.status_code,
            )

        tasks = body.get("tasks") or []
        if tasks and isinstance(tasks[0], dict):
            task_code = tasks[0].get("status_code")
            if task_code is not None and task_code != SUCCESS_CODE:
                raise UpstreamError(
                    tasks[0].get("status_message") or "API request failed",
                    status_code=response.status_code,
                )

        return body

    async def account_balance(self) -> Optional[float]:
        """Return the account's remaining balance, or None when unavailable."""
        outcome = await self.call(USER_DATA, method="GET")
        if not isinstance(outcome, Success):
            return None
        tasks = outcome.body.get("tasks") or []
        try:
            # user_data reports under "result", older responses under "data"
            task = tasks[0]
            data = (task.get("result") or [task.get("data")])[0] or {}
            return float(data["money"]["balance"])
        except (IndexError, KeyError, TypeError, ValueError, AttributeError):
            return None


# Singleton instance
_client: Optional[DataForSEOClient] = None


def get_client() -> DataForSEOClient:
    """Get the upstream client singleton."""
    global _client
    if _client is None:
        _client = DataForSEOClient()
    return _client
