"""Domain models for the SEO report service."""

import re
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

_SCHEME_RE = re.compile(r"^[a-z][a-z0-9+.-]*://", re.IGNORECASE)


class Tier(StrEnum):
    """Requested report depth."""

    QUICK = "quick"
    STANDARD = "standard"
    DETAILED = "detailed"


class SectionStatus(StrEnum):
    """Outcome of one report section."""

    ABSENT = "absent"  # not part of the tier's call plan
    OK = "ok"
    EMPTY = "empty"  # call succeeded but returned no data
    FAILED = "failed"


class Section(StrEnum):
    """Named sections of a report document."""

    OVERVIEW = "overview"
    COMPETITORS = "competitors"
    BACKLINKS = "backlinks"
    TOP_KEYWORDS = "topKeywords"
    OPPORTUNITIES = "opportunities"
    KEYWORD_GAPS = "keywordGaps"
    ANALYZED_KEYWORDS = "analyzedKeywords"


# === Requests ===


class ReportRequest(BaseModel):
    """A validated request for a report."""

    domain: str = Field(..., min_length=1, max_length=253)
    tier: Tier = Field(..., alias="reportType")
    keywords: list[str] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @field_validator("domain", mode="before")
    @classmethod
    def normalize_domain(cls, value: Any) -> Any:
        """Strip scheme, path and surrounding whitespace from the domain."""
        if not isinstance(value, str):
            return value
        domain = _SCHEME_RE.sub("", value.strip())
        domain = domain.split("/", 1)[0].split("?", 1)[0]
        return domain.strip().lower()

    @field_validator("keywords", mode="before")
    @classmethod
    def split_keywords(cls, value: Any) -> Any:
        """Accept a list or a comma-separated string; drop blank entries."""
        if value is None:
            return []
        if isinstance(value, str):
            value = value.split(",")
        if isinstance(value, list):
            return [k.strip() for k in value if isinstance(k, str) and k.strip()]
        return value


class UsageEvent(BaseModel):
    """A usage event posted after a report was generated."""

    action: str = Field(..., min_length=1, max_length=100)
    domain: str | None = None
    report_type: str | None = Field(None, alias="reportType")

    model_config = ConfigDict(populate_by_name=True, serialize_by_alias=True)


# === Rate limiting ===


class RateLimitEntry(BaseModel):
    """Request count for one identity within its current window."""

    identity: str
    count: int = Field(0, ge=0)
    window_reset_at: float


class RateLimitDecision(BaseModel):
    """Result of a rate limit check: admitted or rejected."""

    allowed: bool
    limit: int
    remaining: int = 0
    retry_after_seconds: int = 0
    reset_at: float

    @classmethod
    def admitted(cls, limit: int, remaining: int, reset_at: float) -> "RateLimitDecision":
        return cls(allowed=True, limit=limit, remaining=remaining, reset_at=reset_at)

    @classmethod
    def rejected(cls, limit: int, retry_after_seconds: int, reset_at: float) -> "RateLimitDecision":
        return cls(
            allowed=False,
            limit=limit,
            remaining=0,
            retry_after_seconds=retry_after_seconds,
            reset_at=reset_at,
        )

    @property
    def minutes_left(self) -> int:
        return self.retry_after_seconds // 60


# === Report sections ===


class Overview(BaseModel):
    """Organic search overview for the domain."""

    organic_traffic: int = Field(0, alias="organicTraffic")
    organic_keywords: int = Field(0, alias="organicKeywords")
    traffic_value: int = Field(0, alias="trafficValue")

    model_config = ConfigDict(populate_by_name=True, serialize_by_alias=True)

    @classmethod
    def zeroed(cls) -> "Overview":
        return cls(organic_traffic=0, organic_keywords=0, traffic_value=0)


class Backlinks(BaseModel):
    """Backlink profile summary."""

    total: int = 0
    domains: int = 0
    dofollow: int = 0


class Competitor(BaseModel):
    """A local competitor found through the maps lookup."""

    domain: str
    name: str | None = None
    rating: float | None = None
    reviews: int = 0
    address: str | None = None


class KeywordRecord(BaseModel):
    """A keyword with its search metrics."""

    keyword: str
    position: int | None = None
    volume: int = 0
    cpc: float = 0.0
    competition: str | None = None
    url: str | None = None
    potential_traffic: int | None = Field(None, alias="potentialTraffic")

    model_config = ConfigDict(populate_by_name=True, serialize_by_alias=True)


class ReportDocument(BaseModel):
    """Aggregated report. Sections are None when absent."""

    domain: str
    generated_at: str
    report_type: Tier = Field(..., alias="reportType")
    overview: Overview | None = None
    backlinks: Backlinks | None = None
    competitors: list[Competitor] | None = None
    top_keywords: list[KeywordRecord] | None = Field(None, alias="topKeywords")
    opportunities: list[KeywordRecord] | None = None
    keyword_gaps: list[KeywordRecord] | None = Field(None, alias="keywordGaps")
    analyzed_keywords: list[KeywordRecord] | None = Field(None, alias="analyzedKeywords")
    sections: dict[Section, SectionStatus] = Field(default_factory=dict)

    model_config = ConfigDict(populate_by_name=True, serialize_by_alias=True)

    def has_data(self) -> bool:
        """True when at least one section carries data."""
        return any(
            [
                self.overview is not None,
                self.backlinks is not None,
                bool(self.competitors),
                bool(self.top_keywords),
                bool(self.opportunities),
                bool(self.keyword_gaps),
                bool(self.analyzed_keywords),
            ]
        )

    def to_response(self) -> dict[str, Any]:
        """Serialize for the JSON response, dropping absent sections."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# === Response bodies ===


class RateLimitedResponse(BaseModel):
    """Body returned with HTTP 429."""

    message: str
    retry_after: int = Field(..., alias="retryAfter")

    model_config = ConfigDict(populate_by_name=True, serialize_by_alias=True)


class ErrorResponse(BaseModel):
    """Body returned for 4xx/5xx errors."""

    message: str
    error: str | None = None
