"""
Upstream response shapes and their mapping onto report sections.

Each provider call gets a partial DTO (every field optional, unknown fields
ignored) and a pure function that turns a response body into a report
section. Nothing in this module performs I/O.
"""

import math
import re
from typing import Any, Iterable, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from seoreport.models import Backlinks, Competitor, KeywordRecord, Overview

TOP_KEYWORD_MAX_POSITION = 10
OPPORTUNITY_MAX_POSITION = 30
MAX_COMPETITORS = 5
# Share of a keyword's volume expected at position 1
POSITION_ONE_CTR = 0.30


class _Partial(BaseModel):
    model_config = ConfigDict(extra="ignore")


# === DTOs ===


class OrganicMetrics(_Partial):
    etv: Optional[float] = None
    count: Optional[int] = None
    estimated_paid_traffic_cost: Optional[float] = None


class HistoryMetrics(_Partial):
    organic: Optional[OrganicMetrics] = None


class HistoryItem(_Partial):
    year: Optional[int] = None
    month: Optional[int] = None
    metrics: Optional[HistoryMetrics] = None


class BacklinksSummary(_Partial):
    backlinks: Optional[int] = None
    referring_domains: Optional[int] = None
    referring_links_attributes: Optional[dict[str, Optional[int]]] = None


class MapsRating(_Partial):
    value: Optional[float] = None
    votes_count: Optional[int] = None


class MapsItem(_Partial):
    title: Optional[str] = None
    domain: Optional[str] = None
    category: Optional[str] = None
    place_type: Optional[str] = None
    address: Optional[str] = None
    rating: Optional[MapsRating] = None


class KeywordInfo(_Partial):
    search_volume: Optional[int] = None
    cpc: Optional[float] = None
    competition_level: Optional[str] = None


class KeywordData(_Partial):
    keyword: Optional[str] = None
    keyword_info: Optional[KeywordInfo] = None


class SerpItem(_Partial):
    rank_group: Optional[int] = None
    rank_absolute: Optional[int] = None
    url: Optional[str] = None


class RankedSerpElement(_Partial):
    serp_item: Optional[SerpItem] = None


class RankedKeywordItem(_Partial):
    keyword_data: Optional[KeywordData] = None
    ranked_serp_element: Optional[RankedSerpElement] = None


class SearchVolumeItem(_Partial):
    keyword: Optional[str] = None
    search_volume: Optional[int] = None
    cpc: Optional[float] = None
    competition: Optional[str] = None

    @field_validator("competition", mode="before")
    @classmethod
    def competition_as_text(cls, value: Any) -> Any:
        if value is None or isinstance(value, str):
            return value
        return str(value)


class BusinessProfile(BaseModel):
    """Category and city of the target business, from the first maps lookup."""

    category: str = "business"
    city: str = ""


# === Helpers ===


def round_half_up(value: Optional[float]) -> int:
    """Round to the nearest integer, halves away from zero for positives."""
    if value is None:
        return 0
    return int(math.floor(value + 0.5))


def task_results(body: dict[str, Any]) -> list[dict[str, Any]]:
    """Return ``tasks[0].result`` from a provider envelope, or an empty list."""
    tasks = body.get("tasks") or []
    if not tasks or not isinstance(tasks[0], dict):
        return []
    result = tasks[0].get("result") or []
    return [r for r in result if isinstance(r, dict)]


def _result_items(body: dict[str, Any]) -> list[dict[str, Any]]:
    results = task_results(body)
    if not results:
        return []
    items = results[0].get("items") or []
    return [i for i in items if isinstance(i, dict)]


def _parse_items(model: type[_Partial], raw: Iterable[dict[str, Any]]) -> list:
    parsed = []
    for item in raw:
        try:
            parsed.append(model.model_validate(item))
        except ValidationError:
            continue
    return parsed


def potential_traffic(volume: int, position: int) -> int:
    """
    Estimated monthly visits for a keyword at a given position.

    ``volume * 0.30 / position``: position 1 earns 30% of searches and the
    share falls off as 1/position.
    """
    if position <= 0 or volume <= 0:
        return 0
    return round_half_up(volume * POSITION_ONE_CTR / position)


# === Overview ===


def map_overview(body: dict[str, Any]) -> Optional[Overview]:
    """Overview from the most recent historical rank entry, None if there is none."""
    items = _parse_items(HistoryItem, _result_items(body))
    if not items:
        return None

    latest = items[-1]
    organic = (latest.metrics.organic if latest.metrics else None) or OrganicMetrics()
    return Overview(
        organic_traffic=round_half_up(organic.etv),
        organic_keywords=organic.count or 0,
        traffic_value=round_half_up(organic.estimated_paid_traffic_cost),
    )


# === Backlinks ===


def map_backlinks(body: dict[str, Any]) -> Optional[Backlinks]:
    results = task_results(body)
    if not results:
        return None

    try:
        summary = BacklinksSummary.model_validate(results[0])
    except ValidationError:
        return None

    total = summary.backlinks or 0
    nofollow = (summary.referring_links_attributes or {}).get("nofollow") or 0
    return Backlinks(
        total=total,
        domains=summary.referring_domains or 0,
        dofollow=max(total - nofollow, 0),
    )


# === Competitors ===


def business_name_from_domain(domain: str) -> str:
    """'joes-pizza.com' -> 'joes pizza'."""
    host = domain.lower()
    if host.startswith("www."):
        host = host[4:]
    return re.sub(r"[^a-z0-9]", " ", host.split(".")[0]).strip()


def extract_city(address: Optional[str]) -> str:
    """City from a '123 Main St, City, ST 12345' address; empty if unknown."""
    if not address:
        return ""
    parts = address.split(",")
    if len(parts) < 2:
        return ""
    return parts[-2].strip()


def _bare_host(domain: str) -> str:
    host = domain.strip().lower().rstrip("/")
    return host[4:] if host.startswith("www.") else host


def maps_items(body: dict[str, Any]) -> list[MapsItem]:
    return _parse_items(MapsItem, _result_items(body))


def resolve_business_profile(body: dict[str, Any]) -> BusinessProfile:
    """Category and city of the first maps result for the business."""
    items = maps_items(body)
    if not items:
        return BusinessProfile()

    first = items[0]
    return BusinessProfile(
        category=first.category or first.place_type or "business",
        city=extract_city(first.address),
    )


def competitor_search_query(profile: BusinessProfile, region: str) -> str:
    if profile.city:
        return f"{profile.category} in {profile.city} {region}"
    return f"{profile.category} near {region}"


def rank_competitors(
    items: Iterable[MapsItem],
    domain: str,
    business_name: str,
    city: str,
    limit: int = MAX_COMPETITORS,
) -> list[Competitor]:
    """
    Drop the target itself, then order same-city businesses first and by
    review count within each group.
    """
    target = _bare_host(domain)
    name = business_name.lower().strip()

    candidates: list[tuple[bool, Competitor]] = []
    for item in items:
        if not item.domain or _bare_host(item.domain) == target:
            continue
        if name and item.title and name in item.title.lower():
            continue

        competitor_city = extract_city(item.address)
        rating = item.rating or MapsRating()
        candidates.append(
            (
                bool(city) and competitor_city == city,
                Competitor(
                    domain=item.domain,
                    name=item.title,
                    rating=rating.value,
                    reviews=rating.votes_count or 0,
                    address=item.address,
                ),
            )
        )

    candidates.sort(key=lambda c: (not c[0], -c[1].reviews))
    return [competitor for _, competitor in candidates[:limit]]


# === Keywords ===


def _ranked_items(body: dict[str, Any]) -> list[RankedKeywordItem]:
    return _parse_items(RankedKeywordItem, _result_items(body))


def _ranked_record(item: RankedKeywordItem) -> Optional[KeywordRecord]:
    data = item.keyword_data
    if not data or not data.keyword:
        return None
    serp = (item.ranked_serp_element.serp_item if item.ranked_serp_element else None) or SerpItem()
    position = serp.rank_group or serp.rank_absolute
    if not position:
        return None

    info = data.keyword_info or KeywordInfo()
    volume = info.search_volume or 0
    return KeywordRecord(
        keyword=data.keyword,
        position=position,
        volume=volume,
        cpc=info.cpc or 0.0,
        competition=info.competition_level,
        url=serp.url,
        potential_traffic=potential_traffic(volume, position),
    )


def ranked_positions(body: dict[str, Any]) -> dict[str, int]:
    """Keyword (lower-cased) -> best position the domain holds for it."""
    positions: dict[str, int] = {}
    for item in _ranked_items(body):
        record = _ranked_record(item)
        if record is None or record.position is None:
            continue
        key = record.keyword.lower()
        positions[key] = min(positions.get(key, record.position), record.position)
    return positions


def classify_ranked_keywords(
    body: dict[str, Any],
) -> tuple[list[KeywordRecord], list[KeywordRecord]]:
    """Split ranked keywords into top keywords (1-10) and opportunities (11-30)."""
    top: list[KeywordRecord] = []
    opportunities: list[KeywordRecord] = []

    for item in _ranked_items(body):
        record = _ranked_record(item)
        if record is None or record.position is None:
            continue
        if record.position <= TOP_KEYWORD_MAX_POSITION:
            top.append(record)
        elif record.position <= OPPORTUNITY_MAX_POSITION:
            opportunities.append(record)

    def order(record: KeywordRecord) -> tuple[int, int]:
        return (record.position or 0, -record.volume)

    return sorted(top, key=order), sorted(opportunities, key=order)


def map_keyword_volumes(
    body: dict[str, Any],
    positions: Optional[dict[str, int]] = None,
) -> list[KeywordRecord]:
    """Search volume records for the supplied keywords, in provider order."""
    positions = positions or {}
    records = []
    for item in _parse_items(SearchVolumeItem, task_results(body)):
        if not item.keyword:
            continue
        volume = item.search_volume or 0
        position = positions.get(item.keyword.lower())
        records.append(
            KeywordRecord(
                keyword=item.keyword,
                position=position,
                volume=volume,
                cpc=item.cpc or 0.0,
                competition=item.competition,
                potential_traffic=potential_traffic(volume, position) if position else None,
            )
        )
    return records


def keyword_gaps(
    analyzed: Iterable[KeywordRecord],
    positions: dict[str, int],
) -> list[KeywordRecord]:
    """
    Analyzed keywords the domain does not rank for, biggest first.

    Potential traffic is what position 1 would bring.
    """
    gaps = [
        record.model_copy(
            update={
                "position": None,
                "potential_traffic": potential_traffic(record.volume, 1),
            }
        )
        for record in analyzed
        if record.keyword.lower() not in positions
    ]
    return sorted(gaps, key=lambda r: -r.volume)
