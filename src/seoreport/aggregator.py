"""
Report assembly.

``ReportAggregator.build`` runs the tier's call plan one call at a time and
merges each outcome into a ``ReportDocument``. A failed call only affects its
own section(s); the plan always runs to the end or to the deadline.
"""

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

import structlog

from seoreport import mapping
from seoreport.config import Settings, get_settings
from seoreport.exceptions import ConfigMissingError
from seoreport.metrics import metrics
from seoreport.models import (
    Overview,
    ReportDocument,
    ReportRequest,
    Section,
    SectionStatus,
    Tier,
)
from seoreport.upstream import (
    BACKLINKS_SUMMARY,
    HISTORICAL_RANK_OVERVIEW,
    MAPS_SEARCH,
    RANKED_KEYWORDS,
    SEARCH_VOLUME,
    DataForSEOClient,
    Success,
    get_client,
)

logger = structlog.get_logger()

MAX_ANALYZED_KEYWORDS = 10


@dataclass
class _BuildState:
    """Mutable state of one build."""

    request: ReportRequest
    document: ReportDocument
    pending: set[Section] = field(default_factory=set)
    # Keyword -> position, set once ranked keywords succeeded
    positions: Optional[dict[str, int]] = None


def planned_sections(request: ReportRequest) -> list[Section]:
    """Sections the tier's call plan will try to fill, in call order."""
    sections = [Section.OVERVIEW]
    if request.tier in (Tier.STANDARD, Tier.DETAILED):
        sections += [Section.COMPETITORS, Section.BACKLINKS]
    if request.tier == Tier.DETAILED:
        sections += [Section.TOP_KEYWORDS, Section.OPPORTUNITIES]
        if request.keywords:
            sections += [Section.ANALYZED_KEYWORDS, Section.KEYWORD_GAPS]
    return sections


class ReportAggregator:
    """Builds report documents from the upstream provider."""

    def __init__(
        self,
        client: Optional[DataForSEOClient] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings if settings is not None else get_settings()
        self._client = client if client is not None else get_client()

    async def build(self, request: ReportRequest) -> ReportDocument:
        """
        Build the report for ``request``.

        Raises:
            ConfigMissingError: upstream credentials are not configured.
                Upstream failures never raise; they degrade sections.
        """
        if not self._client.has_credentials:
            raise ConfigMissingError()

        start_time = time.perf_counter()
        document = ReportDocument(
            domain=request.domain,
            generated_at=datetime.now(timezone.utc).isoformat(timespec="milliseconds"),
            report_type=request.tier,
            sections={section: SectionStatus.ABSENT for section in Section},
        )
        state = _BuildState(
            request=request,
            document=document,
            pending=set(planned_sections(request)),
        )

        logger.info(
            "report_build_started",
            domain=request.domain,
            tier=request.tier.value,
            keywords=len(request.keywords),
        )

        try:
            await asyncio.wait_for(
                self._run_plan(state), timeout=self._settings.report_timeout_seconds
            )
        except asyncio.TimeoutError:
            logger.warning(
                "report_deadline_exceeded",
                domain=request.domain,
                tier=request.tier.value,
                unresolved=sorted(s.value for s in state.pending),
            )
            for section in list(state.pending):
                self._fail(state, section)

        duration = time.perf_counter() - start_time
        metrics.reports_total.labels(tier=request.tier.value).inc()
        metrics.report_duration.labels(tier=request.tier.value).observe(duration)
        for section, status in document.sections.items():
            if status != SectionStatus.ABSENT:
                metrics.sections_total.labels(section=section.value, status=status.value).inc()

        logger.info(
            "report_build_finished",
            domain=request.domain,
            tier=request.tier.value,
            duration=round(duration, 3),
            sections={s.value: st.value for s, st in document.sections.items()},
        )
        return document

    async def _run_plan(self, state: _BuildState) -> None:
        if self._settings.log_account_balance:
            balance = await self._client.account_balance()
            logger.info("account_balance", balance=balance)

        tier = state.request.tier
        steps: list[tuple[Callable[[_BuildState], Awaitable[None]], list[Section]]] = [
            (self._overview_step, [Section.OVERVIEW]),
        ]
        if tier in (Tier.STANDARD, Tier.DETAILED):
            steps.append((self._competitors_step, [Section.COMPETITORS]))
            steps.append((self._backlinks_step, [Section.BACKLINKS]))
        if tier == Tier.DETAILED:
            steps.append((self._ranked_keywords_step, [Section.TOP_KEYWORDS, Section.OPPORTUNITIES]))
            if state.request.keywords:
                steps.append(
                    (self._keyword_volume_step, [Section.ANALYZED_KEYWORDS, Section.KEYWORD_GAPS])
                )

        for step, sections in steps:
            try:
                await step(state)
            except asyncio.CancelledError:
                raise
            except Exception:
                # A mapping bug must not take the rest of the report down with it
                logger.exception("report_step_failed", step=step.__name__, domain=state.request.domain)
                for section in sections:
                    if section in state.pending:
                        self._fail(state, section)

    # === Section bookkeeping ===

    def _resolve(self, state: _BuildState, section: Section, status: SectionStatus) -> None:
        state.document.sections[section] = status
        state.pending.discard(section)

    def _fail(self, state: _BuildState, section: Section) -> None:
        if section == Section.OVERVIEW:
            # The overview is zeroed rather than dropped when it cannot be fetched
            state.document.overview = Overview.zeroed()
        self._resolve(state, section, SectionStatus.FAILED)

    def _location(self) -> dict[str, object]:
        return {
            "location_code": self._settings.location_code,
            "language_code": self._settings.language_code,
        }

    # === Steps ===

    async def _overview_step(self, state: _BuildState) -> None:
        outcome = await self._client.call(
            HISTORICAL_RANK_OVERVIEW,
            [
                {
                    "target": state.request.domain,
                    **self._location(),
                    "date_from": self._settings.history_date_from,
                }
            ],
        )
        if not isinstance(outcome, Success):
            self._fail(state, Section.OVERVIEW)
            return

        overview = mapping.map_overview(outcome.body)
        if overview is None:
            logger.info("overview_empty", domain=state.request.domain)
            self._resolve(state, Section.OVERVIEW, SectionStatus.EMPTY)
            return

        state.document.overview = overview
        self._resolve(state, Section.OVERVIEW, SectionStatus.OK)

    async def _competitors_step(self, state: _BuildState) -> None:
        domain = state.request.domain
        business_name = mapping.business_name_from_domain(domain)

        lookup = await self._client.call(
            MAPS_SEARCH,
            [{"keyword": f"{business_name} {self._settings.maps_region}", **self._location()}],
        )
        if not isinstance(lookup, Success):
            self._fail(state, Section.COMPETITORS)
            return

        profile = mapping.resolve_business_profile(lookup.body)
        query = mapping.competitor_search_query(profile, self._settings.maps_region)
        logger.debug(
            "business_profile_resolved",
            domain=domain,
            category=profile.category,
            city=profile.city,
            query=query,
        )

        search = await self._client.call(
            MAPS_SEARCH,
            [
                {
                    "keyword": query,
                    **self._location(),
                    "depth": self._settings.competitor_search_depth,
                }
            ],
        )
        if not isinstance(search, Success):
            self._fail(state, Section.COMPETITORS)
            return

        competitors = mapping.rank_competitors(
            mapping.maps_items(search.body), domain, business_name, profile.city
        )
        if not competitors:
            self._resolve(state, Section.COMPETITORS, SectionStatus.EMPTY)
            return

        state.document.competitors = competitors
        self._resolve(state, Section.COMPETITORS, SectionStatus.OK)
        logger.info("competitors_found", domain=domain, count=len(competitors), city=profile.city)

    async def _backlinks_step(self, state: _BuildState) -> None:
        outcome = await self._client.call(
            BACKLINKS_SUMMARY,
            [{"target": state.request.domain, "include_subdomains": True}],
        )
        if not isinstance(outcome, Success):
            self._fail(state, Section.BACKLINKS)
            return

        backlinks = mapping.map_backlinks(outcome.body)
        if backlinks is None:
            self._resolve(state, Section.BACKLINKS, SectionStatus.EMPTY)
            return

        state.document.backlinks = backlinks
        self._resolve(state, Section.BACKLINKS, SectionStatus.OK)

    async def _ranked_keywords_step(self, state: _BuildState) -> None:
        outcome = await self._client.call(
            RANKED_KEYWORDS,
            [
                {
                    "target": state.request.domain,
                    **self._location(),
                    "limit": self._settings.ranked_keywords_limit,
                    "order_by": ["ranked_serp_element.serp_item.rank_group,asc"],
                }
            ],
        )
        if not isinstance(outcome, Success):
            self._fail(state, Section.TOP_KEYWORDS)
            self._fail(state, Section.OPPORTUNITIES)
            return

        state.positions = mapping.ranked_positions(outcome.body)
        top, opportunities = mapping.classify_ranked_keywords(outcome.body)

        if top:
            state.document.top_keywords = top
        self._resolve(state, Section.TOP_KEYWORDS, SectionStatus.OK if top else SectionStatus.EMPTY)

        if opportunities:
            state.document.opportunities = opportunities
        self._resolve(
            state,
            Section.OPPORTUNITIES,
            SectionStatus.OK if opportunities else SectionStatus.EMPTY,
        )

    async def _keyword_volume_step(self, state: _BuildState) -> None:
        keywords = state.request.keywords[:MAX_ANALYZED_KEYWORDS]
        outcome = await self._client.call(
            SEARCH_VOLUME,
            [{"keywords": keywords, **self._location()}],
        )
        if not isinstance(outcome, Success):
            self._fail(state, Section.ANALYZED_KEYWORDS)
            self._fail(state, Section.KEYWORD_GAPS)
            return

        analyzed = mapping.map_keyword_volumes(outcome.body, state.positions)
        if analyzed:
            state.document.analyzed_keywords = analyzed
        self._resolve(
            state,
            Section.ANALYZED_KEYWORDS,
            SectionStatus.OK if analyzed else SectionStatus.EMPTY,
        )

        if state.positions is None:
            # Gaps need to know what the domain already ranks for
            self._fail(state, Section.KEYWORD_GAPS)
            return

        gaps = mapping.keyword_gaps(analyzed, state.positions)
        if gaps:
            state.document.keyword_gaps = gaps
        self._resolve(state, Section.KEYWORD_GAPS, SectionStatus.OK if gaps else SectionStatus.EMPTY)


# Singleton instance
_aggregator: Optional[ReportAggregator] = None


def get_aggregator() -> ReportAggregator:
    """Get the aggregator singleton."""
    global _aggregator
    if _aggregator is None:
        _aggregator = ReportAggregator()
    return _aggregator
