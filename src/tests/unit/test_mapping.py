"""Unit tests for upstream response mapping."""

import pytest

from conftest import (
    backlinks_body,
    envelope,
    history_body,
    maps_body,
    maps_item,
    ranked_body,
    ranked_item,
    volume_body,
)
from seoreport import mapping
from seoreport.models import KeywordRecord


class TestOverview:
    """Tests for map_overview."""

    def test_latest_item_rounded(self):
        """Test etv 1234.6 -> 1235, cost 500.4 -> 500."""
        overview = mapping.map_overview(history_body(etv=1234.6, count=42, cost=500.4))

        assert overview.organic_traffic == 1235
        assert overview.organic_keywords == 42
        assert overview.traffic_value == 500

    def test_half_rounds_up(self):
        overview = mapping.map_overview(history_body(etv=2.5, count=1, cost=0.5))

        assert overview.organic_traffic == 3
        assert overview.traffic_value == 1

    def test_missing_fields_default_to_zero(self):
        body = envelope([{"items": [{"metrics": {"organic": {}}}]}])

        overview = mapping.map_overview(body)

        assert (overview.organic_traffic, overview.organic_keywords, overview.traffic_value) == (0, 0, 0)

    def test_missing_metrics_default_to_zero(self):
        overview = mapping.map_overview(envelope([{"items": [{"year": 2025}]}]))

        assert overview.organic_traffic == 0

    @pytest.mark.parametrize(
        "body",
        [
            envelope([{"items": []}]),
            envelope([]),
            envelope(None),
            {"tasks": []},
            {},
        ],
    )
    def test_no_history(self, body):
        assert mapping.map_overview(body) is None


class TestBacklinks:
    """Tests for map_backlinks."""

    def test_summary(self):
        backlinks = mapping.map_backlinks(backlinks_body(total=1500, domains=120, nofollow=300))

        assert backlinks.total == 1500
        assert backlinks.domains == 120
        assert backlinks.dofollow == 1200

    def test_missing_attributes(self):
        backlinks = mapping.map_backlinks(envelope([{"backlinks": 10}]))

        assert backlinks.total == 10
        assert backlinks.domains == 0
        assert backlinks.dofollow == 10

    def test_dofollow_never_negative(self):
        backlinks = mapping.map_backlinks(backlinks_body(total=5, nofollow=9))

        assert backlinks.dofollow == 0

    def test_empty(self):
        assert mapping.map_backlinks(envelope([])) is None


class TestCompetitorHelpers:
    """Tests for business profile helpers."""

    @pytest.mark.parametrize(
        "domain,expected",
        [
            ("joes-pizza.com", "joes pizza"),
            ("www.acme.co.uk", "acme"),
            ("Example.com", "example"),
        ],
    )
    def test_business_name(self, domain, expected):
        assert mapping.business_name_from_domain(domain) == expected

    @pytest.mark.parametrize(
        "address,expected",
        [
            ("123 Main St, Hartford, CT 06103", "Hartford"),
            ("Hartford, CT", "Hartford"),
            ("Somewhere", ""),
            (None, ""),
            ("", ""),
        ],
    )
    def test_extract_city(self, address, expected):
        assert mapping.extract_city(address) == expected

    def test_profile_from_first_result(self):
        body = maps_body(
            [
                maps_item("Joe's Pizza", "joes-pizza.com", "Hartford", category="Pizza restaurant"),
                maps_item("Other", "other.com", "Avon", category="Bakery"),
            ]
        )

        profile = mapping.resolve_business_profile(body)

        assert profile.category == "Pizza restaurant"
        assert profile.city == "Hartford"

    def test_profile_place_type_fallback(self):
        body = maps_body([{"title": "X", "place_type": "dentist"}])

        profile = mapping.resolve_business_profile(body)

        assert profile.category == "dentist"
        assert profile.city == ""

    def test_profile_defaults(self):
        profile = mapping.resolve_business_profile(maps_body([]))

        assert profile.category == "business"
        assert profile.city == ""

    def test_search_query(self):
        with_city = mapping.BusinessProfile(category="Bakery", city="Avon")
        without_city = mapping.BusinessProfile(category="Bakery")

        assert mapping.competitor_search_query(with_city, "Connecticut") == "Bakery in Avon Connecticut"
        assert mapping.competitor_search_query(without_city, "Connecticut") == "Bakery near Connecticut"


class TestRankCompetitors:
    """Tests for rank_competitors."""

    def _items(self, raw):
        return mapping.maps_items(maps_body(raw))

    def test_excludes_target_and_unlisted(self):
        items = self._items(
            [
                maps_item("Joe's Pizza Hartford", "joespizza-hartford.com", "Hartford", votes=900),
                maps_item("Someone", "www.joespizza.com", "Hartford", votes=800),
                maps_item("No Website", None, "Hartford", votes=700),
                maps_item("Sal's", "sals.com", "Hartford", votes=10),
            ]
        )

        competitors = mapping.rank_competitors(items, "joespizza.com", "joespizza", "Hartford")

        assert [c.domain for c in competitors] == ["joespizza-hartford.com", "sals.com"]

    def test_excludes_matching_business_name(self):
        items = self._items(
            [
                maps_item("Joes Pizza East", "joes-east.com", "Hartford", votes=900),
                maps_item("Sal's", "sals.com", "Hartford", votes=10),
            ]
        )

        competitors = mapping.rank_competitors(items, "joes-pizza.com", "joes pizza", "Hartford")

        assert [c.domain for c in competitors] == ["sals.com"]

    def test_same_city_first_then_reviews(self):
        items = self._items(
            [
                maps_item("A", "a.com", "Avon", votes=1000),
                maps_item("B", "b.com", "Hartford", votes=5),
                maps_item("C", "c.com", "Hartford", votes=50),
                maps_item("D", "d.com", "Avon", votes=2000),
            ]
        )

        competitors = mapping.rank_competitors(items, "target.com", "target", "Hartford")

        assert [c.domain for c in competitors] == ["c.com", "b.com", "d.com", "a.com"]

    def test_top_five(self):
        items = self._items([maps_item(f"Biz {i}", f"biz{i}.com", "Hartford", votes=i) for i in range(8)])

        competitors = mapping.rank_competitors(items, "target.com", "target", "Hartford")

        assert len(competitors) == 5
        assert competitors[0].reviews == 7

    def test_fields(self):
        items = self._items([maps_item("Sal's", "sals.com", "Avon", votes=12, rating=4.2)])

        competitor = mapping.rank_competitors(items, "target.com", "target", "")[0]

        assert competitor.name == "Sal's"
        assert competitor.rating == 4.2
        assert competitor.reviews == 12
        assert competitor.address == "1 Main St, Avon, CT 06001"


class TestKeywords:
    """Tests for ranked keyword classification and keyword volumes."""

    def test_potential_traffic_decreases_with_position(self):
        values = [mapping.potential_traffic(1000, p) for p in range(1, 31)]

        assert values[0] == 300
        assert all(a >= b for a, b in zip(values, values[1:]))
        assert values[0] > values[-1]

    def test_potential_traffic_edges(self):
        assert mapping.potential_traffic(0, 1) == 0
        assert mapping.potential_traffic(100, 0) == 0

    def test_classify(self):
        body = ranked_body(
            [
                ranked_item("pizza hartford", 3, 500),
                ranked_item("best pizza", 1, 2000),
                ranked_item("pizza delivery", 15, 1000),
                ranked_item("pizza near me", 30, 9000),
                ranked_item("calzone", 31, 100),
                ranked_item("stromboli", 10, 50),
            ]
        )

        top, opportunities = mapping.classify_ranked_keywords(body)

        assert [k.keyword for k in top] == ["best pizza", "pizza hartford", "stromboli"]
        assert [k.keyword for k in opportunities] == ["pizza delivery", "pizza near me"]
        assert top[0].potential_traffic == 600
        assert opportunities[0].url == "https://example.com/pizza-delivery"
        assert opportunities[0].competition == "LOW"

    def test_classify_skips_incomplete_items(self):
        body = ranked_body([{"keyword_data": {"keyword": "x"}}, {"ranked_serp_element": {}}])

        assert mapping.classify_ranked_keywords(body) == ([], [])

    def test_ranked_positions(self):
        body = ranked_body([ranked_item("Pizza", 4, 10), ranked_item("pizza", 2, 10), ranked_item("pasta", 40, 5)])

        assert mapping.ranked_positions(body) == {"pizza": 2, "pasta": 40}

    def test_keyword_volumes(self):
        records = mapping.map_keyword_volumes(volume_body([("pizza", 1000), ("pasta", 0)]), {"pizza": 5})

        assert [r.keyword for r in records] == ["pizza", "pasta"]
        assert records[0].position == 5
        assert records[0].potential_traffic == 60
        assert records[0].cpc == 2.25
        assert records[0].competition == "HIGH"
        assert records[1].position is None
        assert records[1].potential_traffic is None

    def test_keyword_volume_numeric_competition(self):
        body = envelope([{"keyword": "pizza", "search_volume": 10, "competition": 0.42}])

        assert mapping.map_keyword_volumes(body)[0].competition == "0.42"

    def test_keyword_gaps(self):
        analyzed = [
            KeywordRecord(keyword="pizza", volume=1000, position=2),
            KeywordRecord(keyword="pasta", volume=50),
            KeywordRecord(keyword="Calzone", volume=400),
        ]

        gaps = mapping.keyword_gaps(analyzed, {"pizza": 2})

        assert [g.keyword for g in gaps] == ["Calzone", "pasta"]
        assert gaps[0].potential_traffic == 120
        assert gaps[0].position is None
