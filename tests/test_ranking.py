"""Tests for ranking strategies and their helpers."""

from datetime import datetime, timezone

import pytest
from hypothesis import given, strategies as st

from craftcatalog.models.game import ReviewInfo
from craftcatalog.services.ranking import (
    EPOCH,
    SortStrategy,
    parse_owners_lower_bound,
    parse_release_date,
    sort_entries,
    wilson_score,
)


def test_wilson_score_of_no_reviews_is_zero() -> None:
    assert wilson_score(0, 0) == 0


def test_wilson_score_is_below_the_raw_ratio() -> None:
    assert wilson_score(90, 100) < 0.90
    assert wilson_score(90, 100) == pytest.approx(0.8256, abs=1e-3)


def test_wilson_score_rewards_more_evidence() -> None:
    assert wilson_score(9, 10) < wilson_score(900, 1000)


@given(st.integers(min_value=0, max_value=10_000), st.integers(min_value=0, max_value=10_000))
def test_wilson_score_is_a_probability(positive: int, negative: int) -> None:
    """
    **Feature: catalog-pipeline, Property: Wilson lower bound range**

    The lower bound always lies in [0, 1] and never exceeds the raw ratio.
    """
    total = positive + negative
    score = wilson_score(positive, total)

    assert -1e-12 <= score <= 1.0
    if total:
        assert score <= positive / total + 1e-12


@pytest.mark.parametrize(
    "owners, expected",
    [
        ("1,000,000 .. 2,000,000", 1_000_000),
        ("0 .. 20,000", 0),
        ("50000", 50_000),
        ("", 0),
        ("unknown", 0),
    ],
)
def test_parse_owners_lower_bound(owners: str, expected: int) -> None:
    assert parse_owners_lower_bound(owners) == expected


@pytest.mark.parametrize(
    "value, expected",
    [
        ("14 Jul, 2020", datetime(2020, 7, 14, tzinfo=timezone.utc)),
        ("Jul 14, 2020", datetime(2020, 7, 14, tzinfo=timezone.utc)),
        ("2020-07-14", datetime(2020, 7, 14, tzinfo=timezone.utc)),
        ("Jul 2020", datetime(2020, 7, 1, tzinfo=timezone.utc)),
        ("2020년 7월 14일", datetime(2020, 7, 14, tzinfo=timezone.utc)),
        ("2020년 7월", datetime(2020, 7, 1, tzinfo=timezone.utc)),
        ("", EPOCH),
        ("Coming soon", EPOCH),
    ],
)
def test_parse_release_date(value: str, expected: datetime) -> None:
    assert parse_release_date(value) == expected


def test_popular_sorts_by_owner_lower_bound(entry_factory) -> None:
    entries = [
        entry_factory(1, owners="20,000 .. 50,000"),
        entry_factory(2, owners="1,000,000 .. 2,000,000"),
        entry_factory(3, owners=""),
    ]

    assert [entry.appid for entry in sort_entries(entries, SortStrategy.POPULAR)] == [2, 1, 3]


def test_rating_sorts_by_score(entry_factory) -> None:
    entries = [
        entry_factory(1, reviews=ReviewInfo.from_counts(70, 30)),
        entry_factory(2, reviews=ReviewInfo.from_counts(95, 5)),
        entry_factory(3, reviews=ReviewInfo.from_counts(0, 0)),
    ]

    assert [entry.appid for entry in sort_entries(entries, "rating")] == [2, 1, 3]


def test_newest_sorts_by_release_date(entry_factory) -> None:
    entries = [
        entry_factory(1, release_date="14 Jul, 2020"),
        entry_factory(2, release_date=""),
        entry_factory(3, release_date="2023년 1월 5일"),
    ]

    assert [entry.appid for entry in sort_entries(entries, "newest")] == [3, 1, 2]


def test_trending_weights_owners_by_score(entry_factory) -> None:
    entries = [
        entry_factory(1, owners="1,000,000 .. 2,000,000", reviews=ReviewInfo.from_counts(40, 60)),
        entry_factory(2, owners="500,000 .. 1,000,000", reviews=ReviewInfo.from_counts(100, 0)),
    ]

    assert [entry.appid for entry in sort_entries(entries, "trending")] == [2, 1]


def test_rising_prefers_confident_ratings(entry_factory) -> None:
    entries = [
        entry_factory(1, reviews=ReviewInfo.from_counts(5, 0)),
        entry_factory(2, reviews=ReviewInfo.from_counts(950, 50)),
    ]

    assert [entry.appid for entry in sort_entries(entries, "rising")] == [2, 1]


def test_sort_is_stable_and_does_not_mutate(entry_factory) -> None:
    entries = [entry_factory(appid, owners="10 .. 20") for appid in (3, 1, 2)]
    original = list(entries)

    result = sort_entries(entries, SortStrategy.POPULAR)

    assert [entry.appid for entry in result] == [3, 1, 2]
    assert entries == original
    assert result is not entries


def test_unknown_strategy_returns_input_order(entry_factory) -> None:
    entries = [entry_factory(2), entry_factory(1)]

    assert [entry.appid for entry in sort_entries(entries, "alphabetical")] == [2, 1]
