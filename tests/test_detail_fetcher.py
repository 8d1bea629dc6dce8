"""Tests for the detail source client and normalization."""

import httpx
import pytest

from craftcatalog.models.game import PriceInfo
from craftcatalog.services.detail_fetcher import DetailFetcher, normalize_detail, parse_capabilities
from craftcatalog.services.errors import PayloadError, RateLimitedError
from craftcatalog.services.http_client import HttpClientService
from craftcatalog.services.retry import RetryPolicy

BASE_URL = "https://store.test/api"


async def no_sleep(seconds: float) -> None:
    return None


def game_data(appid: int, **overrides: object) -> dict:
    data = {
        "type": "game",
        "name": f"Game {appid}",
        "steam_appid": appid,
        "is_free": False,
        "short_description": "Survive and build.",
        "header_image": f"https://cdn.test/{appid}/header.jpg",
        "screenshots": [{"id": n, "path_thumbnail": f"t{n}.jpg", "path_full": f"https://cdn.test/{appid}/{n}.jpg"} for n in range(8)],
        "price_overview": {"currency": "KRW", "initial": 2150000, "final": 1505000, "discount_percent": 30},
        "release_date": {"coming_soon": False, "date": "2021년 2월 2일"},
        "genres": [{"id": "1", "description": "액션"}, {"id": "25", "description": "어드벤처"}],
        "categories": [{"id": 2, "description": "싱글 플레이어"}, {"id": 38, "description": "온라인 협동"}],
    }
    data.update(overrides)
    return data


def envelope(appid: int, data: dict | None, success: bool = True) -> dict:
    body: dict = {"success": success}
    if data is not None:
        body["data"] = data
    return {str(appid): body}


def make_fetcher(handler, concurrency: int = 2) -> DetailFetcher:
    return DetailFetcher(
        http_client=HttpClientService(transport=httpx.MockTransport(handler)),
        base_url=BASE_URL,
        concurrency=concurrency,
        request_delay=0.0,
        retry_policy=RetryPolicy(max_retries=2, initial_delay=0.0, sleep=no_sleep),
    )


@pytest.mark.asyncio
async def test_fetch_one_normalizes_the_record() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path.endswith("/appdetails")
        assert request.url.params["appids"] == "892970"
        assert request.url.params["cc"] == "kr"
        assert request.url.params["l"] == "korean"
        return httpx.Response(200, json=envelope(892970, game_data(892970)))

    record = await make_fetcher(handler).fetch_one(892970)

    assert record is not None
    assert record.name == "Game 892970"
    assert record.description == "Survive and build."
    assert len(record.screenshots) == 5
    assert record.screenshots[0] == "https://cdn.test/892970/0.jpg"
    assert record.price == PriceInfo(initial=2150000, final=1505000, discount_percent=30, is_free=False)
    assert record.release_date == "2021년 2월 2일"
    assert record.genres == ["액션", "어드벤처"]
    assert record.capabilities.singleplayer is True
    assert record.capabilities.multiplayer is False
    assert record.capabilities.coop is True


@pytest.mark.asyncio
async def test_non_game_entity_yields_none() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=envelope(1001, game_data(1001, type="dlc")))

    assert await make_fetcher(handler).fetch_one(1001) is None


@pytest.mark.asyncio
@pytest.mark.parametrize("body", [envelope(5, None, success=False), envelope(5, None), {}])
async def test_unsuccessful_envelope_yields_none(body: dict) -> None:
    assert await make_fetcher(lambda request: httpx.Response(200, json=body)).fetch_one(5) is None


@pytest.mark.asyncio
async def test_non_json_body_is_a_payload_error_and_not_retried() -> None:
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        return httpx.Response(200, text="<html>error</html>")

    with pytest.raises(PayloadError):
        await make_fetcher(handler).fetch_one(5)
    assert calls == 1


@pytest.mark.asyncio
async def test_rate_limit_is_retried_then_raised() -> None:
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        return httpx.Response(429)

    with pytest.raises(RateLimitedError):
        await make_fetcher(handler).fetch_one(5)
    assert calls == 3


@pytest.mark.asyncio
async def test_fetch_report_separates_missing_from_failed() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        appid = int(request.url.params["appids"])
        if appid == 2:
            return httpx.Response(200, json=envelope(2, None, success=False))
        if appid == 3:
            return httpx.Response(404)
        return httpx.Response(200, json=envelope(appid, game_data(appid)))

    progress: list[tuple[int, int]] = []
    report = await make_fetcher(handler).fetch_report(
        [1, 2, 3, 4],
        on_progress=lambda completed, total: progress.append((completed, total)),
    )

    assert set(report.details) == {1, 4}
    assert report.not_found == [2]
    assert report.failed == [3]
    assert report.abandoned == []
    assert len(progress) == 4
    assert progress[-1] == (4, 4)
    assert all(total == 4 for _, total in progress)


@pytest.mark.asyncio
async def test_fetch_many_only_keeps_ids_with_records() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        appid = int(request.url.params["appids"])
        if appid % 2:
            return httpx.Response(200, json=envelope(appid, game_data(appid, type="video")))
        return httpx.Response(200, json=envelope(appid, game_data(appid)))

    details = await make_fetcher(handler, concurrency=3).fetch_many([1, 2, 3, 4, 5, 6])

    assert sorted(details) == [2, 4, 6]


def test_missing_price_overview_means_zero_price() -> None:
    data = game_data(9, is_free=True)
    del data["price_overview"]

    record = normalize_detail(9, data)

    assert record is not None
    assert record.price == PriceInfo(initial=0, final=0, discount_percent=0, is_free=True)


def test_coming_soon_has_empty_release_date() -> None:
    record = normalize_detail(9, game_data(9, release_date={"coming_soon": True, "date": "2026년 중"}))

    assert record is not None
    assert record.release_date == ""


@pytest.mark.parametrize(
    "category_ids, expected",
    [
        ([1], (False, True, False)),
        ([2], (True, False, False)),
        ([9], (False, False, True)),
        ([48, 2], (True, False, True)),
        ([], (False, False, False)),
    ],
)
def test_capability_flags_from_categories(category_ids: list[int], expected: tuple[bool, bool, bool]) -> None:
    capabilities = parse_capabilities([{"id": category_id} for category_id in category_ids])

    assert (capabilities.singleplayer, capabilities.multiplayer, capabilities.coop) == expected
