"""Test to verify the package and its bundled data are installed correctly."""

import json

import pytest
from hypothesis import given, strategies as st

import craftcatalog
from craftcatalog.main import VERSION
from craftcatalog.models import CATALOG_SCHEMA_VERSION, CatalogEntry
from craftcatalog.services.cache import bundled_fallback_path


def test_package_version() -> None:
    assert craftcatalog.__version__ == VERSION


def test_bundled_catalog_matches_schema() -> None:
    data = json.loads(bundled_fallback_path().read_text(encoding="utf-8"))

    assert data["version"] == CATALOG_SCHEMA_VERSION
    entries = [CatalogEntry.from_dict(game) for game in data["games"]]
    assert len({entry.appid for entry in entries}) == len(entries)
    assert all(entry.name for entry in entries)


@given(st.integers(min_value=1, max_value=10_000_000))
def test_hypothesis_setup(appid: int) -> None:
    assert CatalogEntry.from_dict({"appid": appid, "name": "x"}).appid == appid


@pytest.mark.asyncio
async def test_async_setup() -> None:
    async def async_function() -> str:
        return "test"

    assert await async_function() == "test"
