"""Unit tests for the per-country enrichment helpers."""

import random
from decimal import Decimal

import pytest

from country_api import schemas
from country_api.services import (
    estimate_gdp,
    parse_countries,
    resolve_currency_code,
    resolve_exchange_rate,
)


def upstream(**fields) -> schemas.UpstreamCountry:
    fields.setdefault("name", "Testland")
    return schemas.UpstreamCountry.model_validate(fields)


def test_currency_code_is_first_listed_currency():
    country = upstream(currencies=[{"code": "CHF"}, {"code": "EUR"}])
    assert resolve_currency_code(country) == "CHF"


@pytest.mark.parametrize("currencies", [None, [], [{"name": "No code"}]])
def test_currency_code_empty_without_currencies(currencies):
    assert resolve_currency_code(upstream(currencies=currencies)) == ""


@pytest.mark.parametrize("code", ["", "USD"])
def test_usd_and_missing_currency_rate_is_one(code):
    assert resolve_exchange_rate(code, {"USD": Decimal("3")}) == 1


def test_exchange_rate_looked_up_by_code():
    assert resolve_exchange_rate("NGN", {"NGN": Decimal("1600.5")}) == Decimal("1600.5")


def test_unknown_currency_has_no_rate():
    assert resolve_exchange_rate("XYZ", {"NGN": Decimal("1600.5")}) is None


@pytest.mark.parametrize("rate", [None, Decimal(0)])
def test_gdp_is_null_without_usable_rate(rate):
    assert estimate_gdp(1000, rate, random.Random(1)) is None


def test_gdp_within_multiplier_bounds():
    rng = random.Random()
    for _ in range(200):
        gdp = estimate_gdp(1000, Decimal(2), rng)
        assert Decimal(500_000) <= gdp <= Decimal(1_000_000)


def test_gdp_reproducible_with_seeded_generator():
    first = [estimate_gdp(5000, Decimal("0.5"), random.Random(42)) for _ in range(3)]
    assert len(set(first)) == 1


def test_parse_countries_skips_invalid_entries():
    countries, skipped = parse_countries([
        {"name": "Testland", "population": 10},
        {"name": "   ", "population": 10},
        {"population": 10},
        {"name": "Nowhere", "population": -5},
        "not an object",
    ])
    assert [c.name for c in countries] == ["Testland"]
    assert skipped == 4


def test_missing_population_counts_as_zero():
    countries, skipped = parse_countries([{"name": "Testland", "population": None}])
    assert countries[0].population == 0
    assert skipped == 0
