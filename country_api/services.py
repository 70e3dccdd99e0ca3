import httpx
import random
import asyncio
import logging
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from PIL import Image, ImageDraw, ImageFont

from . import crud, models, schemas
from .config import settings, get_image_path

logger = logging.getLogger(__name__)

COUNTRIES_API_NAME = "RestCountries API"
EXCHANGE_RATES_API_NAME = "Exchange Rates API"

GDP_MULTIPLIER_MIN = 1000
GDP_MULTIPLIER_MAX = 2000
CENTS = Decimal("0.01")

# At most one refresh runs at a time; later callers wait their turn.
# asyncio.Lock binds to the loop it first waits on, so keep one per loop.
_refresh_lock: Optional[asyncio.Lock] = None
_refresh_lock_loop: Optional[asyncio.AbstractEventLoop] = None


class UpstreamUnavailable(Exception):
    """An external data source could not be reached or answered with an error."""
    def __init__(self, api_name: str, details: str):
        self.api_name = api_name
        self.details = details
        super().__init__(f"Could not fetch data from {api_name}: {details}")


class PersistenceError(Exception):
    """Reading from or writing to the country store failed."""


def get_refresh_lock() -> asyncio.Lock:
    """
    The refresh lock for the running event loop.
    """
    global _refresh_lock, _refresh_lock_loop
    loop = asyncio.get_running_loop()
    if _refresh_lock is None or _refresh_lock_loop is not loop:
        _refresh_lock = asyncio.Lock()
        _refresh_lock_loop = loop
    return _refresh_lock


# --- External API Fetching ---

async def fetch_countries_data(client: httpx.AsyncClient) -> list:
    """
    Fetch the raw country list from restcountries.com.
    """
    try:
        response = await client.get(settings.COUNTRIES_API_URL, timeout=settings.HTTP_TIMEOUT)
        response.raise_for_status()
        payload = response.json()
    except (httpx.HTTPError, ValueError) as e:
        logger.warning("%s request failed: %s", COUNTRIES_API_NAME, e)
        raise UpstreamUnavailable(api_name=COUNTRIES_API_NAME, details=str(e)) from e

    if not isinstance(payload, list):
        raise UpstreamUnavailable(api_name=COUNTRIES_API_NAME, details="Expected a list of countries")
    return payload

async def fetch_exchange_rates(client: httpx.AsyncClient) -> Dict[str, Decimal]:
    """
    Fetch the latest USD-based exchange rates from open.er-api.com.
    """
    try:
        response = await client.get(settings.EXCHANGE_RATES_API_URL, timeout=settings.HTTP_TIMEOUT)
        response.raise_for_status()
        payload = schemas.ExchangeRatesPayload.model_validate(response.json(parse_float=Decimal))
    except (httpx.HTTPError, ValueError) as e:
        logger.warning("%s request failed: %s", EXCHANGE_RATES_API_NAME, e)
        raise UpstreamUnavailable(api_name=EXCHANGE_RATES_API_NAME, details=str(e)) from e

    if payload.result is not None and payload.result != "success":
        logger.warning("%s answered with result=%r", EXCHANGE_RATES_API_NAME, payload.result)
        raise UpstreamUnavailable(
            api_name=EXCHANGE_RATES_API_NAME, details=f"Unexpected result {payload.result!r}"
        )
    return payload.rates

def parse_countries(raw_countries: list) -> Tuple[List[schemas.UpstreamCountry], int]:
    """
    Validate raw country entries. Invalid ones are logged and skipped.
    Returns the valid countries and how many were skipped.
    """
    countries = []
    skipped = 0
    for entry in raw_countries:
        try:
            countries.append(schemas.UpstreamCountry.model_validate(entry))
        except ValidationError as e:
            skipped += 1
            name = entry.get("name") if isinstance(entry, dict) else None
            logger.warning("Skipping invalid country entry %r: %s", name, e.errors()[0]["msg"])
    return countries, skipped

# --- Enrichment ---

def resolve_currency_code(country: schemas.UpstreamCountry) -> str:
    """
    Code of the first listed currency, or "" when there is none.
    """
    if not country.currencies:
        return ""
    return country.currencies[0].code or ""

def resolve_exchange_rate(currency_code: str, rates: Dict[str, Decimal]) -> Optional[Decimal]:
    if not currency_code or currency_code == "USD":
        return Decimal(1)
    rate = rates.get(currency_code)
    return Decimal(rate) if rate is not None else None

def estimate_gdp(population: int, exchange_rate: Optional[Decimal], rng: random.Random) -> Optional[Decimal]:
    """
    Synthetic GDP proxy: population * random multiplier / exchange rate.
    The multiplier is drawn fresh for every call.
    """
    if exchange_rate is None or exchange_rate == 0:
        return None
    multiplier = rng.randint(GDP_MULTIPLIER_MIN, GDP_MULTIPLIER_MAX)
    return (Decimal(population) * multiplier / exchange_rate).quantize(CENTS)

# --- Core Refresh Logic ---

async def process_and_cache_countries(
    db: AsyncSession,
    client: httpx.AsyncClient,
    rng: Optional[random.Random] = None,
) -> schemas.RefreshResult:
    """
    Fetch both upstream APIs, merge the result into the country table and
    regenerate the summary image.

    Raises UpstreamUnavailable before anything is written if either API
    fails, and PersistenceError (after rolling back) if the store does.
    """
    if rng is None:
        rng = random.Random(settings.GDP_RANDOM_SEED)

    async with get_refresh_lock():
        return await _refresh(db, client, rng)

async def _refresh(db: AsyncSession, client: httpx.AsyncClient, rng: random.Random) -> schemas.RefreshResult:
    refresh_time = datetime.now(timezone.utc)
    logger.info("Country refresh started")

    # Fetch data from both APIs concurrently
    raw_countries, rates = await asyncio.gather(
        fetch_countries_data(client),
        fetch_exchange_rates(client)
    )
    countries, skipped = parse_countries(raw_countries)

    created_keys = set()
    touched_keys = set()
    try:
        existing = await crud.get_countries_by_key(db)

        for country in countries:
            key = models.normalize_name(country.name)
            currency_code = resolve_currency_code(country)
            exchange_rate = resolve_exchange_rate(currency_code, rates)

            db_country = existing.get(key)
            if db_country is None:
                db_country = models.Country(name_key=key, created_at=refresh_time)
                db.add(db_country)
                existing[key] = db_country
                created_keys.add(key)
            touched_keys.add(key)

            db_country.name = country.name
            db_country.capital = country.capital
            db_country.region = country.region
            db_country.population = country.population
            db_country.currency_code = currency_code
            db_country.exchange_rate = exchange_rate
            db_country.estimated_gdp = estimate_gdp(country.population, exchange_rate, rng)
            db_country.flag_url = country.flag
            db_country.last_refreshed_at = refresh_time
            db_country.updated_at = refresh_time

        # Commit the entire merge as one transaction
        await db.commit()
        total = await crud.get_countries_count(db)
    except (SQLAlchemyError, OverflowError, InvalidOperation) as e:
        await db.rollback()
        logger.exception("Country refresh failed while writing to the database")
        raise PersistenceError("Could not save refreshed countries") from e

    logger.info(
        "Country refresh finished: %d created, %d updated, %d skipped, %d total",
        len(created_keys), len(touched_keys - created_keys), skipped, total,
    )

    # Generate summary image after successful refresh
    await generate_summary_image(db)

    return schemas.RefreshResult(
        refreshed_at=refresh_time,
        total_countries=total,
        created=len(created_keys),
        updated=len(touched_keys - created_keys),
        skipped=skipped,
    )

# --- Image Generation ---

async def generate_summary_image(db: AsyncSession, image_path: Optional[Path] = None) -> Optional[Path]:
    """
    Render the status snapshot (total, last refresh, top 5 by GDP) to a PNG.
    Never raises: failures are logged and None is returned.
    """
    path = Path(image_path) if image_path is not None else get_image_path()
    try:
        total, last_refreshed_at = await crud.get_status(db)
        top_5 = await crud.get_top_gdp_countries(db, limit=5)
        timestamp = schemas.format_utc(last_refreshed_at) or "N/A"

        img = Image.new('RGB', (600, 400), color='white')
        d = ImageDraw.Draw(img)
        font = ImageFont.load_default()

        d.text((20, 20), "Country Currency API Summary", fill='black', font=font)
        d.text((20, 50), f"Total Countries: {total}", fill='black', font=font)
        d.text((20, 80), f"Last Refreshed: {timestamp}", fill='darkgray', font=font)

        d.text((20, 120), "Top 5 Countries by Estimated GDP:", fill='blue', font=font)
        y_pos = 150
        if not top_5:
            d.text((30, y_pos), "No GDP data available.", fill='gray', font=font)
        for i, country in enumerate(top_5):
            d.text((30, y_pos), f"{i+1}. {country.name} (${country.estimated_gdp:,.2f})", fill='black', font=font)
            y_pos += 30

        path.parent.mkdir(parents=True, exist_ok=True)
        img.save(path, "PNG")
    except Exception:
        logger.exception("Could not generate summary image at %s", path)
        return None

    logger.info("Summary image written to %s", path)
    return path
