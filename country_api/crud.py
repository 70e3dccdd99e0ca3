from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from typing import Optional, List, Dict, Tuple
from datetime import datetime
from . import models

# sort value -> ORDER BY clauses; `IS NULL` first keeps null GDPs at the end
SORT_ORDERS = {
    "gdp_desc": (models.Country.estimated_gdp.is_(None), models.Country.estimated_gdp.desc()),
    "gdp_asc": (models.Country.estimated_gdp.is_(None), models.Country.estimated_gdp.asc()),
    "population_desc": (models.Country.population.desc(),),
    "population_asc": (models.Country.population.asc(),),
    "name_asc": (models.Country.name.asc(),),
    "name_desc": (models.Country.name.desc(),),
}
DEFAULT_SORT = "name_asc"

# --- Country CRUD ---

async def get_country_by_name(db: AsyncSession, name: Optional[str]) -> Optional[models.Country]:
    """
    Fetch a single country by its name, ignoring case and surrounding whitespace.
    """
    if not name or not name.strip():
        return None
    result = await db.execute(
        select(models.Country).where(models.Country.name_key == models.normalize_name(name))
    )
    return result.scalars().first()

async def get_countries(
    db: AsyncSession,
    region: Optional[str] = None,
    currency: Optional[str] = None,
    sort: Optional[str] = None,
) -> List[models.Country]:
    """
    Fetch all countries with optional filtering and sorting.
    Unknown sort values fall back to name ascending.
    """
    query = select(models.Country)

    if region:
        query = query.where(models.Country.region == region)

    if currency:
        query = query.where(models.Country.currency_code == currency)

    order = SORT_ORDERS.get((sort or DEFAULT_SORT).lower(), SORT_ORDERS[DEFAULT_SORT])
    query = query.order_by(*order, models.Country.id.asc())

    result = await db.execute(query)
    return list(result.scalars().all())

async def get_countries_by_key(db: AsyncSession) -> Dict[str, models.Country]:
    """
    Load every stored country, indexed by normalized name.
    """
    result = await db.execute(select(models.Country))
    return {country.name_key: country for country in result.scalars().all()}

async def get_countries_count(db: AsyncSession) -> int:
    """
    Get the total count of countries in the database.
    """
    result = await db.execute(select(func.count(models.Country.id)))
    return result.scalar() or 0

async def get_status(db: AsyncSession) -> Tuple[int, Optional[datetime]]:
    """
    Total number of countries and the latest `last_refreshed_at` across them.
    """
    result = await db.execute(
        select(func.count(models.Country.id), func.max(models.Country.last_refreshed_at))
    )
    total, last_refreshed_at = result.one()
    return total or 0, last_refreshed_at

async def delete_country_by_name(db: AsyncSession, name: Optional[str]) -> bool:
    """
    Delete a country by its name (same matching rule as the lookup).
    Returns whether a row was removed.
    """
    db_country = await get_country_by_name(db, name)
    if db_country is None:
        return False
    await db.delete(db_country)
    await db.commit()
    return True

async def get_top_gdp_countries(db: AsyncSession, limit: int = 5) -> List[models.Country]:
    """
    Get the top N countries by estimated GDP, skipping those without one.
    """
    query = (
        select(models.Country)
        .where(models.Country.estimated_gdp.is_not(None))
        .order_by(models.Country.estimated_gdp.desc())
        .limit(limit)
    )
    result = await db.execute(query)
    return list(result.scalars().all())
