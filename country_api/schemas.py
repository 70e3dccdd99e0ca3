from pydantic import BaseModel, Field, field_validator, field_serializer
from typing import Optional, List, Dict, Any
from datetime import datetime, timezone
from decimal import Decimal


def format_utc(value: Optional[datetime]) -> Optional[str]:
    """
    Render a timestamp as ISO-8601 UTC ("2025-10-28T07:12:34Z").
    Naive values come from stores without timezone support and are UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


# --- Upstream payloads ---

# Largest value a BIGINT column holds
MAX_POPULATION = 2**63 - 1

class UpstreamCurrency(BaseModel):
    code: Optional[str] = None
    name: Optional[str] = None
    symbol: Optional[str] = None

class UpstreamCountry(BaseModel):
    """One entry of the restcountries v2 `/all` response."""
    name: str
    capital: Optional[str] = None
    region: Optional[str] = None
    population: int = Field(default=0, ge=0, le=MAX_POPULATION)
    flag: Optional[str] = None
    currencies: Optional[List[UpstreamCurrency]] = None

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("name must not be blank")
        return v

    @field_validator("population", mode="before")
    @classmethod
    def missing_population_is_zero(cls, v):
        return 0 if v is None else v

class ExchangeRatesPayload(BaseModel):
    """The open.er-api.com `/latest/USD` response."""
    result: Optional[str] = None
    rates: Dict[str, Decimal] = {}
    time_last_update_utc: Optional[str] = None


# --- API models ---

# Base Pydantic model for a Country
class CountryBase(BaseModel):
    name: str
    capital: Optional[str] = None
    region: Optional[str] = None
    population: int
    currency_code: str = ""
    exchange_rate: Optional[float] = None
    estimated_gdp: Optional[float] = None
    flag_url: Optional[str] = None

# Model for responses (includes DB-generated fields)
class Country(CountryBase):
    id: int
    last_refreshed_at: datetime
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}

    @field_serializer("last_refreshed_at", "created_at", "updated_at")
    def serialize_timestamp(self, value: datetime) -> Optional[str]:
        return format_utc(value)

# Model for the /status endpoint
class StatusResponse(BaseModel):
    total_countries: int
    last_refreshed_at: Optional[datetime] = None

    @field_serializer("last_refreshed_at")
    def serialize_timestamp(self, value: Optional[datetime]) -> Optional[str]:
        return format_utc(value)

# Model for the /countries/refresh endpoint
class RefreshResult(BaseModel):
    status: str = "success"
    refreshed_at: datetime
    total_countries: int
    created: int
    updated: int
    skipped: int = 0

    @field_serializer("refreshed_at")
    def serialize_timestamp(self, value: datetime) -> Optional[str]:
        return format_utc(value)

class MessageResponse(BaseModel):
    status: str
    message: str

# Standard error response models
class ErrorDetail(BaseModel):
    error: str
    details: Optional[Dict[str, Any] | str] = None
