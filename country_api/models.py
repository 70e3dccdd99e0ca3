from sqlalchemy import Column, Integer, String, Numeric, DateTime, BigInteger
from .database import Base


def normalize_name(name: str) -> str:
    """
    Key used for case-insensitive matching of country names.
    """
    return name.strip().lower()


class Country(Base):
    __tablename__ = "countries"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    # Normalized copy of `name`; uniqueness is enforced here, not on `name`
    name_key = Column(String(255), nullable=False, unique=True, index=True)
    capital = Column(String(255), nullable=True)
    region = Column(String(255), nullable=True, index=True)
    population = Column(BigInteger, nullable=False, default=0)
    currency_code = Column(String(10), nullable=False, default="", index=True)
    exchange_rate = Column(Numeric(18, 6), nullable=True)
    estimated_gdp = Column(Numeric(24, 2), nullable=True, index=True)
    flag_url = Column(String(512), nullable=True)
    last_refreshed_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)

    def __repr__(self):
        return f"<Country {self.name!r}>"
