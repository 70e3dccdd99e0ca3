from pydantic_settings import BaseSettings

from pathlib import Path
from typing import List, Optional

# Define the root directory (the parent of the 'country_api' directory)
ROOT_DIR = Path(__file__).resolve().parent.parent

class Settings(BaseSettings):
    # Loaded from the environment or the .env file
    DATABASE_URL: str = "sqlite+aiosqlite:///./countries.db"

    COUNTRIES_API_URL: str = (
        "https://restcountries.com/v2/all?fields=name,capital,region,population,flag,currencies"
    )
    EXCHANGE_RATES_API_URL: str = "https://open.er-api.com/v6/latest/USD"
    # Seconds to wait on either upstream API
    HTTP_TIMEOUT: float = 30.0

    CACHE_DIR: str = str(ROOT_DIR / "cache")
    LOG_LEVEL: str = "INFO"
    # Fixes the GDP multiplier sequence when set
    GDP_RANDOM_SEED: Optional[int] = None
    CORS_ORIGINS: List[str] = ["*"]

    class Config:
        env_file = ".env"

settings = Settings()


def get_image_path() -> Path:
    """
    Absolute path of the summary image inside the cache directory.
    """
    return Path(settings.CACHE_DIR).resolve() / "summary.png"
