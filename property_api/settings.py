from pydantic_settings import BaseSettings, SettingsConfigDict

# Fixed tuning constants; not exposed as configuration.
REQUEST_TIMEOUT_SECONDS = 8.0
CACHE_ROUND_DIGITS = 4
SCAN_BATCH_SIZE = 200


class Settings(BaseSettings):
    """Runtime configuration for the API.

    Notes
    -----
    - Values are read from environment variables (case-insensitive) and an
      optional `.env` file, e.g. `WEATHER_CACHE_TTL=300`.
    - TTLs and intervals are expressed in seconds.
    """

    app_name: str = "Property Weather Search API"
    database_path: str = "./properties.sqlite"

    openmeteo_base_url: str = "https://api.open-meteo.com/v1/forecast"
    # TTL (in seconds) for cached weather per rounded coordinate
    weather_cache_ttl: int = 10 * 60
    # max in-flight requests to Open-Meteo, shared by every request
    weather_concurrency: int = 5
    cache_sweep_interval: float = 60

    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 8000

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


settings = Settings()
