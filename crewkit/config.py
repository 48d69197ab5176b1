from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "CrewKit API"

    # Database
    database_url: str = "sqlite:///./crewkit.db"

    # JWT
    secret_key: str = "dev_secret"
    access_token_expire_minutes: int = 120

    # "today" for usage logs and EOD reports is evaluated in this zone
    timezone: str = "UTC"

    log_level: str = "INFO"

    # Rate limit
    rate_limit: str = "100/minute"
    rate_limit_enabled: bool = True

    # BoxHero
    boxhero_api_token: Optional[str] = None
    boxhero_base_url: str = "https://rest.boxhero-app.com"
    boxhero_timeout_seconds: float = 30.0

    # First SUPERUSER, created on startup when both are set
    bootstrap_superuser_email: Optional[str] = None
    bootstrap_superuser_password: Optional[str] = None

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = Settings()
