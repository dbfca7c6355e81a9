from pydantic_settings import BaseSettings
from typing import List, Union, Optional
from pydantic import field_validator


class Settings(BaseSettings):
    # Database
    POSTGRES_USER: str = "suprss"
    POSTGRES_PASSWORD: str
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: str = "suprss"
    DATABASE_URL_OVERRIDE: Optional[str] = None  # e.g. sqlite:///./suprss.db

    @property
    def DATABASE_URL(self) -> str:
        """Construct database URL from components."""
        if self.DATABASE_URL_OVERRIDE:
            return self.DATABASE_URL_OVERRIDE
        return f"postgresql://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"

    # Application
    SECRET_KEY: str
    DEBUG: bool = False
    CORS_ORIGINS: Union[List[str], str] = ["http://localhost:3000"]
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_DEFAULT: str = "100/minute"

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def parse_cors_origins(cls, v):
        if isinstance(v, str):
            # Split by comma or keep as single item
            return [origin.strip() for origin in v.split(",")]
        return v

    # Feed polling
    ENABLE_SCHEDULER: bool = True
    POLL_TICK_MINUTES: int = 5  # how often due feeds are looked up
    DEFAULT_UPDATE_INTERVAL: int = 60  # minutes between fetches of one feed
    FEED_FETCH_TIMEOUT: float = 30.0  # seconds, whole request
    FEED_FETCH_MAX_CONCURRENT: int = 10  # simultaneous outbound fetches
    FEED_USER_AGENT: str = "SUPRSS/1.0 (+feed aggregator)"
    FEED_ALLOW_PRIVATE_HOSTS: bool = False  # allow feeds on loopback and private networks

    # Cookie Security
    COOKIE_SECURE: bool = True  # Set to False for local development without HTTPS
    ENABLE_HSTS: bool = True  # HTTP Strict Transport Security
    HSTS_MAX_AGE: int = 31536000  # 1 year in seconds
    HSTS_INCLUDE_SUBDOMAINS: bool = True

    @property
    def is_production(self) -> bool:
        """Detect if running in production environment."""
        return self.COOKIE_SECURE and not self.DEBUG

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"  # Ignore extra fields in .env


settings = Settings()
