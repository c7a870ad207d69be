"""Application configuration and environment settings"""
from typing import Optional
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

class CrawlSettings(BaseModel):
    """Crawler paging and transport settings"""
    page_size: int = Field(..., description="Records requested per page")
    max_pages: int = Field(..., description="Safety cap on pages fetched per run")
    timeout_seconds: float = Field(..., description="Per-request timeout")
    proxy_url: Optional[str] = None
    proxy_api_key: Optional[str] = None

class Settings(BaseSettings):
    """Application settings loaded from environment variables"""
    # Database settings
    DATABASE_URL: Optional[str] = Field(None, description="Full SQLAlchemy database URL")
    DB_HOST: Optional[str] = Field(None, description="Database host")
    DB_PORT: str = Field("5432", description="Database port")
    DB_NAME: str = Field("commissions", description="Database name")
    DB_USER: str = Field("commission_sync", description="Database user")
    DB_PASSWORD: Optional[str] = Field(None, description="Database password")
    DB_SSL_MODE: str = Field("require", description="PostgreSQL sslmode")

    # Bybit settings
    BYBIT_API_URL: str = Field(
        "https://affiliates.bybit.com/api/v2/commissions/get_clients_list",
        description="Bybit affiliate clients list endpoint"
    )

    # Proxy settings
    PROXY_URL: Optional[str] = Field(None, description="Proxy URL")
    PROXY_API_KEY: Optional[str] = Field(None, description="Proxy API key")

    # Crawl settings
    CRAWL_PAGE_SIZE: int = 100
    CRAWL_MAX_PAGES: int = 100
    CRAWL_TIMEOUT_SECONDS: float = 30.0

    # Reconciliation settings
    DEFAULT_EXCHANGE_RATE: float = Field(0.20, ge=0, le=1, description="Fallback exchange commission rate")
    SAMPLE_LIMIT: int = 5
    ERROR_LIMIT: int = 10

    # Run context for the command line entry point
    EXCHANGE_ID: Optional[int] = Field(None, description="Exchange to crawl")
    TARGET_DATE: Optional[str] = Field(None, description="Date to crawl (YYYY-MM-DD), defaults to today")
    OUTPUT_DIR: str = Field("/output", description="Directory for output files")

    @property
    def crawl_settings(self) -> CrawlSettings:
        """Get crawler settings as a separate model"""
        return CrawlSettings(
            page_size=self.CRAWL_PAGE_SIZE,
            max_pages=self.CRAWL_MAX_PAGES,
            timeout_seconds=self.CRAWL_TIMEOUT_SECONDS,
            proxy_url=self.PROXY_URL,
            proxy_api_key=self.PROXY_API_KEY
        )

    model_config = SettingsConfigDict(
        env_file='.env',
        env_file_encoding='utf-8',
        case_sensitive=True,
        extra='ignore'
    )

settings = Settings()
