# commission_sync/db_config.py
"""Database configuration and connection string assembly"""
from dataclasses import dataclass
from urllib.parse import quote_plus, urlparse

from commission_sync.config import Settings, settings

SUPPORTED_SCHEMES = ('postgresql', 'postgresql+psycopg2', 'sqlite')

@dataclass
class DatabaseCredentials:
    """Database credentials container with validation"""
    host: str
    port: str
    name: str
    user: str
    password: str
    ssl_mode: str = 'require'

    def to_connection_string(self) -> str:
        """Generate database connection string with proper escaping"""
        return (
            f"postgresql://{quote_plus(self.user)}:{quote_plus(self.password)}@{self.host}:{self.port}/"
            f"{self.name}?sslmode={self.ssl_mode}"
        )

    @classmethod
    def from_settings(cls, config: Settings) -> 'DatabaseCredentials':
        """Create credentials from individual DB_* settings"""
        return cls(
            host=config.DB_HOST,
            port=config.DB_PORT,
            name=config.DB_NAME,
            user=config.DB_USER,
            password=config.DB_PASSWORD,
            ssl_mode=config.DB_SSL_MODE
        )

    @classmethod
    def validate_url(cls, url: str) -> bool:
        """Check that a database URL uses a supported scheme"""
        try:
            parsed = urlparse(url)
        except ValueError:
            return False
        return parsed.scheme in SUPPORTED_SCHEMES

class DatabaseManager:
    """Resolves the database connection string from settings"""

    @classmethod
    def initialize_from_env(cls, config: Settings = settings) -> str:
        """
        Resolve the connection string from environment settings.

        DATABASE_URL wins when present, otherwise the URL is assembled
        from DB_HOST and DB_PASSWORD plus the optional DB_* parts.

        Returns:
            Database connection string

        Raises:
            ValueError: If neither form of configuration is usable
        """
        if config.DATABASE_URL:
            if not DatabaseCredentials.validate_url(config.DATABASE_URL):
                raise ValueError(f"Unsupported DATABASE_URL scheme: {urlparse(config.DATABASE_URL).scheme}")
            return config.DATABASE_URL

        if not config.DB_HOST or not config.DB_PASSWORD:
            raise ValueError("DATABASE_URL or DB_HOST and DB_PASSWORD settings are required")

        return DatabaseCredentials.from_settings(config).to_connection_string()
