"""Configuration management with environment variable support."""

import os
import secrets
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Literal


def _parse_cors_origins() -> list[str]:
    """Parse CORS_ORIGINS environment variable."""
    origins = os.getenv("CORS_ORIGINS", "http://localhost:8000")
    return [o.strip() for o in origins.split(",") if o.strip()]


@dataclass(frozen=True)
class CORSConfig:
    """CORS configuration."""

    allowed_origins: list[str] = field(default_factory=_parse_cors_origins)
    allow_credentials: bool = True
    allow_methods: list[str] = field(default_factory=lambda: ["*"])
    allow_headers: list[str] = field(default_factory=lambda: ["*"])


@dataclass(frozen=True)
class RateLimitConfig:
    """Rate limiting configuration."""

    enabled: bool = field(
        default_factory=lambda: os.getenv("RATE_LIMIT_ENABLED", "true").lower() == "true"
    )
    requests_per_minute: int = field(
        default_factory=lambda: int(os.getenv("RATE_LIMIT_RPM", "60"))
    )


@dataclass(frozen=True)
class SecurityConfig:
    """Security configuration."""

    secret_key: str = field(
        default_factory=lambda: os.getenv("SECRET_KEY", secrets.token_urlsafe(32))
    )


@dataclass(frozen=True)
class RedisConfig:
    """Redis connection configuration."""

    enabled: bool = field(
        default_factory=lambda: os.getenv("REDIS_ENABLED", "false").lower() == "true"
    )
    host: str = field(default_factory=lambda: os.getenv("REDIS_HOST", "localhost"))
    port: int = field(default_factory=lambda: int(os.getenv("REDIS_PORT", "6379")))
    db: int = field(default_factory=lambda: int(os.getenv("REDIS_DB", "0")))
    password: str | None = field(default_factory=lambda: os.getenv("REDIS_PASSWORD"))

    @property
    def url(self) -> str:
        """Build Redis connection URL."""
        auth = f":{self.password}@" if self.password else ""
        return f"redis://{auth}{self.host}:{self.port}/{self.db}"


@dataclass(frozen=True)
class ShoeConfig:
    """Card supply configuration."""

    backend: Literal["deckofcards", "local"] = field(
        default_factory=lambda: os.getenv("DECK_BACKEND", "deckofcards")  # type: ignore[return-value]
    )
    api_url: str = field(
        default_factory=lambda: os.getenv("DECK_API_URL", "https://deckofcardsapi.com/api/deck")
    )
    deck_count: int = field(default_factory=lambda: int(os.getenv("DECK_COUNT", "1")))
    timeout: float = field(default_factory=lambda: float(os.getenv("DECK_API_TIMEOUT", "10")))
    card_back_image: str = "https://deckofcardsapi.com/static/img/back.png"


@dataclass(frozen=True)
class GameConfig:
    """Default table configuration."""

    min_bet: int = 1
    max_bet: int = 1000
    starting_wallet: Decimal = Decimal("1000")
    dealer_stands_on: int = 17
    cpu_seats: int = 3
    surrender_refund: Decimal = Decimal("0.5")  # Fraction of the bet returned


@dataclass(frozen=True)
class AppConfig:
    """Application configuration."""

    debug: bool = field(default_factory=lambda: os.getenv("DEBUG", "false").lower() == "true")
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO").upper())
    round_ttl: int = 3600  # Round timeout in seconds

    redis: RedisConfig = field(default_factory=RedisConfig)
    shoe: ShoeConfig = field(default_factory=ShoeConfig)
    game: GameConfig = field(default_factory=GameConfig)
    cors: CORSConfig = field(default_factory=CORSConfig)
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    security: SecurityConfig = field(default_factory=SecurityConfig)


# Global configuration instance
config = AppConfig()
