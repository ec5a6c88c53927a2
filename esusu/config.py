"""Application configuration from environment variables."""

from decimal import Decimal

from dotenv import load_dotenv
from pydantic import ConfigDict, Field
from pydantic_settings import BaseSettings

load_dotenv()


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = ConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Database
    database_url: str = Field(
        default="sqlite:///./esusu.db",
        description="SQLAlchemy connection string",
    )
    database_echo: bool = Field(default=False, description="Log SQL queries")
    max_transaction_retries: int = Field(
        default=3, description="Retries for transient transaction conflicts"
    )
    transaction_retry_backoff: float = Field(
        default=0.05, description="Seconds to wait before the first retry, growing linearly"
    )

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_file: str = Field(default="logs/server.log", description="Log file path")

    # Slots
    house_reserved_numbers: list[int] = Field(
        default=[1, 2], description="Slot numbers that members can never pick"
    )
    min_total_slots: int = Field(default=10, description="Smallest cycle an admin may create")
    max_total_slots: int = Field(default=100, description="Largest cycle an admin may create")

    # Proof of payment
    proof_max_bytes: int = Field(default=5 * 1024 * 1024, description="Maximum proof file size")
    proof_allowed_content_types: list[str] = Field(
        default=["image/jpeg", "image/png", "image/jpg", "application/pdf"],
        description="Accepted proof file types",
    )

    # Tier defaults, used until an admin saves the settings row
    pack_20k_monthly: Decimal = Decimal("20000")
    pack_20k_payout: Decimal = Decimal("200000")
    pack_20k_fine: Decimal = Decimal("2000")
    pack_50k_monthly: Decimal = Decimal("50000")
    pack_50k_payout: Decimal = Decimal("500000")
    pack_50k_fine: Decimal = Decimal("2500")
    pack_100k_monthly: Decimal = Decimal("100000")
    pack_100k_payout: Decimal = Decimal("1000000")
    pack_100k_fine: Decimal = Decimal("5000")
    opt_out_penalty_percent: int = Field(default=10, description="Opt-out penalty in percent")

    # API
    api_title: str = Field(default="Esusu Ledger API", description="API title")
    api_version: str = Field(default="0.1.0", description="API version")


# Global settings instance
settings = Settings()
