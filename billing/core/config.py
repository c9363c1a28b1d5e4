from decimal import Decimal
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"

    # API Settings
    PROJECT_NAME: str = "Billing Ledger API"
    API_V1_STR: str = "/api/v1"
    PROJECT_VERSION: str = "0.1.0"
    DESCRIPTION: str = "Shared-expense ledger and payment reconciliation for chat bots"

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # MongoDB (transactions need a replica set)
    MONGODB_URL: str = "mongodb://localhost:27017/?replicaSet=rs0"
    DATABASE_NAME: str = "billing"

    # Adapter authentication; empty disables the check
    ADAPTER_API_KEY: str = ""

    # Signed bill-allocation session tokens
    SECRET_KEY: str = "change-this-in-production"
    ALGORITHM: str = "HS256"
    BILL_SESSION_TTL_SECONDS: int = 1800

    # Ledger
    CURRENCY_LABEL: str = "THB"
    DUST_THRESHOLD: Decimal = Decimal("0.01")
    MATCH_TOLERANCE: Decimal = Decimal("0.01")
    STREAK_WINDOW_HOURS: int = 24
    VAT_RATE: Decimal = Decimal("0.07")
    SERVICE_CHARGE_RATE: Decimal = Decimal("0.10")

    # Milestone badges
    BADGE_RICH_TOTAL: Decimal = Decimal("10000")
    BADGE_BEST_FRIEND_PARTNERS: int = 50
    BADGE_HEAVY_DEBT: Decimal = Decimal("50000")
    BADGE_DEBT_FREE_DAYS: int = 30

    # Slip verifier
    VERIFIER_API_URL: str = ""
    VERIFIER_TIMEOUT_SECONDS: float = 60.0
    VERIFIER_MAX_RETRIES: int = 3

    # CORS
    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:8000"]

    model_config = SettingsConfigDict(
        case_sensitive=True,
        env_file=".env"
    )

settings = Settings()
