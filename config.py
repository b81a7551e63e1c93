import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


@dataclass(frozen=True)
class Settings:
    database_url: str
    database_name: str
    jwt_access_secret: str
    jwt_refresh_secret: str
    jwt_access_expire_minutes: int
    jwt_refresh_expire_days: int
    stripe_secret_key: Optional[str]
    stripe_webhook_secret: Optional[str]
    payment_currency: str
    tax_rate: float
    free_shipping_threshold: float
    shipping_fee: float
    frontend_origin: str
    log_level: str
    port: int
    environment: str

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


@lru_cache()
def get_settings() -> Settings:
    return Settings(
        database_url=os.getenv("DATABASE_URL", "mongodb://localhost:27017"),
        database_name=os.getenv("DATABASE_NAME", "storefront"),
        jwt_access_secret=os.getenv("JWT_ACCESS_SECRET", "change-me-access"),
        jwt_refresh_secret=os.getenv("JWT_REFRESH_SECRET", "change-me-refresh"),
        jwt_access_expire_minutes=int(os.getenv("JWT_ACCESS_EXPIRE_MINUTES", "15")),
        jwt_refresh_expire_days=int(os.getenv("JWT_REFRESH_EXPIRE_DAYS", "7")),
        stripe_secret_key=os.getenv("STRIPE_SECRET_KEY") or None,
        stripe_webhook_secret=os.getenv("STRIPE_WEBHOOK_SECRET") or None,
        payment_currency=os.getenv("PAYMENT_CURRENCY", "inr").lower(),
        tax_rate=float(os.getenv("TAX_RATE", "0.10")),
        free_shipping_threshold=float(os.getenv("FREE_SHIPPING_THRESHOLD", "500")),
        shipping_fee=float(os.getenv("SHIPPING_FEE", "50")),
        frontend_origin=os.getenv("FRONTEND_ORIGIN", "http://localhost:5173"),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        port=int(os.getenv("PORT", 8000)),
        environment=os.getenv("ENVIRONMENT", "development"),
    )
