# backend/config.py
from pydantic_settings import BaseSettings
from typing import ClassVar, Optional
from pathlib import Path

# Resolve absolute path to the .env file for reliable loading
env_path = Path(__file__).parent.parent / ".env"

class Settings(BaseSettings):
    SECRET_KEY: str = "dev-secret-change-me"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60
    DATABASE_URL: str = "sqlite:///./storefront.db"
    LOG_LEVEL: str = "INFO"
    # "development" tolerates missing webhook secrets; anything else refuses unsigned callbacks
    ENVIRONMENT: str = "development"

    # Checkout and order lifecycle policy
    RETURN_WINDOW_DAYS: int = 7
    CHECKOUT_TRANSACTION_TIMEOUT_SECONDS: float = 10.0
    BLOCK_DELIVERY_ON_FAILED_PAYMENT: bool = True
    RETURN_STRICT_TRANSITIONS: bool = False

    # Cashfree payment gateway
    CASHFREE_API_URL: str = "https://sandbox.cashfree.com/pg"
    CASHFREE_APP_ID: str = "test-app-id"
    CASHFREE_SECRET_KEY: str = "test-secret-key"
    CASHFREE_API_VERSION: str = "2023-08-01"

    # Shiprocket carrier
    SHIPROCKET_BASE_URL: str = "https://apiv2.shiprocket.in/v1/external"
    SHIPROCKET_EMAIL: str = ""
    SHIPROCKET_PASSWORD: str = ""
    SHIPROCKET_PICKUP_LOCATION: str = "Primary"
    # Shared token expected in the x-api-key header of carrier webhooks
    SHIPROCKET_WEBHOOK_TOKEN: Optional[str] = None
    # Pause between orders in the bulk tracking sync
    SHIPROCKET_SYNC_DELAY_SECONDS: float = 1.0

    FRONTEND_URL: str = "http://localhost:3000"
    BACKEND_URL: str = "http://127.0.0.1:8000"

    class Config:
        env_file: ClassVar[str] = str(env_path)
        extra: ClassVar[str] = "ignore"

settings = Settings()
