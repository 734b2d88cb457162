from pydantic import Field
from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Optional

class Settings(BaseSettings):
    # Application
    APP_NAME: str = "ClinicOrders"
    APP_PORT: int = 9210
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    LOGS_PATH: str = "/tmp/clinic_orders_logs"

    # Database
    DATABASE_URL_OVERRIDE: Optional[str] = Field(default=None, validation_alias="DATABASE_URL")
    POSTGRES_SERVER: str = "localhost"
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = "postgres"
    POSTGRES_DB: str = "clinic_orders"
    POSTGRES_PORT: int = 5432

    # Supplier platform (remote peer)
    SUPPLIER_BACKEND_URL: str = "http://localhost:3002"
    SUPPLIER_BACKEND_API_KEY: Optional[str] = None  # sent on outbound calls
    SUPPLIER_WEBHOOK_API_KEY: Optional[str] = None  # expected on inbound callbacks
    WEBHOOK_TIMEOUT_SECONDS: float = 5.0
    ENABLE_SUPPLIER_NOTIFICATIONS: bool = True

    # Order engine
    DRAFT_EXPIRY_HOURS: int = 24
    ORDER_NUMBER_MAX_RETRIES: int = 5
    TRANSACTION_MAX_RETRIES: int = 3
    VIEW_CACHE_TTL_SECONDS: float = 30.0
    VIEW_CACHE_MAX_SIZE: int = 100
    ORDER_RISK_ALPHA: float = 0.6  # stock ratio weight
    ORDER_RISK_BETA: float = 0.4  # expiry ratio weight

    # SMS / email relay
    MESSAGE_RELAY_URL: Optional[str] = None
    MESSAGE_RELAY_API_KEY: Optional[str] = None

    # Operator alerts
    ENABLE_TELEGRAM_NOTIFICATIONS: bool = False
    TELEGRAM_BOT_TOKEN: Optional[str] = None
    TELEGRAM_CHAT_ID: Optional[str] = None

    # Maintenance jobs
    ENABLE_SCHEDULER: bool = True
    DRAFT_CLEANUP_INTERVAL_MINUTES: int = 60

    @property
    def DATABASE_URL(self) -> str:
        if self.DATABASE_URL_OVERRIDE:
            return self.DATABASE_URL_OVERRIDE
        return f"postgresql://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@{self.POSTGRES_SERVER}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"

    class Config:
        env_file = ".env"
        extra = "ignore"

@lru_cache()
def get_settings() -> Settings:
    return Settings()

settings = get_settings()
