from pydantic_settings import BaseSettings
from typing import Optional

class Settings(BaseSettings):
    # Database
    PGHOST: Optional[str] = None
    PGDATABASE: Optional[str] = None
    PGUSER: Optional[str] = None
    PGPASSWORD: Optional[str] = None
    PGSSLMODE: str = "require"
    PGCHANNELBINDING: str = "require"
    DATABASE_URL: Optional[str] = None

    # Security
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    # Application
    PROJECT_NAME: str = "Trekka Transport API"
    API_V1_STR: str = "/api/v1"
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"
    PUBLIC_BASE_URL: str = "http://localhost:8000"

    # Bookings
    MAX_SEATS_PER_BOOKING: int = 10
    DEFAULT_CURRENCY: str = "NGN"

    # Payment gateway
    PAYSTACK_SECRET_KEY: str = ""
    PAYSTACK_BASE_URL: str = "https://api.paystack.co"
    PAYSTACK_TIMEOUT_SECONDS: float = 15.0
    # Only for environments where the gateway cannot sign webhooks
    WEBHOOK_ALLOW_UNSIGNED: bool = False

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        if self.PGHOST:
            return f"postgresql://{self.PGUSER}:{self.PGPASSWORD}@{self.PGHOST}/{self.PGDATABASE}?sslmode={self.PGSSLMODE}"
        return "sqlite:///./trekka.db"

    @property
    def payment_callback_base(self) -> str:
        return f"{self.PUBLIC_BASE_URL.rstrip('/')}{self.API_V1_STR}/payments/verify"

    class Config:
        env_file = ".env"
        case_sensitive = True

settings = Settings()
