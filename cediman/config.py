# cediman/config.py

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite+aiosqlite:///./cediman.db"
    APP_URL: str = "http://localhost:3000"      # базовый URL витрины (трекинг, callback)

    AUTH_SECRET_KEY: str = "change-me"
    AUTH_TOKEN_EXPIRE_MINUTES: int = 60
    AUTH_LOGIN: str = "admin@cediman.com"       # первый администратор
    AUTH_PASSWORD: str = "admin"

    # Paystack
    PAYSTACK_SECRET_KEY: str | None = None
    PAYSTACK_BASE_URL: str = "https://api.paystack.co"
    PAYSTACK_CURRENCY: str = "GHS"
    PAYSTACK_TIMEOUT: float = 30.0

    # SendGrid (email)
    SENDGRID_API_KEY: str | None = None
    SENDGRID_FROM_EMAIL: str = "noreply@cediman.com"
    SENDGRID_FROM_NAME: str = "Cediman"

    # FrogWigal (SMS)
    FROGWIGAL_API_KEY: str | None = None
    FROGWIGAL_USERNAME: str | None = None
    FROGWIGAL_SENDER_ID: str = "Cediman"
    FROGWIGAL_SMS_API_URL: str = "https://frogapi.wigal.com.gh/api/v3/sms/send"

    NOTIFY_MAX_ATTEMPTS: int = 5

    LOG_DIR: str = "cediman/log"
    LOG_PRINT: str = "1"

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore"
    )

    @field_validator("APP_URL")
    @classmethod
    def strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

settings = Settings()
