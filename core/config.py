# Файл конфігурації, завантажує змінні з .env
from pydantic_settings import BaseSettings
from pydantic import ConfigDict


class Settings(BaseSettings):
    model_config = ConfigDict(extra="ignore", env_file=".env")

    # 1. Firebase
    FIREBASE_SERVICE_ACCOUNT_KEY_PATH: str | None = None

    # 2. Monobank (еквайринг для оплати ескроу)
    MONOBANK_API_TOKEN: str = ""
    MONOBANK_API_URL: str = "https://api.monobank.ua"
    MONOBANK_REDIRECT_URL: str | None = None
    # ISO 4217, 980 = UAH
    PAYMENT_CURRENCY_CODE: int = 980

    # 3. CORS
    FRONTEND_ORIGIN: str = ""

    # 4. Локальний користувач без токена (тільки для розробки)
    DEV_AUTH_ENABLED: bool = False

    # 5. Ескроу та сервісний збір
    # Відсоток, якщо у проєкту немає бюджету
    DEFAULT_SERVICE_CHARGE_PERCENT: float = 5.0
    ESCROW_AUTO_RELEASE_DAYS: int = 7
    ESCROW_AUTO_RELEASE_INTERVAL_MINUTES: int = 60
    SCHEDULER_TIMEZONE: str = "Europe/Kiev"

    LOG_LEVEL: str = "INFO"


settings = Settings()
