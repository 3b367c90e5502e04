from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    ENV: str = "dev"
    LOG_LEVEL: str = "INFO"

    CURRENCY: str = "aud"
    STORE_MAX_ATTEMPTS: int = 3
    STORE_RETRY_BACKOFF_SECONDS: float = 0.5

    GOOGLE_CLIENT_ID: str | None = None
    GOOGLE_CLIENT_SECRET: str | None = None
    GOOGLE_REDIRECT_URI: str = "http://localhost:3001/oauth2callback"
    GOOGLE_TOKENS_PATH: str = "tokens.json"
    GOOGLE_CALENDAR_ID: str = "primary"
    GOOGLE_CALENDAR_BASE_URL: str = "https://www.googleapis.com/calendar/v3"
    SLOT_SEARCH_QUERY: str = "Complete Barber Services"
    SLOT_LIST_LIMIT: int = 10

    STRIPE_SECRET_KEY: str | None = None
    STRIPE_PROVIDER_ACCOUNT: str | None = None

    TWILIO_ACCOUNT_SID: str | None = None
    TWILIO_AUTH_TOKEN: str | None = None
    TWILIO_PHONE_NUMBER: str | None = None
    TWILIO_BASE_URL: str = "https://api.twilio.com/2010-04-01"
    TWILIO_WEBHOOK_URL: str | None = None
    SMS_ENABLED: bool = True


settings = Settings()
