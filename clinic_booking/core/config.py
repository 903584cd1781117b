from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    ENV: str = "dev"
    LOG_LEVEL: str = "INFO"

    BACKEND_URL: str | None = None
    BACKEND_ANON_KEY: str | None = None
    BACKEND_ACCESS_TOKEN: str | None = None
    BACKEND_TIMEOUT_SECONDS: float = 10.0

    BOOKING_TIMEZONE: str = "UTC"
    CLINIC_SEARCH_RADIUS_KM: int = 50
    CLINIC_SEARCH_LIMIT: int = 20

    # Only enforced by the in-memory backend; the managed backend owns its own cap.
    MAX_PENDING_APPOINTMENTS: int = 3


settings = Settings()
