from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    APP_ENV: str = "dev"
    DB_URL: str = "sqlite:///./supply_chain.db"
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 0
    API_PREFIX: str = "/api"
    ALLOWED_ORIGINS: list[str] = ["http://localhost:3000"]
    TZ: str = "UTC"
    LOG_LEVEL: str = "INFO"
    VAPID_PUBLIC_KEY: str | None = None
    VAPID_PRIVATE_KEY: str | None = None
    VAPID_SUBJECT: str = "mailto:admin@localhost"
    PUSH_TIMEOUT_S: float = 3.0
    ORDER_ID_ATTEMPTS: int = 3
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")
settings = Settings()
