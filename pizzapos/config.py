from pydantic_settings import BaseSettings, SettingsConfigDict
class Settings(BaseSettings):
    APP_ENV: str = "dev"
    DB_URL: str = "sqlite:///./pizzapos.db"
    DB_ECHO: bool = False
    TX_TIMEOUT_SECONDS: int = 10  # upper bound on lock hold time per transition
    LOG_LEVEL: str = "INFO"
    TZ: str = "UTC"
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")
settings = Settings()
