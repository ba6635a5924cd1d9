from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env")

    APP_NAME: str = "STOCK-LEDGER"
    LOG_LEVEL: str = "INFO"
    DATABASE_URL: str = "sqlite+pysqlite:///./stockledger.db"
    ONLINE_SOURCE_LOCATION: str = "Jaipur"
    AVAILABILITY_THRESHOLD: int = 5
    VOUCHER_TIMEOUT_MS: int = 10000
    LEDGER_QUERY_BATCH_SIZE: int = 200
    METRICS_ENABLED: bool = True
    STRICT_NON_NEGATIVE_STOCK: bool = False
    OPS_ENABLE_INTEGRITY_SCAN: bool = True


settings = Settings()
