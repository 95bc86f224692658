from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    APP_NAME: str = "MedChart Patient Charting"
    VERSION: str = "1.0.0"

    DATABASE_URL: str = "sqlite:///./medchart.db"
    STORAGE_BACKEND: str = "database"  # "database" or "memory"

    LOG_LEVEL: str = "INFO"
    SEED_DEMO_DATA: bool = True

    # Shared PIN guarding prescribing, patient deletion and lab orders
    ACCESS_PIN: str = "1234"

    # Server-side patient ID generation
    PATIENT_ID_MAX_ATTEMPTS: int = 10

    # Failed audit writes are retried this many times before being marked failed
    AUDIT_RETRY_MAX_ATTEMPTS: int = 3

    # Lab order simulation
    LAB_ABNORMAL_PROBABILITY: float = 0.2
    LAB_COLLECTION_HOUR: int = 8  # UTC
    LAB_TURNAROUND_HOURS: int = 2

    # Fallback when a prescription frequency cannot be parsed
    DEFAULT_DOSE_INTERVAL_HOURS: int = 6

    class Config:
        env_file = ".env"


settings = Settings()
