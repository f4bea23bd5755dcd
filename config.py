from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    # SQLite serializes all writers on one file lock; use PostgreSQL (row locks) in production
    sqlalchemy_database_url: str = "sqlite:///./appointments.db"
    isolation_level: str = "SERIALIZABLE"
    appointment_expiry_minutes: int = 5
    sweeper_interval_seconds: int = 60
    sweeper_enabled: bool = True
    booking_max_attempts: int = 3
    booking_retry_max_wait: float = 1.0
    log_level: str = "INFO"
    log_file: str | None = None

    model_config = {
        "env_file": ".env",
        "extra": "forbid"
    }

settings = Settings()
