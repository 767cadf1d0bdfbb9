import os
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional
from dotenv import load_dotenv

load_dotenv()


def _env_flag(name: str, default: str = "False") -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


@dataclass
class Settings:
    # API settings
    api_host: str = os.getenv("API_HOST", "127.0.0.1")
    api_port: int = int(os.getenv("API_PORT", "8000"))
    api_key: str = os.getenv("API_KEY", "super-secret-key")

    # Database settings
    data_file: Optional[str] = os.getenv("LIBRARY_DATA_FILE")
    db_lock_timeout: float = float(os.getenv("DB_LOCK_TIMEOUT", "10"))  # seconds to wait for the write lock
    seed_sample_data: bool = _env_flag("SEED_SAMPLE_DATA")
    sample_data_file: str = os.getenv(
        "SAMPLE_DATA_FILE",
        os.path.join(os.path.dirname(os.path.abspath(__file__)), "sample_data.json"),
    )

    # Lending policy
    loan_period_days: int = int(os.getenv("LOAN_PERIOD_DAYS", "14"))
    fine_per_day: Decimal = Decimal(os.getenv("FINE_PER_DAY", "5.00"))
    fine_currency: str = os.getenv("FINE_CURRENCY", "INR")
    issue_retry_attempts: int = int(os.getenv("ISSUE_RETRY_ATTEMPTS", "3"))

    # Application settings
    app_name: str = os.getenv("APP_NAME", "Library Lending Service")
    app_version: str = os.getenv("APP_VERSION", "1.0.0")
    debug: bool = _env_flag("DEBUG")
    log_level: str = os.getenv("LOG_LEVEL", "INFO").upper()


settings = Settings()
