import os
from dataclasses import dataclass
from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: str = "False") -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


@dataclass
class Settings:
    # API settings
    api_host: str = os.getenv("API_HOST", "127.0.0.1")
    api_port: int = int(os.getenv("API_PORT", "8000"))
    api_key: str = os.getenv("API_KEY", "super-secret-key")

    # Storage settings
    storage_backend: str = os.getenv("LIBRARY_STORAGE", "sqlite")  # sqlite | file
    database_file: str = os.getenv("LIBRARY_DB_FILE", "library.db")
    data_file: str = os.getenv("LIBRARY_DATA_FILE", "library_data.json")
    persist_timeout: float = float(os.getenv("PERSIST_TIMEOUT", "5"))  # seconds

    # Lending policy
    grace_period_days: int = int(os.getenv("GRACE_PERIOD_DAYS", "14"))
    fine_per_day: float = float(os.getenv("FINE_PER_DAY", "2.0"))
    max_active_borrows: int = int(os.getenv("MAX_ACTIVE_BORROWS", "10"))
    date_format: str = os.getenv("DATE_FORMAT", "%d/%m/%Y")

    # Application settings
    app_name: str = os.getenv("APP_NAME", "Library Desk")
    app_version: str = os.getenv("APP_VERSION", "1.0.0")
    debug: bool = _env_bool("DEBUG")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")


settings = Settings()
