from pydantic_settings import BaseSettings
from typing import Optional
from pathlib import Path

# Find .env file - check app/ directory first, then project root
BASE_DIR = Path(__file__).resolve().parent.parent.parent
APP_ENV = BASE_DIR / "app" / ".env"
ROOT_ENV = BASE_DIR / ".env"

# Use app/.env if it exists, otherwise try root .env
env_file = str(APP_ENV) if APP_ENV.exists() else (str(ROOT_ENV) if ROOT_ENV.exists() else ".env")


class Settings(BaseSettings):
    # Database
    DATABASE_URL: str = f"sqlite:///{BASE_DIR / 'thrift_society.db'}"

    # Society
    SOCIETY_NAME: str = "The Vignan Employees Mutually Aided Co-operative Thrift & Credit Society Ltd."
    ORGANIZATION_NAME: str = "VIGNAN UNIVERSITY :: VADLAMUDI"

    # Spreadsheet ingestion
    HEADER_SCAN_ROWS: int = 15
    MONTH_SCAN_ROWS: int = 10
    SURETY_COLUMNS: int = 6

    # Loans
    DEFAULT_LOAN_INTEREST_RATE: float = 12.0

    # Credentials handed to newly imported employees
    TEMP_PASSWORD_LENGTH: int = 8

    # Month archiving
    MONTHS_TO_KEEP: int = 4
    ENABLE_ARCHIVE_SCHEDULER: bool = False
    ARCHIVE_INTERVAL_MINUTES: int = 24 * 60

    # Application
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    DEFAULT_ACTOR: Optional[str] = "admin"

    class Config:
        env_file = env_file
        case_sensitive = True
        extra = "ignore"


settings = Settings()

# Derived paths
LOGS_DIR = BASE_DIR / "logs"
