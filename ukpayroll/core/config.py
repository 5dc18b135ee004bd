from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    APP_NAME: str = Field("ukpayroll", description="Root logger namespace")
    LOG_LEVEL: str = Field("INFO", description="Level for the payroll log files")
    AUDIT_LOG_PATH: str = Field("./data/logs", description="Directory for rotating log files")

    # Extra tax years on top of the built-in tables (JSON, same shape as the built-ins)
    RATE_TABLE_PATH: Optional[str] = Field(None, description="Path to additional rate tables")

    # Bulk runs
    BULK_MAX_WORKERS: int = Field(4, ge=1, description="Employees processed concurrently")

    # Auto-enrolment minimum employer contribution, basis points (300 = 3.00%)
    DEFAULT_EMPLOYER_PENSION_RATE: int = 300


settings = Settings()
