from pydantic import Field
from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    app_name: str = Field("pcard-approvals", alias="APP_NAME")
    app_env: str = Field("dev", alias="APP_ENV")
    log_level: str = Field("INFO", alias="LOG_LEVEL")

    # Storage ("memory" or "sqlite")
    storage_backend: str = Field("memory", alias="STORAGE_BACKEND")
    sqlite_db_path: str = Field("pcard_approvals.db", alias="SQLITE_DB_PATH")

    # Approval tier table (JSON file replacing the built-in approver directory)
    approval_tiers_file: str | None = Field(default=None, alias="APPROVAL_TIERS_FILE")

    # P-Card monthly usage
    pcard_monthly_limit: float = Field(5000.0, alias="PCARD_MONTHLY_LIMIT")
    pcard_hard_stop_enabled: bool = Field(True, alias="PCARD_HARD_STOP_ENABLED")

    # Azure Document Intelligence (receipt extraction)
    az_di_endpoint: str | None = Field(default=None, alias="AZ_DI_ENDPOINT")
    az_di_api_key: str | None = Field(default=None, alias="AZ_DI_API_KEY")
    receipt_max_bytes: int = Field(20 * 1024 * 1024, alias="RECEIPT_MAX_BYTES")

    # Teams
    teams_webhook_url: str | None = Field(default=None, alias="TEAMS_WEBHOOK_URL")

    # API Base URL (for review links in Teams cards)
    api_base_url: str = Field("http://127.0.0.1:8000", alias="API_BASE_URL")

    # CORS allowed origins (comma-separated list for production deployment)
    cors_origins: str = Field("http://localhost:5173,http://127.0.0.1:5173", alias="CORS_ORIGINS")

    # Azure Service Bus (request events)
    service_bus_connection_string: str | None = Field(default=None, alias="SERVICE_BUS_CONNECTION_STRING")
    service_bus_queue: str = Field("purchase-request-events", alias="SERVICE_BUS_QUEUE")

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

settings = Settings()
