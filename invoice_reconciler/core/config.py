from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings


class ClientConfig(BaseModel):
    """Endpoint root and per-call deadline handed to every outbound client."""
    base_url: str | None = None
    timeout: float = 10.0


class Settings(BaseSettings):
    app_name: str = Field("invoice-reconciler", alias="APP_NAME")
    app_env: str = Field("dev", alias="APP_ENV")

    # Logging
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_json: bool = Field(False, alias="LOG_JSON")

    # Backend API root serving /invoice, /supplier and /product.
    # Unset = local SQLite registry and the built-in sample invoice.
    backend_base_url: str | None = Field(default=None, alias="BACKEND_BASE_URL")
    registry_db_path: str = Field("registry.db", alias="REGISTRY_DB_PATH")

    # Per-call deadline for registry and extraction calls, in seconds
    client_timeout: float = Field(10.0, alias="CLIENT_TIMEOUT")

    # CORS allowed origins (comma-separated list for production deployment)
    cors_origins: str = Field("http://localhost:3000,http://127.0.0.1:3000", alias="CORS_ORIGINS")

    # Confidence display bands (percent)
    confidence_high_threshold: int = Field(90, alias="CONFIDENCE_HIGH_THRESHOLD")
    confidence_medium_threshold: int = Field(70, alias="CONFIDENCE_MEDIUM_THRESHOLD")

    # Allowed gap between total_price and quantity * unit_price
    consistency_tolerance: float = Field(0.01, alias="CONSISTENCY_TOLERANCE")

    # Service Bus (optional)
    service_bus_connection_string: str | None = Field(default=None, alias="SERVICE_BUS_CONNECTION_STRING")
    service_bus_queue: str = Field("invoice-events", alias="SERVICE_BUS_QUEUE")

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    def client_config(self) -> ClientConfig:
        return ClientConfig(base_url=self.backend_base_url, timeout=self.client_timeout)


settings = Settings()
