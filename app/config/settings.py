from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional, List


class Settings(BaseSettings):
    # Supabase
    supabase_url: str = ""
    supabase_key: str = ""
    supabase_service_role_key: Optional[str] = None  # Used for storage cleanup and admin reads
    storage_bucket: str = "documents"

    # RAG backends (legacy single API plus per-state APIs)
    rag_api_base_url: Optional[str] = None
    rag_api_key: Optional[str] = None
    florida_rag_api_url: Optional[str] = None
    florida_rag_api_key: Optional[str] = None
    utah_rag_api_url: Optional[str] = None
    utah_rag_api_key: Optional[str] = None
    rag_timeout_seconds: int = 60
    rag_health_timeout_seconds: int = 10
    rag_max_retries: int = 3
    rag_retry_base_delay_ms: int = 1000
    rag_retry_max_delay_ms: int = 30000

    # Circuit breaker for RAG backends
    circuit_failure_threshold: int = 5
    circuit_reset_timeout_seconds: float = 30.0
    circuit_success_threshold: int = 2
    circuit_failure_window_seconds: float = 60.0

    # Document extraction
    anthropic_api_key: Optional[str] = None
    extraction_model: str = "claude-3-5-haiku-20241022"
    extraction_max_tokens: int = 1024
    max_upload_bytes: int = 10 * 1024 * 1024

    # Email (Resend)
    resend_api_key: Optional[str] = None
    resend_api_url: str = "https://api.resend.com/emails"
    contact_email: Optional[str] = None

    # App
    app_name: str = "margen-backend"
    app_url: str = "http://localhost:3000"
    debug: bool = False
    environment: str = "development"  # development | staging | production
    log_level: str = "INFO"
    cors_origins: str = "http://localhost:3000,http://127.0.0.1:3000"
    rate_limit: str = "300/minute"  # slowapi format, applied per remote address
    rate_limit_storage_uri: str = "memory://"  # limits storage URI, e.g. redis://localhost:6379

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def extraction_enabled(self) -> bool:
        return bool(self.anthropic_api_key)

    @property
    def email_enabled(self) -> bool:
        return bool(self.resend_api_key and self.contact_email)

    def get_cors_origins_list(self) -> List[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        env_prefix="",
        extra="ignore"
    )


settings = Settings()
