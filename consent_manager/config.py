"""Configuration management using Pydantic Settings."""
from pydantic_settings import BaseSettings
from pydantic import Field
from typing import Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Service Configuration
    service_name: str = Field(default="consent-manager", description="Service name used for logging and health")
    environment: str = Field(default="development", description="Environment (development, staging, production)")
    log_level: str = Field(default="INFO", description="Logging level")
    host: str = Field(default="0.0.0.0", description="HTTP bind address")
    port: int = Field(default=3000, description="HTTP port")

    # Signing Configuration
    signer_name: str = Field(default="demo-consent-manager", description="Signer identity placed in every proof")
    signing_key_size: int = Field(default=2048, description="RSA modulus size for the generated signing key")
    signing_key_id: Optional[str] = Field(default=None, description="Explicit key identifier (generated when unset)")
    signing_private_key_path: Optional[str] = Field(
        default=None, description="PEM private key to load instead of generating one"
    )

    # Consent Artifact Configuration
    artifact_version: str = Field(default="1.0", description="Schema version stamped on new artifacts")
    consent_id_prefix: str = Field(default="urn:consent:uuid:", description="Prefix for generated consent ids")
    default_consent_method: str = Field(default="express_click", description="Consent method when none is given")
    default_revocation_reason: str = Field(default="user_revoked", description="Revocation reason when none is given")

    # Storage Configuration
    store_backend: str = Field(default="memory", description="Consent store backend (memory, sql)")
    database_url: str = Field(
        default="sqlite+aiosqlite:///./consents.db", description="SQLAlchemy async database URL"
    )

    # Observability Configuration
    metrics_enabled: bool = Field(default=True, description="Expose Prometheus metrics at /metrics")

    # Health Configuration
    health_check_timeout: float = Field(default=5.0, description="Timeout for a single health check in seconds")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False

    @property
    def uses_sql_store(self) -> bool:
        """Whether artifacts are persisted through SQLAlchemy."""
        return self.store_backend.strip().lower() == "sql"


# Global settings instance
settings = Settings()
