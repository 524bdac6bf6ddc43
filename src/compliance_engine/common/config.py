"""Compliance-Engine configuration via pydantic-settings."""

import warnings
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

_INSECURE_DEFAULTS = {
    "gateway_key": "insecure-gateway-key-change-me",
}


class ComplianceSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="COMPLIANCE_")

    environment: str = "development"
    log_level: str = "INFO"

    # Database
    db_url: str = "sqlite+aiosqlite:///./data/compliance.db"
    db_echo: bool = False

    # API
    api_title: str = "Compliance-Engine"
    api_version: str = "0.1.0"
    gateway_key: str = "insecure-gateway-key-change-me"
    host: str = "0.0.0.0"
    port: int = 8080
    api_prefix: str = ""
    cors_origins: list[str] = ["http://localhost:3000", "http://localhost:8000"]

    # Pagination
    default_page_size: int = 20
    max_page_size: int = 100

    # Audit retention
    audit_retention_days: int = 90
    audit_sweep_interval_seconds: int = 0  # 0 disables the background sweep

    # Asset storage
    max_upload_bytes: int = 100 * 1024 * 1024
    storage_backend: str = "local"  # local | s3
    storage_local_path: str = "./data/uploads"
    storage_bucket: str = ""
    storage_region: str = ""
    storage_endpoint_url: str = ""
    storage_prefix: str = "compliance"
    presigned_url_ttl_seconds: int = 604800  # 7 days
    storage_timeout_seconds: float = 30.0

    # Passwords
    bcrypt_rounds: int = 12

    def validate_for_production(self) -> None:
        """Raise if insecure defaults are used in non-development environments."""
        insecure_fields = [
            field
            for field, default in _INSECURE_DEFAULTS.items()
            if getattr(self, field) == default
        ]

        if self.environment != "development" and insecure_fields:
            env_vars = ", ".join(f"COMPLIANCE_{f.upper()}" for f in insecure_fields)
            raise RuntimeError(
                f"Insecure default values detected in '{self.environment}' environment. "
                f"Set these environment variables to secure values: {env_vars}. "
                "Generate secrets with: python -c \"import secrets; print(secrets.token_urlsafe(48))\""
            )

        if self.storage_backend == "s3" and not self.storage_bucket:
            raise RuntimeError("COMPLIANCE_STORAGE_BUCKET is required when storage_backend is 's3'")

        if insecure_fields:
            warnings.warn(
                "Using the insecure default gateway key; set COMPLIANCE_GATEWAY_KEY for production",
                UserWarning,
                stacklevel=2,
            )


@lru_cache
def get_settings() -> ComplianceSettings:
    settings = ComplianceSettings()
    settings.validate_for_production()
    return settings
