"""Application configuration using pydantic-settings."""

from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Application
    app_name: str = "FHIR Record Reconciler"
    debug: bool = False
    log_level: str = "INFO"

    # Version stamped into every normalized envelope
    schema_version: str = "1.0.0"

    # Terminology lookups (best-effort enrichment)
    enable_code_lookup: bool = True
    loinc_fhir_url: str = "https://fhir.loinc.org"
    loinc_username: str | None = None
    loinc_password: str | None = None
    rxnav_url: str = "https://rxnav.nlm.nih.gov/REST"
    lookup_timeout_seconds: float = 10.0

    # Lookup cache
    lookup_cache_backend: Literal["memory", "redis"] = "memory"
    lookup_cache_ttl_seconds: int = 24 * 60 * 60

    # Redis
    redis_url: str = "redis://localhost:6379/0"


settings = Settings()
