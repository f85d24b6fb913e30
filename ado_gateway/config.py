import re
from typing import Optional
from urllib.parse import urlparse

from pydantic import ValidationInfo, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_API_VERSION_PATTERN = re.compile(r"^\d+\.\d+(-preview(\.\d+)?)?$")
_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def _require_http_url(value: str, name: str) -> str:
    parsed = urlparse(value)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise ValueError(f"{name} must be an absolute http/https URL")
    return value.rstrip("/")


class Settings(BaseSettings):
    # Runtime environment
    environment: str = "development"
    service_name: str = "Azure DevOps Gateway"
    service_version: str = "1.0.0"

    # Azure DevOps upstream
    ado_organization: Optional[str] = None
    ado_base_url: str = "https://dev.azure.com"
    ado_release_base_url: str = "https://vsrm.dev.azure.com"
    ado_api_version: str = "7.1"
    ado_request_timeout_seconds: float = 10.0
    ado_user_agent: str = "ado-gateway/1.0"

    # Enabled route domains ("all", one domain, or a comma separated list)
    ado_domains: str = "all"

    # Credentials, tried in order: PAT, App Service identity, IMDS
    ado_pat: Optional[str] = None
    ado_token_resource: str = "499b84ac-1321-427f-aa17-267ca6975798"
    identity_endpoint: Optional[str] = None
    identity_header: Optional[str] = None
    imds_endpoint: str = "http://169.254.169.254/metadata/identity/oauth2/token"
    managed_identity_client_id: Optional[str] = None
    token_timeout_seconds: float = 5.0
    token_refresh_margin_seconds: int = 60
    token_failure_cache_seconds: int = 30

    # Serve canned data when no credential can be acquired
    mock_fallback_enabled: bool = True

    # API versioning
    api_latest_version: str = "v1"
    api_supported_versions: list[str] = ["v1"]

    # Optional feature packs (enabled by default)
    enable_optional_rate_limiting: bool = True
    enable_optional_observability: bool = True

    # Rate limiting / Redis
    redis_url: str = "redis://localhost:6379/0"
    redis_socket_timeout_seconds: float = 1.0
    rate_limit_enabled: bool = False
    rate_limit_fail_open: bool = True
    rate_limit_read_limit: int = 120
    rate_limit_read_window_seconds: int = 60
    rate_limit_write_limit: int = 30
    rate_limit_write_window_seconds: int = 60

    # Readiness checks
    redis_health_required: bool = False

    # Observability
    log_level: str = "INFO"
    metrics_enabled: bool = True
    otel_exporter_otlp_endpoint: Optional[str] = None
    otel_service_name: str = "ado-gateway"
    sentry_dsn: Optional[str] = None
    sentry_environment: str = "development"
    sentry_traces_sample_rate: float = 0.0

    # Request security controls
    trust_proxy_headers: bool = False
    trusted_hosts: list[str] = ["localhost", "127.0.0.1", "testserver"]
    security_headers_enabled: bool = True
    security_csp_enabled: bool = True
    security_hsts_enabled: bool = False
    security_hsts_max_age_seconds: int = 31_536_000
    security_https_redirect: bool = False

    # CORS
    cors_origins: list[str] = ["*"]

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in _LOG_LEVELS:
            allowed = ", ".join(sorted(_LOG_LEVELS))
            raise ValueError(f"LOG_LEVEL must be one of: {allowed}")
        return normalized

    @field_validator("ado_api_version")
    @classmethod
    def validate_ado_api_version(cls, value: str) -> str:
        normalized = value.strip()
        if not _API_VERSION_PATTERN.match(normalized):
            raise ValueError(
                "ADO_API_VERSION must look like '7.1' or '7.1-preview.4'"
            )
        return normalized

    @field_validator("ado_base_url", "ado_release_base_url", "imds_endpoint")
    @classmethod
    def validate_upstream_url(cls, value: str, info: ValidationInfo) -> str:
        return _require_http_url(value, info.field_name.upper())

    @field_validator("ado_organization")
    @classmethod
    def validate_ado_organization(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        normalized = value.strip().strip("/")
        if not normalized:
            return None
        if "/" in normalized:
            raise ValueError("ADO_ORGANIZATION must be an organization name, not a URL")
        return normalized

    @model_validator(mode="after")
    def validate_production_fallback(self) -> "Settings":
        if self.environment.lower() in {"prod", "production"}:
            if self.mock_fallback_enabled:
                raise ValueError(
                    "MOCK_FALLBACK_ENABLED must be false in production"
                )
        return self


settings = Settings()
