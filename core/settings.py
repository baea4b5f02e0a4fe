from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from dotenv import load_dotenv

load_dotenv()

SUPPORTED_STORAGE_BACKENDS = {"local", "s3"}
ONE_YEAR_SECONDS = 365 * 24 * 60 * 60

_POSITIVE_INT_VARS = (
    "BUCKET_PROVISION_MAX_RETRIES",
    "STORAGE_WRITE_ATTEMPTS",
    "SIGNED_URL_TTL_SECONDS",
    "CATALOG_PAGE_SIZE",
    "CATALOG_CACHE_TTL_SECONDS",
    "CATALOG_REFRESH_INTERVAL_SECONDS",
    "CATALOG_AUDIT_INTERVAL_SECONDS",
)


def _split_csv(value: str | None) -> tuple[str, ...]:
    if not value:
        return tuple()
    return tuple(item.strip() for item in value.split(",") if item.strip())


def _env(name: str) -> str | None:
    raw_value = os.getenv(name)
    if raw_value is None:
        return None
    normalized = raw_value.strip()
    return normalized or None


def _env_flag(name: str, default: str = "false") -> bool:
    return (os.getenv(name, default) or "").strip().lower() in {"1", "true", "yes"}


def collect_missing_required_env_vars() -> list[str]:
    missing: list[str] = []

    for var_name in ("MONGO_URL", "DB_NAME"):
        if _env(var_name) is None:
            missing.append(var_name)

    storage_backend = (_env("STORAGE_BACKEND") or "local").lower()
    if storage_backend == "local" and _env("STORAGE_SIGNING_SECRET") is None:
        missing.append("STORAGE_SIGNING_SECRET")

    if _env("RESEND_API_KEY") is not None and _env("EMAIL_FROM") is None:
        missing.append("EMAIL_FROM")
    if _env("WHATSAPP_TOKEN") is not None and _env("WHATSAPP_PHONE_ID") is None:
        missing.append("WHATSAPP_PHONE_ID")

    return sorted(set(missing))


def collect_invalid_env_values() -> list[str]:
    invalid_values: list[str] = []

    storage_backend = (_env("STORAGE_BACKEND") or "local").lower()
    if storage_backend not in SUPPORTED_STORAGE_BACKENDS:
        invalid_values.append("STORAGE_BACKEND must be one of: local, s3")

    for var_name in _POSITIVE_INT_VARS:
        raw = _env(var_name)
        if raw is None:
            continue
        try:
            if int(raw) <= 0:
                raise ValueError("must be positive")
        except ValueError:
            invalid_values.append(f"{var_name} must be a positive integer")

    delay = _env("BUCKET_PROVISION_RETRY_DELAY_SECONDS")
    if delay is not None:
        try:
            if float(delay) < 0:
                raise ValueError("must not be negative")
        except ValueError:
            invalid_values.append("BUCKET_PROVISION_RETRY_DELAY_SECONDS must be a non-negative number")

    country_code = _env("WHATSAPP_DEFAULT_COUNTRY_CODE")
    if country_code is not None and not country_code.isdigit():
        invalid_values.append("WHATSAPP_DEFAULT_COUNTRY_CODE must contain digits only")

    return invalid_values


def validate_required_environment() -> None:
    missing_vars = collect_missing_required_env_vars()
    invalid_values = collect_invalid_env_values()
    if not missing_vars and not invalid_values:
        return

    message_lines = ["Application startup blocked by invalid environment configuration."]
    if missing_vars:
        message_lines.append("")
        message_lines.append("Missing required environment variables:")
        message_lines.extend(f"- {name}" for name in missing_vars)
    if invalid_values:
        message_lines.append("")
        message_lines.append("Invalid environment values:")
        message_lines.extend(f"- {message}" for message in invalid_values)
    raise RuntimeError("\n".join(message_lines))


@dataclass(frozen=True)
class Settings:
    env: str
    cors_origins: tuple[str, ...]
    debug_include_error_details: bool
    log_level: str
    mongo_url: str
    db_name: str
    redis_url: str
    storage_backend: str
    storage_bucket_name: str
    storage_local_root: str
    storage_public_base_url: str | None
    storage_signing_secret: str | None
    s3_region: str | None
    s3_endpoint_url: str | None
    bucket_provision_max_retries: int
    bucket_provision_retry_delay_seconds: float
    storage_write_attempts: int
    signed_url_ttl_seconds: int
    url_verify_reachability: bool
    catalog_page_size: int
    catalog_cache_ttl_seconds: int
    catalog_refresh_interval_seconds: int
    catalog_audit_interval_seconds: int
    resend_api_key: str | None
    email_from: str | None
    whatsapp_token: str | None
    whatsapp_phone_id: str | None
    whatsapp_default_country_code: str

    @property
    def is_production(self) -> bool:
        return self.env.lower() == "production"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    validate_required_environment()

    default_redis = (
        os.getenv("REDIS_URL")
        or f"redis://{os.getenv('REDIS_HOST', '127.0.0.1')}:{os.getenv('REDIS_PORT', '6379')}/0"
    )

    return Settings(
        env=os.getenv("ENV", "development"),
        cors_origins=_split_csv(os.getenv("CORS_ORIGINS")),
        debug_include_error_details=_env_flag("DEBUG_INCLUDE_ERROR_DETAILS"),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        mongo_url=os.getenv("MONGO_URL", ""),
        db_name=os.getenv("DB_NAME", ""),
        redis_url=default_redis,
        storage_backend=os.getenv("STORAGE_BACKEND", "local").lower(),
        storage_bucket_name=os.getenv("STORAGE_BUCKET_NAME", "documents"),
        storage_local_root=os.getenv("STORAGE_LOCAL_ROOT", "uploads"),
        storage_public_base_url=_env("STORAGE_PUBLIC_BASE_URL"),
        storage_signing_secret=_env("STORAGE_SIGNING_SECRET"),
        s3_region=_env("S3_REGION"),
        s3_endpoint_url=_env("S3_ENDPOINT_URL"),
        bucket_provision_max_retries=int(os.getenv("BUCKET_PROVISION_MAX_RETRIES", "3")),
        bucket_provision_retry_delay_seconds=float(os.getenv("BUCKET_PROVISION_RETRY_DELAY_SECONDS", "2")),
        storage_write_attempts=int(os.getenv("STORAGE_WRITE_ATTEMPTS", "3")),
        signed_url_ttl_seconds=int(os.getenv("SIGNED_URL_TTL_SECONDS", str(ONE_YEAR_SECONDS))),
        url_verify_reachability=_env_flag("URL_VERIFY_REACHABILITY"),
        catalog_page_size=int(os.getenv("CATALOG_PAGE_SIZE", "10")),
        catalog_cache_ttl_seconds=int(os.getenv("CATALOG_CACHE_TTL_SECONDS", "300")),
        catalog_refresh_interval_seconds=int(os.getenv("CATALOG_REFRESH_INTERVAL_SECONDS", "30")),
        catalog_audit_interval_seconds=int(os.getenv("CATALOG_AUDIT_INTERVAL_SECONDS", "900")),
        resend_api_key=_env("RESEND_API_KEY"),
        email_from=_env("EMAIL_FROM"),
        whatsapp_token=_env("WHATSAPP_TOKEN"),
        whatsapp_phone_id=_env("WHATSAPP_PHONE_ID"),
        whatsapp_default_country_code=os.getenv("WHATSAPP_DEFAULT_COUNTRY_CODE", "55").strip() or "55",
    )
