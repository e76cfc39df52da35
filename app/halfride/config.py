import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    secret_key: str
    env: str
    database_url: str

    storage_backend: str
    storage_local_root: str
    s3_endpoint: str
    s3_region: str
    s3_bucket: str
    s3_access_key_id: str
    s3_secret_access_key: str

    flightstats_base_url: str
    google_maps_api_key: str
    session_access_ttl_seconds: int
    cors_origins: str


def _getenv(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def _getenv_int(name: str, default: int) -> int:
    raw = _getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def load_settings() -> Settings:
    return Settings(
        secret_key=_getenv("SECRET_KEY", "change-me"),
        env=_getenv("ENV", "development"),
        database_url=_getenv("DATABASE_URL", "sqlite:///halfride.db"),
        storage_backend=_getenv("STORAGE_BACKEND", "local"),
        storage_local_root=_getenv("STORAGE_LOCAL_ROOT", ""),
        s3_endpoint=_getenv("S3_ENDPOINT", ""),
        s3_region=_getenv("S3_REGION", "nyc3"),
        s3_bucket=_getenv("S3_BUCKET", ""),
        s3_access_key_id=_getenv("S3_ACCESS_KEY_ID", ""),
        s3_secret_access_key=_getenv("S3_SECRET_ACCESS_KEY", ""),
        flightstats_base_url=_getenv("FLIGHTSTATS_BASE_URL", "https://www.flightstats.com/v2/api-next"),
        google_maps_api_key=_getenv("GOOGLE_MAPS_API_KEY", ""),
        session_access_ttl_seconds=_getenv_int("SESSION_ACCESS_TTL_SECONDS", 15 * 60),
        cors_origins=_getenv("CORS_ORIGINS", ""),
    )


def load_config() -> dict:
    s = load_settings()
    is_production = s.env in ("prod", "production")
    return {
        "SECRET_KEY": s.secret_key,
        "ENV": s.env,
        "DATABASE_URL": s.database_url,
        "STORAGE_BACKEND": s.storage_backend,
        "STORAGE_LOCAL_ROOT": s.storage_local_root,
        "S3_ENDPOINT": s.s3_endpoint,
        "S3_REGION": s.s3_region,
        "S3_BUCKET": s.s3_bucket,
        "S3_ACCESS_KEY_ID": s.s3_access_key_id,
        "S3_SECRET_ACCESS_KEY": s.s3_secret_access_key,
        "FLIGHTSTATS_BASE_URL": s.flightstats_base_url,
        "GOOGLE_MAPS_API_KEY": s.google_maps_api_key,
        "SESSION_ACCESS_TTL_SECONDS": s.session_access_ttl_seconds,
        "CORS_ORIGINS": [o.strip() for o in s.cors_origins.split(",") if o.strip()],
        # security defaults
        "SESSION_COOKIE_HTTPONLY": True,
        "SESSION_COOKIE_SAMESITE": "Lax",
        "SESSION_COOKIE_SECURE": is_production,
        # profile photos are capped at 5MB in the handler; leave headroom for multipart overhead
        "MAX_CONTENT_LENGTH": 6 * 1024 * 1024,
    }
