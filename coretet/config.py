"""Service configuration loaded from the environment and `.env`."""

import os
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv

from .constants import (
    DEFAULT_APP_URL,
    DEFAULT_DATABASE_PATH,
    DEFAULT_FEEDBACK_RECIPIENT,
    DEFAULT_NETWORK_TIMEOUT,
    DEFAULT_REGISTRY_CACHE_SIZE,
    DEFAULT_STORAGE_BUCKET,
    DEFAULT_STORAGE_LIMIT,
)

load_dotenv()

APP_NAME = "CoreTet"


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")


@dataclass
class ServerConfig:
    """
    Service configuration, read from the environment (and `.env`).

    `network_timeout` bounds every outbound HTTP call (auth, Google Drive,
    email relay) instead of relying on client library defaults.
    """
    supabase_url: str = ""
    supabase_anon_key: str = ""
    s3_endpoint: Optional[str] = None
    s3_access_key_id: str = ""
    s3_secret_access_key: str = ""
    s3_region: str = "auto"
    storage_bucket: str = DEFAULT_STORAGE_BUCKET
    database_path: str = DEFAULT_DATABASE_PATH
    app_url: str = DEFAULT_APP_URL
    resend_api_key: Optional[str] = None
    feedback_recipient: str = DEFAULT_FEEDBACK_RECIPIENT
    google_client_id: Optional[str] = None
    google_client_secret: Optional[str] = None
    google_redirect_uri: Optional[str] = None
    network_timeout: float = DEFAULT_NETWORK_TIMEOUT
    default_storage_limit: int = DEFAULT_STORAGE_LIMIT
    registry_cache_size: int = DEFAULT_REGISTRY_CACHE_SIZE
    secret: Optional[str] = field(default=None, repr=False)

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """Build a config from environment variables."""
        app_url = os.getenv("APP_URL", DEFAULT_APP_URL)
        return cls(
            supabase_url=os.getenv("SUPABASE_URL", "").rstrip("/"),
            supabase_anon_key=os.getenv("SUPABASE_ANON_KEY", ""),
            s3_endpoint=os.getenv("S3_ENDPOINT") or None,
            s3_access_key_id=os.getenv("S3_ACCESS_KEY_ID", ""),
            s3_secret_access_key=os.getenv("S3_SECRET_ACCESS_KEY", ""),
            s3_region=os.getenv("S3_REGION", "auto"),
            storage_bucket=os.getenv("STORAGE_BUCKET", DEFAULT_STORAGE_BUCKET),
            database_path=os.getenv("DATABASE_PATH", DEFAULT_DATABASE_PATH),
            app_url=app_url,
            resend_api_key=os.getenv("RESEND_API_KEY") or None,
            feedback_recipient=os.getenv("FEEDBACK_RECIPIENT", DEFAULT_FEEDBACK_RECIPIENT),
            google_client_id=os.getenv("GOOGLE_CLIENT_ID") or None,
            google_client_secret=os.getenv("GOOGLE_CLIENT_SECRET") or None,
            google_redirect_uri=os.getenv("GOOGLE_REDIRECT_URI") or f"{app_url.rstrip('/')}/auth/google/callback",
            network_timeout=_float_env("NETWORK_TIMEOUT", DEFAULT_NETWORK_TIMEOUT),
            default_storage_limit=_int_env("DEFAULT_STORAGE_LIMIT", DEFAULT_STORAGE_LIMIT),
            registry_cache_size=_int_env("REGISTRY_CACHE_SIZE", DEFAULT_REGISTRY_CACHE_SIZE),
            secret=os.getenv("CORETET_SECRET") or None,
        )
