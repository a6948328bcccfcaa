"""
Centralized configuration for the content directory backend.

Provides environment-aware settings for the HTTP server and the content
sync engine. Everything is read from environment variables; main.py loads
.env.local and .env before anything here is called.
"""

import os
from dataclasses import dataclass
from pathlib import Path


def is_dev_mode() -> bool:
    """Check if running in development mode (--dev flag or DEV_MODE env)."""
    return os.getenv("DEV_MODE", "").lower() in ("true", "1", "yes")


def is_production() -> bool:
    """Check if running on Railway (production environment)."""
    return bool(os.environ.get("RAILWAY_ENVIRONMENT"))


def get_api_port() -> int:
    """Get API server port from env or default."""
    return int(os.getenv("API_PORT", "8000"))


def get_frontend_url() -> str:
    """Get the frontend URL (used for CORS and page revalidation)."""
    return os.environ.get("FRONTEND_URL", "http://localhost:3000").rstrip("/")


def get_allowed_origins() -> list[str]:
    """
    Get list of allowed CORS origins.

    Includes localhost variants for dev and the production frontend URL.
    """
    hosts = ["localhost", "127.0.0.1"]
    ports = [3000, get_api_port()]
    origins = [f"http://{host}:{port}" for host in hosts for port in ports]

    frontend_url = get_frontend_url()
    if frontend_url not in origins:
        origins.append(frontend_url)

    return origins


def _get_bool(name: str) -> bool:
    return os.getenv(name, "").lower() in ("true", "1", "yes")


def _get_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


def _get_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")


@dataclass(frozen=True)
class ContentSettings:
    """Settings for the content mirror, sync manager and cache."""

    content_path: Path
    data_repository: str | None = None
    github_token: str | None = None
    branch: str | None = None
    sync_interval_seconds: int = 60
    sync_timeout_seconds: float = 300.0
    git_command_timeout_seconds: float = 120.0
    sync_max_attempts: int = 3
    sync_retry_base_seconds: float = 1.0
    auto_sync_disabled: bool = False
    default_locale: str = "en"
    supported_locales: tuple[str, ...] = ("en",)
    revalidate_url: str | None = None
    revalidate_secret: str | None = None


def load_content_settings() -> ContentSettings:
    """Build ContentSettings from the environment."""
    default_locale = os.getenv("DEFAULT_LOCALE", "en")
    raw_locales = os.getenv("SUPPORTED_LOCALES", default_locale)
    locales = tuple(
        locale.strip() for locale in raw_locales.split(",") if locale.strip()
    )
    if default_locale not in locales:
        locales = (default_locale, *locales)

    max_attempts = _get_int("SYNC_MAX_ATTEMPTS", 3)
    if max_attempts < 1:
        raise ValueError("SYNC_MAX_ATTEMPTS must be at least 1")

    return ContentSettings(
        content_path=Path(os.getenv("CONTENT_PATH", ".content")).resolve(),
        data_repository=os.getenv("DATA_REPOSITORY") or None,
        github_token=os.getenv("GH_TOKEN") or None,
        branch=os.getenv("CONTENT_BRANCH") or None,
        sync_interval_seconds=_get_int("SYNC_INTERVAL_SECONDS", 60),
        sync_timeout_seconds=_get_float("SYNC_TIMEOUT_SECONDS", 300.0),
        git_command_timeout_seconds=_get_float("GIT_COMMAND_TIMEOUT_SECONDS", 120.0),
        sync_max_attempts=max_attempts,
        sync_retry_base_seconds=_get_float("SYNC_RETRY_BASE_SECONDS", 1.0),
        # Auto-sync can only be switched off in development
        auto_sync_disabled=is_dev_mode() and _get_bool("DISABLE_AUTO_SYNC"),
        default_locale=default_locale,
        supported_locales=locales,
        revalidate_url=os.getenv("REVALIDATE_URL") or None,
        revalidate_secret=os.getenv("REVALIDATE_SECRET") or None,
    )


def get_cron_secret() -> str | None:
    """Get the shared secret used by the external cron caller."""
    return os.getenv("CRON_SECRET") or None


# Required environment variables for production
# Format: (name, description, required_in_dev)
REQUIRED_ENV_VARS = [
    ("JWT_SECRET", "Secret key for admin session tokens", True),
    ("DATA_REPOSITORY", "Git URL of the content repository", False),
    ("CRON_SECRET", "Bearer secret for the forced sync endpoint", False),
]


def check_required_env_vars() -> tuple[bool, list[str]]:
    """
    Check that required environment variables are set.

    Returns:
        (all_ok, warnings): Tuple of success flag and list of warning messages
    """
    warnings = []
    errors = []
    in_dev = is_dev_mode()

    for name, description, required_in_dev in REQUIRED_ENV_VARS:
        value = os.environ.get(name)

        if not value:
            if is_production():
                errors.append(f"  ✗ {name}: Not set ({description})")
            elif required_in_dev or not in_dev:
                warnings.append(f"  ⚠ {name}: Not set ({description})")

    if errors:
        for error in errors:
            print(error)
        return False, warnings

    return True, warnings
