# web_api/tests/conftest.py
"""Pytest fixtures for web API tests.

Installs a content runtime backed by a temporary local-only mirror, so
API tests run without git, network access or a real scheduler.
"""

import pytest

from core.config import ContentSettings
from core.content import build_runtime, clear_runtime, set_runtime

TEST_JWT_SECRET = "test-jwt-secret"
TEST_CRON_SECRET = "test-cron-secret"


@pytest.fixture(autouse=True)
def auth_env(monkeypatch):
    """Secrets used by the session and cron-caller checks."""
    monkeypatch.setenv("JWT_SECRET", TEST_JWT_SECRET)
    monkeypatch.setenv("CRON_SECRET", TEST_CRON_SECRET)


@pytest.fixture(autouse=True)
def api_content_runtime(content_root):
    """Set up a content runtime over the sample repository.

    This fixture runs automatically for all tests in web_api/tests/.
    The sync job is never registered; tests trigger syncs explicitly.
    """
    settings = ContentSettings(
        content_path=content_root,
        default_locale="en",
        supported_locales=("en", "fr"),
    )
    runtime = build_runtime(settings)
    set_runtime(runtime)

    yield runtime

    clear_runtime()
