"""
Unit test configuration.

Settings classes read keyvault's `.env` (MONGODB_URI, JWT_SECRET, SENTRY_DSN...).
The dotenv provider is stubbed out and the secrets most likely exported in a
developer shell are cleared, so AppSettings only sees what a test sets with
monkeypatch.setenv().
"""

import pytest

SHELL_SECRETS = ("JWT_SECRET", "SENTRY_DSN")


@pytest.fixture(autouse=True)
def isolate_settings(monkeypatch):
    import pydantic_settings.sources.providers.dotenv as ps_dotenv

    monkeypatch.setattr(ps_dotenv, "dotenv_values", lambda *a, **kw: {})
    for var in SHELL_SECRETS:
        monkeypatch.delenv(var, raising=False)
