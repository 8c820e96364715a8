"""Shared pytest fixtures for roomstay tests."""
import sys
sys.dont_write_bytecode = True

import pytest  # noqa: E402


@pytest.fixture(autouse=True)
def _reset_oidc_jwks_cache():
    """Reset the module-level JWKS cache between tests.

    A JWKS cached by one test would not match the next test's keys.
    """
    import roomstay.api.auth as auth_module

    auth_module._jwks_cache = None
    auth_module._jwks_cache_time = 0
    yield
    auth_module._jwks_cache = None
    auth_module._jwks_cache_time = 0


@pytest.fixture(autouse=True)
def _clear_change_feed():
    """Drop subscriptions left on the process change feed by a test."""
    from roomstay.sync.feed import get_change_feed

    get_change_feed().clear()
    yield
    get_change_feed().clear()
