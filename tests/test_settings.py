"""Tests for environment-driven engine settings."""

import os
from unittest.mock import patch

import pytest

from roomstay.infra.settings import AvailabilityPolicy, get_settings


class TestGetSettings:
    def test_defaults(self):
        with patch.dict(os.environ, {}, clear=True):
            settings = get_settings()

        assert settings.availability_policy is AvailabilityPolicy.OPT_OUT
        assert settings.change_sync_delay == 0
        assert settings.change_listener == "none"
        assert settings.max_stay_nights == 90

    def test_overrides(self):
        env = {
            "AVAILABILITY_POLICY": "OPT_IN",
            "CHANGE_SYNC_DELAY_MS": "250",
            "CHANGE_LISTENER": "postgres",
            "MAX_STAY_NIGHTS": "30",
        }
        with patch.dict(os.environ, env, clear=True):
            settings = get_settings()

        assert settings.availability_policy is AvailabilityPolicy.OPT_IN
        assert settings.change_sync_delay == 0.25
        assert settings.change_listener == "postgres"
        assert settings.max_stay_nights == 30

    def test_invalid_integer_falls_back(self):
        with patch.dict(os.environ, {"MAX_STAY_NIGHTS": "many"}, clear=True):
            assert get_settings().max_stay_nights == 90

    def test_unknown_policy(self):
        with patch.dict(os.environ, {"AVAILABILITY_POLICY": "sometimes"}, clear=True):
            with pytest.raises(RuntimeError, match="AVAILABILITY_POLICY"):
                get_settings()

    def test_unknown_listener(self):
        with patch.dict(os.environ, {"CHANGE_LISTENER": "redis"}, clear=True):
            with pytest.raises(RuntimeError, match="CHANGE_LISTENER"):
                get_settings()
