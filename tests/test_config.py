"""Tests for settings and component wiring."""

import os
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from pydantic import ValidationError

from interaction_analytics.config import Settings
from interaction_analytics.services import Services


class TestSettings:
    """Tests for environment-driven settings."""

    def test_defaults(self):
        """Defaults match the documented deployment."""
        with patch.dict(os.environ, {}, clear=True):
            s = Settings(_env_file=None)
            assert s.EVAL_QUEUE_PREFIX == "eval:"
            assert s.EVAL_QUEUE_TTL_SECONDS == 3600
            assert s.EVAL_BATCH_SIZE == 50
            assert s.EVAL_INTERVAL_SECONDS == 60.0
            assert s.QUALITY_MODEL_TIMEOUT == 10.0
            assert s.quality_model_enabled is False

    def test_env_override(self):
        """Environment variables override defaults."""
        with patch.dict(
            os.environ, {"EVAL_BATCH_SIZE": "10", "GEMINI_API_KEY": "test-key"}, clear=True
        ):
            s = Settings(_env_file=None)
            assert s.EVAL_BATCH_SIZE == 10
            assert s.quality_model_enabled is True

    def test_cors_origin_list(self):
        """Comma-separated origins are split and trimmed."""
        s = Settings(_env_file=None, CORS_ALLOW_ORIGINS="https://a.example, https://b.example,")
        assert s.cors_origin_list == ["https://a.example", "https://b.example"]

    def test_invalid_batch_size(self):
        """A zero batch size is rejected."""
        with pytest.raises(ValidationError, match="EVAL_BATCH_SIZE"):
            Settings(_env_file=None, EVAL_BATCH_SIZE=0)

    def test_settings_are_frozen(self):
        """Settings cannot be mutated after load."""
        s = Settings(_env_file=None)
        with pytest.raises(ValidationError):
            s.EVAL_BATCH_SIZE = 5


class TestServices:
    """Tests for building components from settings."""

    @pytest.mark.asyncio
    async def test_model_tier_disabled_without_key(self, settings):
        """No API key means no model client."""
        redis_client = MagicMock(aclose=AsyncMock())
        services = Services.from_settings(settings, redis_client=redis_client)
        try:
            assert services.quality_model is None
            assert services.classifier.quality_model is None
            assert services.queue.prefix == "eval:"
        finally:
            await services.close()
        redis_client.aclose.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_model_tier_enabled_with_key(self, settings):
        """An API key wires the model client into the classifier."""
        settings = settings.model_copy(update={"GEMINI_API_KEY": "test-key", "EVAL_BATCH_SIZE": 7})
        services = Services.from_settings(settings, redis_client=MagicMock(aclose=AsyncMock()))
        try:
            assert services.quality_model is not None
            assert services.classifier.quality_model is services.quality_model
            assert services.classifier.batch_size == 7
        finally:
            await services.close()
