"""Configuration defaults and validators."""

import pytest
from pydantic import ValidationError

from coachbot.config.settings import Settings, settings


def _settings(**overrides):
    return Settings(GOOGLE_API_KEY="key", MONGO_URI="mongodb://localhost", **overrides)


class TestDefaults:
    def test_pipeline_defaults(self):
        s = _settings()
        assert s.CHUNK_SIZE == 1000
        assert s.CHUNK_OVERLAP == 200
        assert s.SIMILARITY_THRESHOLD == 0.7
        assert s.SEARCH_RESULTS_LIMIT == 10
        assert s.SUMMARY_THRESHOLD == 20
        assert s.CONTEXT_WINDOW == 10

    def test_secrets_are_masked(self):
        """Raw secret values never appear in repr."""
        assert "test-google-api-key" not in repr(settings)
        assert settings.GOOGLE_API_KEY.get_secret_value()


class TestValidators:
    def test_overlap_must_be_below_chunk_size(self):
        with pytest.raises(ValidationError):
            _settings(CHUNK_SIZE=100, CHUNK_OVERLAP=100)

    def test_similarity_threshold_in_unit_interval(self):
        with pytest.raises(ValidationError):
            _settings(SIMILARITY_THRESHOLD=1.5)

    def test_worker_range(self):
        with pytest.raises(ValidationError):
            _settings(MAX_WORKERS=0)

    def test_summary_threshold_positive(self):
        with pytest.raises(ValidationError):
            _settings(SUMMARY_THRESHOLD=0)
