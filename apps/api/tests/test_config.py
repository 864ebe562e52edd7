"""
Tests for settings validation and policy construction.
"""

import pytest

from alumni_search.core import ConfigurationError, SearchPolicy, Settings


def _settings(**overrides) -> Settings:
    # _env_file=None keeps a developer's local .env out of the test
    return Settings(_env_file=None, **overrides)


class TestRequireCredentials:

    def test_missing_credentials_raise(self, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)

        with pytest.raises(ConfigurationError, match="OPENAI_API_KEY"):
            _settings(openai_api_key=None).require_credentials()

    def test_openai_key_covers_both_upstreams(self):
        _settings(openai_api_key="sk-test").require_credentials()

    def test_self_hosted_endpoints_need_no_openai_key(self):
        _settings(
            openai_api_key=None,
            embed_api_base_url="http://embed.internal:8000",
            chat_api_base_url="http://llm.internal:8000",
        ).require_credentials()


class TestSettings:

    def test_cors_origins_parsed(self):
        assert _settings(cors_origins="https://a.com, https://b.com").cors_origins_list == [
            "https://a.com",
            "https://b.com",
        ]

    def test_policy_from_settings(self):
        policy = SearchPolicy.from_settings(
            _settings(search_min_relevance=0.5, search_result_cap=10, search_weight_skills=0.25)
        )

        assert policy.min_relevance == 0.5
        assert policy.result_cap == 10
        assert policy.weight_for("skills") == 0.25
        assert policy.weight_for("work") == 1.0
