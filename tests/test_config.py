"""
Tests for configuration loading.
"""

from packleader.config import BloodHoundConfig, LLMConfig, PackLeaderConfig


def test_bloodhound_settings_from_environment(monkeypatch):
    monkeypatch.setenv("BH_URL", "https://bh.corp.local:8443/")
    monkeypatch.setenv("BH_USERNAME", "analyst")
    monkeypatch.setenv("BH_PASSWORD", "hunter2")

    config = BloodHoundConfig()

    assert config.url == "https://bh.corp.local:8443"
    assert config.username == "analyst"
    assert config.password == "hunter2"


def test_api_key_follows_provider(monkeypatch):
    monkeypatch.setenv("ANTHROPIC_API_KEY", "a-key")
    monkeypatch.setenv("OPENAI_API_KEY", "o-key")

    assert LLMConfig(provider="anthropic").api_key == "a-key"
    assert LLMConfig(provider="openai").api_key == "o-key"


def test_from_dict_and_masked_to_dict():
    config = PackLeaderConfig.from_dict({
        "bloodhound": {"url": "http://bh", "password": "secret"},
        "llm": {"enabled": False, "api_key": "k"},
        "analysis": {"init_path_limit": 3},
        "verbose": True,
    })

    assert config.analysis.init_path_limit == 3
    assert config.verbose
    data = config.to_dict()
    assert data["bloodhound"]["password"] == "***"
    assert data["llm"]["api_key"] == "***"
    assert data["analysis"]["privileged_group_prefix"] == "DOMAIN ADMINS"
