from __future__ import annotations

import pytest

from inbox_sorter.config.settings import PipelineConfig, Settings
from inbox_sorter.errors import ConfigurationError


def test_defaults() -> None:
    config = PipelineConfig()

    assert config.max_results == 50
    assert config.batch_size == 50
    assert config.max_retries == 3
    assert config.ai_model == "auto"
    assert config.apply_labels is False


@pytest.mark.parametrize(
    "overrides",
    [
        {"max_results": 0},
        {"max_results": 501},
        {"batch_size": 101},
        {"max_retries": 0},
        {"ai_model": "claude"},
        {"fetch_delay_s": -1},
        {"deadline_s": 0},
    ],
)
def test_invalid_values_are_rejected(overrides) -> None:
    with pytest.raises(ConfigurationError):
        PipelineConfig(**overrides)


def test_from_mapping_accepts_request_style_keys() -> None:
    config = PipelineConfig.from_mapping(
        {"maxResults": 20, "batchSize": 10, "aiModel": "rules", "applyLabels": True, "query": "in:inbox", "extra": 1}
    )

    assert (config.max_results, config.batch_size, config.ai_model) == (20, 10, "rules")
    assert config.apply_labels is True
    assert config.query == "in:inbox"


def test_with_overrides_revalidates() -> None:
    config = PipelineConfig()

    assert config.with_overrides(max_results=5).max_results == 5
    with pytest.raises(ConfigurationError):
        config.with_overrides(batch_size=0)


def test_settings_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    monkeypatch.setenv("GOOGLE_API_KEY", "g-test")
    monkeypatch.setenv("INBOX_SORTER_LABEL_PREFIX", "/Sorted/")
    monkeypatch.setenv("INBOX_SORTER_REQUEST_TIMEOUT", "12.5")

    settings = Settings.from_env()

    assert settings.openai_api_key == "sk-test"
    assert settings.gemini_api_key == "g-test"
    assert settings.label_prefix == "Sorted"
    assert settings.request_timeout_s == 12.5
    assert settings.openai_model == "gpt-4o-mini"


def test_settings_reject_bad_timeout(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("INBOX_SORTER_REQUEST_TIMEOUT", "soon")

    with pytest.raises(ConfigurationError):
        Settings.from_env()
