from __future__ import annotations

import asyncio

import pytest
from conftest import FakeStrategy, make_message, make_result

from inbox_sorter.classification.orchestrator import ClassificationOrchestrator, build_orchestrator
from inbox_sorter.classification.strategies import GeminiStrategy, OpenAIStrategy, RuleBasedStrategy
from inbox_sorter.config.settings import Settings
from inbox_sorter.errors import ClassificationError, ConfigurationError, InvalidResponse, ProviderUnavailable
from inbox_sorter.models import TAXONOMY, Category


def _classify(orchestrator: ClassificationOrchestrator, message):
    return asyncio.run(orchestrator.classify(message))


def test_primary_result_is_used_when_it_succeeds() -> None:
    message = make_message("m1", subject="Lunch?")
    primary = FakeStrategy("openai", {"m1": make_result(Category.PERSONAL, provider="openai")})
    secondary = FakeStrategy("gemini", {"m1": make_result(Category.WORK, provider="gemini")})

    orchestrator = ClassificationOrchestrator([primary, secondary, RuleBasedStrategy()])
    result = _classify(orchestrator, message)

    assert result.category is Category.PERSONAL
    assert result.provider == "openai"
    assert secondary.seen == []


def test_secondary_runs_only_after_primary_fails() -> None:
    message = make_message("m1")
    primary = FakeStrategy("openai", error=InvalidResponse("openai", "invalid JSON"), fail_all=True)
    secondary = FakeStrategy("gemini", {"m1": make_result(Category.SOCIAL, provider="gemini")})

    orchestrator = ClassificationOrchestrator([primary, secondary, RuleBasedStrategy()])
    result = _classify(orchestrator, message)

    assert result.provider == "gemini"
    assert primary.seen == ["m1"]
    assert orchestrator.provider_breakdown() == {"openai.failed": 1, "gemini": 1}


@pytest.mark.parametrize(
    ("subject", "body"),
    [("", ""), ("Invoice 42", "amount due"), ("\x00\x01", "☃" * 50)],
)
def test_rules_still_classify_when_both_providers_fail(subject: str, body: str) -> None:
    message = make_message("m1", subject=subject, body=body, sender="")
    orchestrator = ClassificationOrchestrator(
        [FakeStrategy("openai", fail_all=True), FakeStrategy("gemini", fail_all=True), RuleBasedStrategy()]
    )

    result = _classify(orchestrator, message)

    assert result.provider == "rules"
    assert result.category in TAXONOMY or result.category is Category.UNCATEGORIZED
    assert result.error is None


def test_single_provider_failure_degrades_to_catch_all_with_error() -> None:
    orchestrator = ClassificationOrchestrator([FakeStrategy("openai", fail_all=True)])

    result = _classify(orchestrator, make_message("m1"))

    assert result.category is Category.UNCATEGORIZED
    assert result.confidence == 0.0
    assert "openai" in result.error
    assert orchestrator.stats["none"] == 1


def test_ai_strategy_without_key_is_unavailable() -> None:
    strategy = OpenAIStrategy(api_key=None)

    assert not strategy.is_configured()
    with pytest.raises(ProviderUnavailable):
        asyncio.run(strategy.classify(make_message("m1")))


def test_ai_strategy_parses_provider_text(monkeypatch: pytest.MonkeyPatch) -> None:
    strategy = GeminiStrategy(api_key="key")

    async def fake_complete(prompt: str) -> str:
        assert "Subject: Board meeting" in prompt
        return '{"category": "Work", "confidence": 0.9, "priority": "medium"}'

    monkeypatch.setattr(strategy, "_complete", fake_complete)
    result = asyncio.run(strategy.classify(make_message("m1", subject="Board meeting")))

    assert result.category is Category.WORK
    assert result.provider == "gemini"


def test_ai_strategy_wraps_sdk_errors(monkeypatch: pytest.MonkeyPatch) -> None:
    strategy = OpenAIStrategy(api_key="key")

    async def boom(prompt: str) -> str:
        raise TimeoutError("request timed out")

    monkeypatch.setattr(strategy, "_complete", boom)

    with pytest.raises(ClassificationError) as excinfo:
        asyncio.run(strategy.classify(make_message("m1")))
    assert excinfo.value.provider == "openai"
    assert "timed out" in str(excinfo.value)


def test_auto_chain_skips_unconfigured_providers() -> None:
    orchestrator = build_orchestrator("auto", Settings(gemini_api_key="g"))

    assert orchestrator.chain == ["gemini", "rules"]


def test_auto_chain_order_with_both_keys() -> None:
    orchestrator = build_orchestrator("auto", Settings(openai_api_key="o", gemini_api_key="g"))

    assert orchestrator.chain == ["openai", "gemini", "rules"]


def test_explicit_provider_disables_fallback() -> None:
    orchestrator = build_orchestrator("openai", Settings(openai_api_key="o", gemini_api_key="g"))

    assert orchestrator.chain == ["openai"]


def test_explicit_provider_without_key_is_a_configuration_error() -> None:
    with pytest.raises(ConfigurationError):
        build_orchestrator("gemini", Settings(openai_api_key="o"))


def test_rules_mode_and_unknown_mode() -> None:
    assert build_orchestrator("rules", Settings()).chain == ["rules"]
    with pytest.raises(ConfigurationError):
        build_orchestrator("claude", Settings())
