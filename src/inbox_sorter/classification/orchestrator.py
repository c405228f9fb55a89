from __future__ import annotations

from collections import Counter
from typing import Dict, List, Optional, Sequence

from inbox_sorter.classification.strategies import (
    ClassificationStrategy,
    GeminiStrategy,
    OpenAIStrategy,
    RuleBasedStrategy,
)
from inbox_sorter.config.settings import AI_MODELS, Settings
from inbox_sorter.errors import ConfigurationError, describe_error
from inbox_sorter.models import ClassificationResult, NormalizedMessage
from inbox_sorter.observability.logging import get_logger
from inbox_sorter.rules.classification import catch_all_result

logger = get_logger(__name__)


class ClassificationOrchestrator:
    """
    Tries each strategy in order and returns the first result that parses.

    classify() never raises. When every strategy fails (only possible without
    the rule-based stage at the end) the message gets the catch-all category
    with the failure recorded on the result.
    """

    def __init__(self, strategies: Sequence[ClassificationStrategy]):
        if not strategies:
            raise ConfigurationError("at least one classification strategy is required")
        self.strategies: List[ClassificationStrategy] = list(strategies)
        # Per-run counters, e.g. {"openai": 4, "openai.failed": 1, "rules": 1}.
        self.stats: Counter = Counter()

    @property
    def chain(self) -> List[str]:
        return [s.name for s in self.strategies]

    async def classify(self, message: NormalizedMessage) -> ClassificationResult:
        failures: List[str] = []
        for strategy in self.strategies:
            try:
                result = await strategy.classify(message)
            except Exception as exc:
                # Not retried at this stage: fall through to the next one.
                reason = describe_error(exc)
                failures.append(f"{strategy.name}: {reason}")
                self.stats[f"{strategy.name}.failed"] += 1
                logger.warning(
                    "[classify] %s failed for message %s: %s", strategy.name, message.message_id, reason
                )
                continue
            self.stats[result.provider] += 1
            if failures:
                logger.info(
                    "[classify] message %s classified by fallback stage %s", message.message_id, result.provider
                )
            return result

        error = "; ".join(failures)
        self.stats["none"] += 1
        logger.error("[classify] all stages failed for message %s: %s", message.message_id, error)
        return catch_all_result(
            "Classification failed at every stage", provider=self.strategies[-1].name, error=error
        )

    def provider_breakdown(self) -> Dict[str, int]:
        return dict(self.stats)


def build_orchestrator(ai_model: str = "auto", settings: Optional[Settings] = None) -> ClassificationOrchestrator:
    """
    auto:   primary (OpenAI) -> secondary (Gemini) -> rules; unconfigured providers are skipped.
    openai / gemini: that provider only, no fallback; missing key is a ConfigurationError.
    rules:  rule-based stage only.
    """
    settings = settings or Settings.from_env()
    if ai_model not in AI_MODELS:
        raise ConfigurationError(f"unknown ai_model {ai_model!r}")

    primary = OpenAIStrategy(
        settings.openai_api_key, settings.openai_model, timeout_s=settings.request_timeout_s
    )
    secondary = GeminiStrategy(
        settings.gemini_api_key, settings.gemini_model, timeout_s=settings.request_timeout_s
    )

    if ai_model == "rules":
        return ClassificationOrchestrator([RuleBasedStrategy()])

    if ai_model in ("openai", "gemini"):
        chosen = primary if ai_model == "openai" else secondary
        if not chosen.is_configured():
            raise ConfigurationError(f"ai_model={ai_model} selected but no API key is configured for it")
        return ClassificationOrchestrator([chosen])

    strategies: List[ClassificationStrategy] = []
    for strategy in (primary, secondary):
        if strategy.is_configured():
            strategies.append(strategy)
        else:
            logger.info("[classify] %s not configured, skipping it in the fallback chain", strategy.name)
    strategies.append(RuleBasedStrategy())
    return ClassificationOrchestrator(strategies)
