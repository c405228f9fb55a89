from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from google import genai
from google.genai import types
from openai import AsyncOpenAI

from inbox_sorter.classification.prompt import SYSTEM_PROMPT, build_prompt
from inbox_sorter.classification.response import parse_classification
from inbox_sorter.errors import ClassificationError, InvalidResponse, ProviderUnavailable, describe_error
from inbox_sorter.models import ClassificationResult, NormalizedMessage
from inbox_sorter.rules.classification import RULES_PROVIDER, RuleBasedClassifier


class ClassificationStrategy(ABC):
    """One stage of the fallback chain."""

    name: str = "strategy"

    def is_configured(self) -> bool:
        return True

    @abstractmethod
    async def classify(self, message: NormalizedMessage) -> ClassificationResult:
        """Return a result or raise ClassificationError."""
        ...


class AIStrategy(ClassificationStrategy):
    """Shared prompt/parse contract for the AI providers."""

    def __init__(self, api_key: Optional[str], model: str, *, timeout_s: float = 30.0):
        self.api_key = api_key
        self.model = model
        self.timeout_s = timeout_s

    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def classify(self, message: NormalizedMessage) -> ClassificationResult:
        if not self.is_configured():
            raise ProviderUnavailable(self.name, "no API key configured")
        prompt = build_prompt(message)
        try:
            raw = await self._complete(prompt)
        except ClassificationError:
            raise
        except Exception as exc:
            raise ClassificationError(self.name, describe_error(exc)) from exc
        return parse_classification(raw, provider=self.name)

    @abstractmethod
    async def _complete(self, prompt: str) -> str:
        ...


class OpenAIStrategy(AIStrategy):
    name = "openai"

    def __init__(self, api_key: Optional[str], model: str = "gpt-4o-mini", *, timeout_s: float = 30.0):
        super().__init__(api_key, model, timeout_s=timeout_s)
        self._client = None

    def _get_client(self):
        if self._client is None:
            self._client = AsyncOpenAI(api_key=self.api_key, timeout=self.timeout_s, max_retries=0)
        return self._client

    async def _complete(self, prompt: str) -> str:
        completion = await self._get_client().chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            response_format={"type": "json_object"},
            temperature=0.3,
            max_tokens=500,
        )
        content = completion.choices[0].message.content if completion.choices else None
        if not content:
            raise InvalidResponse(self.name, "no response content")
        return content


class GeminiStrategy(AIStrategy):
    name = "gemini"

    def __init__(self, api_key: Optional[str], model: str = "gemini-2.0-flash", *, timeout_s: float = 30.0):
        super().__init__(api_key, model, timeout_s=timeout_s)
        self._client = None

    def _get_client(self):
        if self._client is None:
            self._client = genai.Client(
                api_key=self.api_key,
                http_options=types.HttpOptions(timeout=int(self.timeout_s * 1000)),
            )
        return self._client

    async def _complete(self, prompt: str) -> str:
        response = await self._get_client().aio.models.generate_content(
            model=self.model,
            contents=prompt,
            config=types.GenerateContentConfig(
                system_instruction=SYSTEM_PROMPT,
                response_mime_type="application/json",
                temperature=0.3,
                max_output_tokens=500,
            ),
        )
        if not response.text:
            raise InvalidResponse(self.name, "no response text")
        return response.text


class RuleBasedStrategy(ClassificationStrategy):
    """Terminal stage: deterministic and never fails."""

    name = RULES_PROVIDER

    def __init__(self, classifier: Optional[RuleBasedClassifier] = None):
        self.classifier = classifier or RuleBasedClassifier()

    async def classify(self, message: NormalizedMessage) -> ClassificationResult:
        return self.classifier.classify(message)
