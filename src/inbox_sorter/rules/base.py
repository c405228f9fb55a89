from __future__ import annotations

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Sequence

from inbox_sorter.models import Category, NormalizedMessage, Priority


@dataclass(frozen=True)
class MailText:
    """Lower-cased views of a message, computed once per classification."""

    subject: str
    body: str
    sender: str
    sender_domain: str

    @classmethod
    def of(cls, message: NormalizedMessage) -> "MailText":
        return cls(
            subject=(message.subject or "").lower(),
            body=(message.body_text or message.snippet or "").lower(),
            sender=(message.from_email or "").lower(),
            sender_domain=message.sender_domain,
        )

    @property
    def content(self) -> str:
        return f"{self.subject}\n{self.body}\n{self.sender_domain}"


@dataclass(frozen=True)
class RuleMatch:
    matched: bool
    reason: str = ""


class BaseRule(ABC):
    """
    Base class for the deterministic classification rules.

    Each rule maps to exactly one category with a fixed confidence and
    priority. Rules are evaluated in list order and the first match wins.
    """

    name: str = "base_rule"
    category: Category = Category.UNCATEGORIZED
    confidence: float = 0.5
    priority: Priority = Priority.MEDIUM
    needs_follow_up: bool = False
    follow_up_suggestion: str = ""
    suggested_response: str = ""

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r}, category={self.category.value})"

    # --- Helpers (None-safe, case-insensitive) ---

    def contains_any(self, text: str | None, needles: Sequence[str]) -> str | None:
        """Return the first needle found in text, else None."""
        t = (text or "").lower()
        for needle in needles:
            if needle.lower() in t:
                return needle
        return None

    def has_word(self, text: str | None, words: Sequence[str]) -> str | None:
        """Whole-word variant of contains_any, for short keywords like 'job' or 'tax'."""
        t = (text or "").lower()
        for word in words:
            if re.search(rf"\b{re.escape(word.lower())}\b", t):
                return word
        return None

    def domain_in(self, mail: MailText, domains: Sequence[str]) -> str | None:
        for domain in domains:
            if mail.sender_domain == domain or mail.sender_domain.endswith("." + domain):
                return domain
        return None

    # --- Rule API ---

    @abstractmethod
    def match(self, mail: MailText) -> RuleMatch:
        raise NotImplementedError
