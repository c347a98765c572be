from __future__ import annotations

import re
from dataclasses import dataclass

from mailnotes.config import KeywordRule, TopicConfig, settings

UNREGISTERED_LABEL = "🗂️"


@dataclass(frozen=True)
class Topic:
    name: str
    label: str

    @property
    def heading(self) -> str:
        return f"{self.label} {self.name}"


class TopicTable:
    """Closed, ordered set of topics; position in the table is priority."""

    def __init__(self, topics: list[TopicConfig] | None = None):
        configured = settings.topics if topics is None else topics
        self.topics = [Topic(name=t.name, label=t.label) for t in configured]
        self._by_name = {t.name.lower(): t for t in self.topics}
        self._rank = {t.name.lower(): i for i, t in enumerate(self.topics)}

    def get(self, name: str) -> Topic:
        known = self._by_name.get(name.lower())
        if known is not None:
            return known
        return Topic(name=name, label=UNREGISTERED_LABEL)

    def is_known(self, name: str) -> bool:
        return name.lower() in self._by_name

    def priority(self, name: str) -> int:
        # Unregistered names sort after every configured topic
        return self._rank.get(name.lower(), len(self.topics))


class TopicClassifier:
    def __init__(
        self,
        table: TopicTable | None = None,
        sender_topics: dict[str, str] | None = None,
        keyword_rules: list[KeywordRule] | None = None,
        default_topic: str | None = None,
    ):
        self.table = table or TopicTable()
        overrides = settings.sender_topics if sender_topics is None else sender_topics
        self.sender_topics = {name.strip().lower(): topic for name, topic in overrides.items()}
        rules = settings.topic_keywords if keyword_rules is None else keyword_rules
        self.rules = [
            (rule.topic, self._compile(rule.keywords)) for rule in rules if rule.keywords
        ]
        self.default_topic = default_topic or settings.default_topic

    @staticmethod
    def _compile(keywords: list[str]) -> re.Pattern:
        alternatives = "|".join(re.escape(k) for k in keywords)
        return re.compile(rf"\b(?:{alternatives})\b", re.IGNORECASE)

    def classify(self, name: str, subject: str) -> Topic:
        override = self.sender_topics.get((name or "").strip().lower())
        if override:
            return self.table.get(override)

        for topic, pattern in self.rules:
            if pattern.search(subject or ""):
                return self.table.get(topic)

        return self.table.get(self.default_topic)
