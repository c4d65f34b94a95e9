from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Union

from kipk_chat.core.knowledge import KnowledgeBase, Topic, TopicEntry

DEFAULT_THRESHOLD = 2


@dataclass(frozen=True)
class Matched:
    text: str
    score: int
    topic: Topic
    label: str


@dataclass(frozen=True)
class NoMatch:
    best_score: int = 0


MatchResult = Union[Matched, NoMatch]


def keywords(query: str) -> list[str]:
    return (query or "").lower().split()


def relevance(text: str, terms: Iterable[str]) -> int:
    haystack = (text or "").lower()
    return sum(1 for term in terms if term and term in haystack)


class Matcher:
    """Keyword scorer over the sections of every topic the query triggers."""

    def __init__(self, knowledge: KnowledgeBase, threshold: int = DEFAULT_THRESHOLD) -> None:
        self.knowledge = knowledge
        self.threshold = max(1, threshold)

    def candidate_topics(self, query: str) -> list[TopicEntry]:
        lowered = (query or "").lower()
        return [entry for entry in self.knowledge.entries if any(trigger in lowered for trigger in entry.triggers)]

    def resolve(self, query: str) -> MatchResult:
        lowered = (query or "").lower()
        terms = keywords(lowered)
        if not terms:
            return NoMatch()

        best: Matched | None = None
        for entry in self.candidate_topics(lowered):
            for section in entry.sections:
                score = relevance(lowered, [section.label]) + relevance(section.content, terms)
                # strict comparison keeps the earliest section on ties
                if score > (best.score if best else 0):
                    best = Matched(text=section.content, score=score, topic=entry.topic, label=section.label)

        if best is None:
            return NoMatch()
        if best.score < self.threshold:
            return NoMatch(best_score=best.score)
        return best
