"""
Doubts feature: Query intent / language classification.

The pipeline only depends on the ``QueryClassifier`` protocol, so the regex
heuristics below can be replaced by a trained classifier without touching
the generator.
"""

import re
from dataclasses import dataclass
from typing import Literal, Protocol

Language = Literal["english", "hindi"]

_GREETING = re.compile(
    r"^(hi|hello|hey|namaste|hola|good morning|good afternoon|good evening|yo"
    r"|who are you|what is your name)\b",
    re.IGNORECASE,
)
_VAGUE_EXPLAIN = re.compile(
    r"^(explain|analyze|samajhao|samjhao|batao|kya hai|what is this|explain this"
    r"|analyze this|tell me about it|samajh nhi aa rha|samajh nahi aa raha)[\s?.!]*$",
    re.IGNORECASE,
)
_HINDI_KEYWORDS = re.compile(
    r"\b(hindi|hinglish|samajha\w*|samjha\w*|batao|kaise|kya|kyun|karo|kaun|kab"
    r"|apka|tumhara|aap|hai|hoon|tha|thi)\b",
    re.IGNORECASE,
)
_CONVERSATIONAL = re.compile(
    r"^(hi|hello|hey|namaste|hola|good morning|yo|who are you|thanks|thank|ok|bye)\b",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class QueryIntent:
    is_greeting: bool
    is_vague: bool
    language: Language


class QueryClassifier(Protocol):
    def classify(self, text: str, preferred_language: Language = "english") -> QueryIntent:
        ...


class RegexQueryClassifier:
    """Keyword heuristics for greetings, vague requests and Hinglish."""

    def classify(self, text: str, preferred_language: Language = "english") -> QueryIntent:
        normalized = (text or "").strip().lower()
        is_hindi = bool(_HINDI_KEYWORDS.search(normalized)) or preferred_language == "hindi"
        return QueryIntent(
            is_greeting=bool(_GREETING.match(normalized)),
            is_vague=bool(_VAGUE_EXPLAIN.match(normalized)),
            language="hindi" if is_hindi else "english",
        )


def is_small_talk(text: str) -> bool:
    """Short thanks/greeting messages that should not trigger a video search."""
    stripped = (text or "").strip()
    return bool(_CONVERSATIONAL.match(stripped)) and len(stripped) < 30
