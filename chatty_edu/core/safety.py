"""Keyword filter applied to student questions before an answer is shown.

Matching is per word: short terms must match a whole word, longer ones the
start of a word ("kill" catches "killing" but not "skills"). Words written
without any vowels are also compared against the vowel-stripped terms.
"""

from __future__ import annotations
from typing import Iterable, List

from .settings import SafetyConfig

BANNED_SWEARS = (
    "fuck", "shit", "cunt", "bitch", "bastard", "crap", "piss", "dick", "cock", "tits",
    "asshole", "ass", "bollock",
)
MASKED_SWEARS = ("fk", "fck", "fuk", "sht", "btch", "biatch")
BANNED_MATURE = ("sex", "porn", "drugs", "suicide", "kill", "terrorist")

VOWELS = "aeiou"

_LEET = {
    "0": "o",
    "1": "i", "!": "i", "|": "i",
    "3": "e",
    "4": "a",
    "5": "s",
    "7": "t",
    "8": "b",
    "9": "g",
}


def normalize(text: str) -> str:
    """Lowercase, undo leetspeak and drop masking characters like ``*`` or ``-``."""
    out = []
    for c in text.lower():
        if c in _LEET:
            out.append(_LEET[c])
        elif c.isascii() and c.isalpha():
            out.append(c)
    return "".join(out)


def drop_vowels(text: str) -> str:
    return "".join(c for c in text if c not in VOWELS)


def words(text: str) -> List[str]:
    return [w for w in (normalize(t) for t in text.split()) if w]


def _matches(term: str, word: str) -> bool:
    if len(term) <= 3:
        return word == term
    return word.startswith(term)


def _any_match(terms: Iterable[str], tokens: List[str]) -> bool:
    return any(_matches(term, w) for term in terms for w in tokens)


def is_blocked(config: SafetyConfig, user_input: str) -> bool:
    tokens = words(user_input)

    if config.block_swears:
        if _any_match(BANNED_SWEARS, tokens) or _any_match(MASKED_SWEARS, tokens):
            return True
        vowelless = [w for w in tokens if not any(c in VOWELS for c in w)]
        stripped = [drop_vowels(s) for s in BANNED_SWEARS if len(drop_vowels(s)) >= 3]
        if _any_match(stripped, vowelless):
            return True

    if config.block_mature_topics and _any_match(BANNED_MATURE, tokens):
        return True
    return False


def safety_filter(config: SafetyConfig, answer: str, user_input: str) -> str:
    if not config.enabled:
        return answer
    if is_blocked(config, user_input):
        return config.fallback_message
    return answer
