"""
Phrase pool for jbbly.

A phrase is a gibberish rendering of a real phrase: read it aloud and the
answer falls out. The pool is static and read once at process start.
"""

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, List, Optional, Tuple

from .config import config
from .logging_utils import get_logger

logger = get_logger("jbbly.phrases")


def normalize(text: Optional[str]) -> str:
    """Trim and lowercase, the canonical form for comparing guesses."""
    return (text or "").strip().lower()


@dataclass(frozen=True)
class Phrase:
    gibberish: str
    answer: str
    hint: Optional[str] = None

    def matches(self, guess: Optional[str]) -> bool:
        return normalize(guess) == normalize(self.answer)

    def hint_text(self) -> str:
        if self.hint:
            return self.hint
        words = self.answer.split()
        first = words[0] if words else self.answer
        return f'Starts with "{first}"'

    def sort_key(self) -> Tuple[str, str, str]:
        return (self.answer, self.gibberish, self.hint or "")

    def to_dict(self) -> dict:
        return {"gibberish": self.gibberish, "answer": self.answer, "hint": self.hint}


DEFAULT_POOL: Tuple[Phrase, ...] = (
    Phrase("Eye Mull of Mush Sheen", "I'm a love machine", "Song lyric"),
    Phrase("Yore Luke Ink Hood", "You're looking good", "Compliment"),
    Phrase("Sew Fur Sigh Tee", "Super society", "Community"),
    Phrase("Lug Hat Dumb Ooh Hen", "Look at the moon", "Night sky"),
    Phrase("Hay Pea Bird Aid Tooth Hue", "Happy birthday to you", "Party song"),
    Phrase("Hoe Tell Cal Eve Horn Ya", "Hotel California", "Classic rock"),
    Phrase("Ann Knee Thin Goes", "Anything goes", "Musical"),
    Phrase("Dune Hot Dis Turb", "Do not disturb", "Door sign"),
    Phrase("Bee Fore Sun Rice", "Before sunrise", "Early morning"),
    Phrase("Spa Get Tee Din Her", "Spaghetti dinner"),
    Phrase("Gnome Ann Is Sigh Land", "No man is an island", "Proverb"),
    Phrase("Cup Hove Tea", "Cup of tea"),
)


def _coerce(record: Any) -> Optional[Phrase]:
    if isinstance(record, Phrase):
        return record
    if not isinstance(record, dict):
        return None
    gibberish = record.get("gibberish")
    answer = record.get("answer")
    if not isinstance(gibberish, str) or not gibberish.strip():
        return None
    if not isinstance(answer, str) or not answer.strip():
        return None
    hint = record.get("hint")
    if not isinstance(hint, str) or not hint.strip():
        hint = None
    return Phrase(gibberish=gibberish.strip(), answer=answer.strip(), hint=hint)


def build_pool(records: Iterable[Any]) -> Tuple[Phrase, ...]:
    """Turn raw records into phrases, dropping the malformed ones."""
    pool: List[Phrase] = []
    dropped = 0
    for rec in records:
        phrase = _coerce(rec)
        if phrase is None:
            dropped += 1
            continue
        pool.append(phrase)
    if dropped:
        logger.warning("phrase_records_dropped", extra={"event": "pool_load", "count": dropped})
    return tuple(pool)


def load_pool(path: Optional[str] = None) -> Tuple[Phrase, ...]:
    """Load the phrase pool.

    Reads a JSON array from ``path`` (or PHRASE_POOL_PATH). With neither set
    the built-in pool is used. A file that can't be read or isn't a list
    yields an empty pool; this never raises.
    """
    path = path or config.PHRASE_POOL_PATH
    if not path:
        return DEFAULT_POOL
    try:
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        logger.error("phrase_pool_unreadable", extra={"path": str(path), "error": str(e)})
        return ()
    if not isinstance(raw, list):
        logger.error("phrase_pool_malformed", extra={"path": str(path), "error": "expected a list"})
        return ()
    pool = build_pool(raw)
    logger.info("phrase_pool_loaded", extra={"path": str(path), "count": len(pool)})
    return pool
