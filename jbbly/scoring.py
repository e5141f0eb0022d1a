from typing import TYPE_CHECKING, Iterable, List, Optional

from .config import config
from .logging_utils import get_logger
from .models import LeaderboardEntry

if TYPE_CHECKING:
    from .store import LeaderboardStore

logger = get_logger("jbbly.scoring")


def compute_total_seconds(
    finished_at: int,
    started_at: int,
    penalty_ms: int,
    hint_used: bool,
    hint_penalty_ms: Optional[int] = None,
) -> float:
    """Final time in seconds: wall time plus skip penalties plus the flat hint penalty.

    Kept at full precision; only display rounds.
    """
    if hint_penalty_ms is None:
        hint_penalty_ms = config.HINT_PENALTY_MS
    hint_ms = hint_penalty_ms if hint_used else 0
    return (finished_at - started_at + penalty_ms + hint_ms) / 1000


def format_seconds(seconds: Optional[float]) -> str:
    return f"{(seconds or 0.0):.1f}"


def rank_entries(entries: Iterable[LeaderboardEntry], limit: Optional[int] = None) -> List[LeaderboardEntry]:
    """Ascending by time, earlier submissions first on ties, best ``limit`` kept."""
    limit = config.LEADERBOARD_LIMIT if limit is None else limit
    ranked = sorted(entries, key=lambda e: (e.seconds, e.created_at is None, e.created_at or 0))
    return ranked[:limit] if limit > 0 else ranked


def submit_score(store: "LeaderboardStore", name: str, seconds: float, date: str) -> Optional[LeaderboardEntry]:
    """Hand a finished time to the leaderboard store.

    Returns the stored entry, or None when the store failed. A failure here
    never reaches the caller: the player's own result stands either way.
    """
    entry = LeaderboardEntry(name=name, seconds=seconds, date=date)
    try:
        stored = store.insert(entry)
    except Exception as e:
        logger.exception("score_submit_failed", extra={"player": name, "seconds": seconds, "date": date, "error": str(e)})
        return None
    logger.info("score_submitted", extra={"player": name, "seconds": seconds, "date": date})
    return stored
