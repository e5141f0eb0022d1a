"""
Leaderboard stores.

Anything with insert/query/subscribe works as a store. Two ship here: a
process-local list seeded with a couple of default scores, and the SQL
table behind the HTTP service.
"""

from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Protocol

from sqlmodel import Session

from . import crud
from .config import config
from .logging_utils import get_logger
from .models import LeaderboardEntry
from .realtime_publisher import publish_leaderboard_insert_sync
from .scoring import rank_entries

logger = get_logger("jbbly.store")

Listener = Callable[[LeaderboardEntry], None]
Unsubscribe = Callable[[], None]

DEFAULT_ENTRIES = (("Alice", 42.1), ("Bob", 55.4))


class LeaderboardStore(Protocol):
    def insert(self, entry: LeaderboardEntry) -> LeaderboardEntry:
        ...

    def query(self, date: str, limit: int = 10) -> List[LeaderboardEntry]:
        ...

    def subscribe(self, listener: Listener) -> Unsubscribe:
        ...


class _Listeners:
    def __init__(self):
        self._listeners: List[Listener] = []

    def subscribe(self, listener: Listener) -> Unsubscribe:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass

        return unsubscribe

    def _notify(self, entry: LeaderboardEntry) -> None:
        # a copy, so listeners may unsubscribe while being notified
        for listener in list(self._listeners):
            try:
                listener(entry)
            except Exception as e:
                logger.warning("leaderboard_listener_failed", extra={"date": entry.date, "error": str(e)})


class InMemoryLeaderboardStore(_Listeners):
    """Top-N per date kept in memory; re-sorted and truncated after every insert."""

    def __init__(self, defaults=DEFAULT_ENTRIES, limit: Optional[int] = None):
        super().__init__()
        self.limit = config.LEADERBOARD_LIMIT if limit is None else limit
        self._defaults = tuple(defaults)
        self._boards: Dict[str, List[LeaderboardEntry]] = {}

    def _board(self, date: str) -> List[LeaderboardEntry]:
        if date not in self._boards:
            seeded = [LeaderboardEntry(name=n, seconds=s, date=date) for n, s in self._defaults]
            self._boards[date] = rank_entries(seeded, self.limit)
        return self._boards[date]

    def insert(self, entry: LeaderboardEntry) -> LeaderboardEntry:
        stored = LeaderboardEntry(
            name=entry.name,
            seconds=entry.seconds,
            date=entry.date,
            created_at=entry.created_at or datetime.now(timezone.utc),
        )
        board = self._board(stored.date)
        self._boards[stored.date] = rank_entries(board + [stored], self.limit)
        self._notify(stored)
        return stored

    def query(self, date: str, limit: int = 10) -> List[LeaderboardEntry]:
        return list(self._board(date)[:limit])


class SqlLeaderboardStore(_Listeners):
    """Backed by the LeaderboardEntry table; the query does the ranking."""

    def __init__(self, engine=None):
        super().__init__()
        self._engine = engine

    @property
    def engine(self):
        return self._engine or crud.get_engine()

    def insert(self, entry: LeaderboardEntry) -> LeaderboardEntry:
        with Session(self.engine) as s:
            stored = crud.record_entry(s, entry.name, entry.date, entry.seconds)
            s.expunge(stored)
        self._notify(stored)
        publish_leaderboard_insert_sync(stored.date, stored.to_public())
        return stored

    def query(self, date: str, limit: int = 10) -> List[LeaderboardEntry]:
        from .cache import cache_leaderboard, get_cached_leaderboard

        cached = get_cached_leaderboard(date, limit)
        if cached is not None:
            return list(cached)
        with Session(self.engine) as s:
            leaders = crud.get_leaderboard(s, date, limit)
            for e in leaders:
                s.expunge(e)
        cache_leaderboard(date, limit, leaders)
        return list(leaders)

    def placement(self, date: str, seconds: float) -> int:
        with Session(self.engine) as s:
            return crud.get_placement(s, date, seconds)
