from typing import Callable, List, Optional, Tuple

from .config import config
from .game import today_str
from .logging_utils import get_logger
from .models import LeaderboardEntry
from .notify import CELEBRATE, WARNING, Notice, NoticeSink
from .scoring import rank_entries
from .store import LeaderboardStore

logger = get_logger("jbbly.leaderboard")


class LeaderboardView:
    """Top-N board for one date, kept fresh from store insert notifications.

    Subscribes on construction and must be closed to unsubscribe. Missed
    notifications only delay a refresh; the board is always re-read whole.
    """

    def __init__(
        self,
        store: LeaderboardStore,
        date: Optional[str] = None,
        limit: Optional[int] = None,
        sink: Optional[NoticeSink] = None,
        on_change: Optional[Callable[[List[LeaderboardEntry]], None]] = None,
    ):
        self.store = store
        self.date = date or today_str()
        self.limit = config.LEADERBOARD_LIMIT if limit is None else limit
        self.sink = sink
        self.on_change = on_change
        self.entries: List[LeaderboardEntry] = []
        self.closed = False
        self._expected: Optional[Tuple[str, float]] = None
        self._unsubscribe = store.subscribe(self._on_insert)

    def _on_insert(self, entry: LeaderboardEntry) -> None:
        if self.closed or entry.date != self.date:
            return
        self.refresh()

    def fetch_top(self, n: Optional[int] = None) -> List[LeaderboardEntry]:
        """Best ``n`` entries, fastest first. Falls back to the last good board on failure."""
        n = self.limit if n is None else n
        try:
            entries = self.store.query(self.date, n)
        except Exception as e:
            logger.warning("leaderboard_fetch_failed", extra={"date": self.date, "error": str(e)})
            if self.sink is not None:
                self.sink.send(Notice(WARNING, "Couldn't load the leaderboard"))
            return list(self.entries[:n])
        return rank_entries(entries or [], n)

    def refresh(self) -> List[LeaderboardEntry]:
        if self.closed:
            return list(self.entries)
        self.entries = self.fetch_top()
        self._maybe_celebrate()
        if self.on_change is not None:
            try:
                self.on_change(list(self.entries))
            except Exception as e:
                logger.warning("leaderboard_on_change_failed", extra={"date": self.date, "error": str(e)})
        return list(self.entries)

    def expect(self, name: str, seconds: float) -> None:
        """Watch for a freshly submitted score; celebrate once if it shows up on the board."""
        self._expected = (name, seconds)

    def forget(self) -> None:
        self._expected = None

    def _maybe_celebrate(self) -> None:
        if self._expected is None:
            return
        name, seconds = self._expected
        for place, e in enumerate(self.entries, start=1):
            if e.name == name and e.seconds == seconds:
                self._expected = None
                logger.info("top_n_entry", extra={"player": name, "seconds": seconds, "index": place})
                if self.sink is not None:
                    self.sink.send(Notice(CELEBRATE, f"🏆 You made the top {self.limit}! (#{place})"))
                return

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._unsubscribe()
