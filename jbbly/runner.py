"""
Session runtime: one player's game wired to a clock, timers, a notice sink
and the leaderboard.

The state machine in ``session`` decides; GameRunner carries out the
effects. It owns the ticker and every deferred action it scheduled, and
cancels all of them on the terminal transition or on close(), releasing its
leaderboard view at the same point.
"""

import threading
import uuid
from typing import Callable, List, Optional, Sequence

from . import session
from .config import config
from .game import today_str
from .leaderboard import LeaderboardView
from .logging_utils import get_logger, session_id_ctx
from .models import LeaderboardEntry
from .notify import WARNING, LoggingSink, Notice, NoticeSink
from .phrases import Phrase
from .scheduler import Clock, Handle, MonotonicClock, Scheduler
from .scoring import submit_score
from .session import Schedule, SessionState, StopClock, SubmitScore, Transition
from .store import LeaderboardStore

logger = get_logger("jbbly.runner")

_DEFAULT = object()


class GameRunner:
    def __init__(
        self,
        phrases: Sequence[Phrase],
        store: LeaderboardStore,
        scheduler: Scheduler,
        clock: Optional[Clock] = None,
        sink: Optional[NoticeSink] = None,
        view: Optional[LeaderboardView] = None,
        date: Optional[str] = None,
        tick_interval_ms=_DEFAULT,
        rules: Optional[session.Rules] = None,
        session_id: Optional[str] = None,
    ):
        self.session_id = session_id or uuid.uuid4().hex
        self.state: SessionState = session.new_session(phrases, rules)
        self.store = store
        self.scheduler = scheduler
        self.clock = clock or MonotonicClock()
        self.sink = sink or LoggingSink()
        self.view = view
        self.date = date or today_str()
        # None runs without a ticker; elapsed time is then sampled on demand
        self.tick_interval_ms = config.TICK_INTERVAL_MS if tick_interval_ms is _DEFAULT else tick_interval_ms
        self.submitted: Optional[LeaderboardEntry] = None
        self.closed = False
        self._ticker: Optional[Handle] = None
        self._pending: List[Handle] = []
        self._lock = threading.RLock()

    # player actions

    def start(self, name: Optional[str]) -> SessionState:
        with self._lock:
            if self.closed:
                return self.state
            self._apply(session.start(self.state, name))
            if self.state.outcome == session.Outcome.IN_PROGRESS:
                logger.info("session_started", extra={"session_id": self.session_id, "player": self.state.name, "count": len(self.state.phrases)})
                self.tick()
                if self.tick_interval_ms and self._ticker is None and not self.state.is_terminal:
                    self._ticker = self.scheduler.every(self.tick_interval_ms, self.tick)
            return self.state

    def tick(self) -> SessionState:
        with self._lock:
            self._step(lambda s: session.tick(s, self.clock.now()))
            if self.state.is_terminal:
                self._stop_clock()
            return self.state

    def set_guess(self, text: Optional[str]) -> SessionState:
        return self._step(lambda s: session.set_guess(s, text))

    def submit_guess(self, text: Optional[str]) -> SessionState:
        return self._step(lambda s: session.submit_guess(s, text, self.clock.now()))

    def use_hint(self) -> SessionState:
        return self._step(session.use_hint)

    def skip(self) -> SessionState:
        return self._step(lambda s: session.skip(s, self.clock.now()))

    def give_up(self) -> SessionState:
        return self._step(lambda s: session.give_up(s, self.clock.now()))

    def elapsed(self) -> float:
        return session.elapsed_seconds(self.state, self.clock.now())

    def snapshot(self) -> dict:
        with self._lock:
            view = session.snapshot(self.state, self.clock.now())
        view["session_id"] = self.session_id
        view["date"] = self.date
        return view

    def close(self) -> None:
        """Tear the session down; nothing scheduled before this reaches the state."""
        with self._lock:
            if self.closed:
                return
            self.closed = True
            self._stop_clock()
            for handle in self._pending:
                handle.cancel()
            self._pending.clear()
            self._release_view()
        logger.info("session_closed", extra={"session_id": self.session_id, "event": self.state.outcome.value})

    # effects

    def _step(self, transition_for: Callable[[SessionState], Transition]) -> SessionState:
        # actions may arrive from request threads and timer callbacks at once
        with self._lock:
            if not self.closed:
                self._apply(transition_for(self.state))
            return self.state

    def _apply(self, transition: Transition) -> None:
        token = session_id_ctx.set(self.session_id)
        try:
            self.state = transition.state
            for effect in transition.effects:
                if isinstance(effect, Notice):
                    self.sink.send(effect)
                elif isinstance(effect, Schedule):
                    self._schedule(effect)
                elif isinstance(effect, StopClock):
                    self._stop_clock()
                elif isinstance(effect, SubmitScore):
                    self._submit(effect)
            if self.state.is_terminal:
                self._release_view()
        finally:
            session_id_ctx.reset(token)

    def _schedule(self, effect: Schedule) -> None:
        if self.closed:
            return
        handle: Optional[Handle] = None

        def deliver() -> None:
            with self._lock:
                if handle in self._pending:
                    self._pending.remove(handle)
                self._step(lambda s: session.dispatch(s, effect.action, self.clock.now()))

        handle = self.scheduler.after(effect.delay_ms, deliver)
        self._pending.append(handle)

    def _stop_clock(self) -> None:
        if self._ticker is not None:
            self._ticker.cancel()
            self._ticker = None

    def _submit(self, effect: SubmitScore) -> None:
        if self.view is not None:
            self.view.expect(effect.name, effect.seconds)
        self.submitted = submit_score(self.store, effect.name, effect.seconds, self.date)
        if self.submitted is None:
            self.sink.send(Notice(WARNING, "Couldn't save your time to the leaderboard"))
            if self.view is not None:
                self.view.forget()
            return
        if self.view is not None:
            self.view.refresh()

    def _release_view(self) -> None:
        # the board subscription is only needed until the score has landed
        if self.view is not None:
            self.view.close()
