"""
Game session state machine.

A session is an immutable SessionState value. Every player action is a pure
function taking the current state (plus the clock reading where time
matters) and returning a Transition: the next state and a tuple of effects.
Effects are plain values; the runtime decides how to deliver notices,
schedule deferred actions, stop the clock and submit scores. Nothing in this
module touches a timer, a store or a logger.

    NotStarted -> InProgress -> Finished | GaveUp

Rules:
- a guess matches when trimmed and lowercased it equals the answer
- a skip adds a fixed penalty, reveals the answer, and advances only after a
  reveal delay (an ``advance`` action scheduled by the skip)
- a hint sets a session-wide flag worth one flat penalty at finish, however
  often it is used
- giving up ends the session on the spot and records no score
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import FrozenSet, NamedTuple, Optional, Tuple, Union

from .config import config
from .notify import ERROR, INFO, SUCCESS, WARNING, Notice
from .phrases import Phrase
from .scoring import compute_total_seconds, format_seconds


class Outcome(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    FINISHED = "finished"
    GAVE_UP = "gave_up"


TERMINAL = frozenset({Outcome.FINISHED, Outcome.GAVE_UP})

# actions the state machine asks to have delivered later
ADVANCE = "advance"
CLEAR_WRONG_GUESS = "clear_wrong_guess"


@dataclass(frozen=True)
class Schedule:
    delay_ms: int
    action: str


@dataclass(frozen=True)
class StopClock:
    pass


@dataclass(frozen=True)
class SubmitScore:
    name: str
    seconds: float


Effect = Union[Notice, Schedule, StopClock, SubmitScore]


@dataclass(frozen=True)
class Rules:
    skip_penalty_ms: int = 10000
    hint_penalty_ms: int = 5000
    skip_reveal_ms: int = 2000
    wrong_guess_ms: int = 500

    @classmethod
    def from_config(cls) -> "Rules":
        return cls(
            skip_penalty_ms=config.SKIP_PENALTY_MS,
            hint_penalty_ms=config.HINT_PENALTY_MS,
            skip_reveal_ms=config.SKIP_REVEAL_MS,
            wrong_guess_ms=config.WRONG_GUESS_MS,
        )


@dataclass(frozen=True)
class SessionState:
    phrases: Tuple[Phrase, ...] = ()
    name: str = ""
    current_index: int = 0
    guess_text: str = ""
    started_at: Optional[int] = None
    finished_at: Optional[int] = None
    penalty_ms: int = 0
    hint_used: bool = False
    skipped_indexes: FrozenSet[int] = frozenset()
    outcome: Outcome = Outcome.NOT_STARTED
    revealed_answer: Optional[str] = None
    wrong_guess: bool = False
    pending_advance: bool = False
    total_seconds: Optional[float] = None
    rules: Rules = field(default_factory=Rules.from_config)

    @property
    def current_phrase(self) -> Optional[Phrase]:
        if 0 <= self.current_index < len(self.phrases):
            return self.phrases[self.current_index]
        return None

    @property
    def is_terminal(self) -> bool:
        return self.outcome in TERMINAL


class Transition(NamedTuple):
    state: SessionState
    effects: Tuple[Effect, ...] = ()


def new_session(phrases, rules: Optional[Rules] = None) -> SessionState:
    return SessionState(phrases=tuple(phrases), rules=rules or Rules.from_config())


def _playable(state: SessionState) -> Optional[Phrase]:
    """The phrase a per-phrase action may act on, or None if it must be a no-op."""
    if state.outcome != Outcome.IN_PROGRESS or state.pending_advance:
        return None
    return state.current_phrase


def _ensure_started(state: SessionState, now: int) -> SessionState:
    if state.started_at is None:
        return replace(state, started_at=now)
    return state


def _advance_or_finish(state: SessionState, now: int, notice: Optional[Notice]) -> Transition:
    nxt = state.current_index + 1
    if nxt < len(state.phrases):
        moved = replace(
            state,
            current_index=nxt,
            guess_text="",
            revealed_answer=None,
            wrong_guess=False,
            pending_advance=False,
        )
        return Transition(moved, (notice,) if notice else ())

    started = state.started_at if state.started_at is not None else now
    finished = max(now, started)
    total = compute_total_seconds(finished, started, state.penalty_ms, state.hint_used, state.rules.hint_penalty_ms)
    done = replace(
        state,
        current_index=len(state.phrases),
        guess_text="",
        revealed_answer=None,
        wrong_guess=False,
        pending_advance=False,
        started_at=started,
        finished_at=finished,
        outcome=Outcome.FINISHED,
        total_seconds=total,
    )
    return Transition(
        done,
        (
            StopClock(),
            Notice(SUCCESS, f"🎉 You finished in {format_seconds(total)}s!"),
            SubmitScore(name=done.name, seconds=total),
        ),
    )


def start(state: SessionState, name: Optional[str]) -> Transition:
    if state.outcome != Outcome.NOT_STARTED:
        return Transition(state)
    clean = (name or "").strip()
    if not clean:
        return Transition(state, (Notice(WARNING, "Enter your name to start"),))
    return Transition(replace(state, name=clean, outcome=Outcome.IN_PROGRESS))


def tick(state: SessionState, now: int) -> Transition:
    """Clock tick: stamps started_at on the first tick after start, otherwise nothing."""
    if state.outcome != Outcome.IN_PROGRESS:
        return Transition(state)
    return Transition(_ensure_started(state, now))


def set_guess(state: SessionState, text: Optional[str]) -> Transition:
    if state.outcome != Outcome.IN_PROGRESS:
        return Transition(state)
    return Transition(replace(state, guess_text=text or ""))


def submit_guess(state: SessionState, text: Optional[str], now: int) -> Transition:
    phrase = _playable(state)
    if phrase is None:
        return Transition(state)
    state = _ensure_started(state, now)
    if phrase.matches(text):
        return _advance_or_finish(state, now, Notice(SUCCESS, "✅ Correct! Moving to the next phrase..."))
    wrong = replace(state, guess_text=text or "", wrong_guess=True)
    return Transition(wrong, (Schedule(state.rules.wrong_guess_ms, CLEAR_WRONG_GUESS),))


def clear_wrong_guess(state: SessionState) -> Transition:
    if not state.wrong_guess:
        return Transition(state)
    return Transition(replace(state, wrong_guess=False))


def use_hint(state: SessionState) -> Transition:
    phrase = _playable(state)
    if phrase is None:
        return Transition(state)
    return Transition(replace(state, hint_used=True), (Notice(INFO, f"💡 Hint: {phrase.hint_text()}"),))


def skip(state: SessionState, now: int) -> Transition:
    phrase = _playable(state)
    if phrase is None:
        return Transition(state)
    state = _ensure_started(state, now)
    penalty = state.rules.skip_penalty_ms
    skipped = replace(
        state,
        penalty_ms=state.penalty_ms + penalty,
        skipped_indexes=state.skipped_indexes | {state.current_index},
        revealed_answer=phrase.answer,
        guess_text="",
        wrong_guess=False,
        pending_advance=True,
    )
    return Transition(
        skipped,
        (
            Notice(WARNING, f"⏭️ Skipped (+{penalty / 1000:g}s). Answer was: {phrase.answer}"),
            Schedule(state.rules.skip_reveal_ms, ADVANCE),
        ),
    )


def advance(state: SessionState, now: int) -> Transition:
    """Second half of a skip, delivered after the reveal delay."""
    if not state.pending_advance or state.outcome != Outcome.IN_PROGRESS:
        return Transition(state)
    return _advance_or_finish(state, now, None)


def give_up(state: SessionState, now: int) -> Transition:
    if state.outcome != Outcome.IN_PROGRESS:
        return Transition(state)
    phrase = state.current_phrase
    if phrase is None:
        return Transition(state)
    state = _ensure_started(state, now)
    over = replace(
        state,
        revealed_answer=phrase.answer,
        outcome=Outcome.GAVE_UP,
        finished_at=max(now, state.started_at),
        wrong_guess=False,
        pending_advance=False,
    )
    return Transition(over, (StopClock(), Notice(ERROR, f"😢 Gave Up! Answer was: {phrase.answer}")))


def dispatch(state: SessionState, action: str, now: int) -> Transition:
    """Deliver a scheduled action."""
    if action == ADVANCE:
        return advance(state, now)
    if action == CLEAR_WRONG_GUESS:
        return clear_wrong_guess(state)
    return Transition(state)


def elapsed_seconds(state: SessionState, now: int) -> float:
    if state.started_at is None:
        return 0.0
    if state.is_terminal:
        if state.total_seconds is not None:
            return state.total_seconds
        return ((state.finished_at or state.started_at) - state.started_at + state.penalty_ms) / 1000
    return (max(now - state.started_at, 0) + state.penalty_ms) / 1000


def snapshot(state: SessionState, now: int) -> dict:
    """What a renderer needs; never includes an unrevealed answer."""
    progress = []
    for idx in range(len(state.phrases)):
        if idx in state.skipped_indexes:
            progress.append("skipped")
        elif idx < state.current_index:
            progress.append("solved")
        elif idx == state.current_index and not state.is_terminal:
            progress.append("current")
        else:
            progress.append("pending")
    phrase = state.current_phrase
    elapsed = elapsed_seconds(state, now)
    return {
        "name": state.name,
        "outcome": state.outcome.value,
        "current_index": state.current_index,
        "count": len(state.phrases),
        "gibberish": phrase.gibberish if phrase and not state.is_terminal else None,
        "progress": progress,
        "guess_text": state.guess_text,
        "wrong_guess": state.wrong_guess,
        "revealed_answer": state.revealed_answer,
        "hint_used": state.hint_used,
        "penalty_seconds": state.penalty_ms / 1000,
        "skipped": sorted(state.skipped_indexes),
        "elapsed": elapsed,
        "elapsed_display": format_seconds(elapsed),
        "total_seconds": state.total_seconds,
    }
