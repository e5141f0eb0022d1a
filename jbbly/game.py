import datetime
import hashlib
import random
from typing import Optional, Sequence, Tuple, Union

from .config import config
from .phrases import Phrase

DateLike = Union[datetime.date, str, None]


def today_utc() -> datetime.date:
    return datetime.datetime.now(datetime.timezone.utc).date()


def today_str() -> str:
    return today_utc().isoformat()


def as_date(value: DateLike) -> datetime.date:
    if value is None or value == "":
        return today_utc()
    if isinstance(value, datetime.datetime):
        return value.astimezone(datetime.timezone.utc).date() if value.tzinfo else value.date()
    if isinstance(value, datetime.date):
        return value
    return datetime.date.fromisoformat(value)


def seed_for_date(value: DateLike = None) -> int:
    d = as_date(value)
    return d.year * 10000 + d.month * 100 + d.day


def select_daily(pool: Sequence[Phrase], date: DateLike = None, count: Optional[int] = None) -> Tuple[Phrase, ...]:
    """Deterministically pick the day's phrases.

    Shuffle-and-take: the pool is put in a canonical order first, so the
    result only depends on the pool's contents and the UTC date, then a
    date-seeded shuffle picks the first ``count`` phrases. No duplicates as
    long as the pool itself has none.
    """
    count = config.DAILY_PHRASE_COUNT if count is None else count
    if not pool or count <= 0:
        return ()
    rng = random.Random(seed_for_date(date))
    deck = sorted(pool, key=lambda p: p.sort_key())
    rng.shuffle(deck)
    return tuple(deck[:count])


def pool_fingerprint(pool: Sequence[Phrase]) -> str:
    h = hashlib.sha256()
    for p in sorted(pool, key=lambda p: p.sort_key()):
        h.update("\x1f".join(p.sort_key()).encode("utf-8"))
        h.update(b"\x1e")
    return h.hexdigest()[:16]


def daily_selection(pool: Sequence[Phrase], date: DateLike = None) -> Tuple[Phrase, ...]:
    """select_daily with the result cached per date and pool."""
    from .cache import cache_daily_selection, get_cached_daily_selection

    key_date = as_date(date).isoformat()
    fp = pool_fingerprint(pool)
    cached = get_cached_daily_selection(key_date, fp)
    if cached is not None:
        return cached
    selection = select_daily(pool, key_date)
    cache_daily_selection(key_date, fp, selection)
    return selection
