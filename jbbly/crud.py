from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import func
from sqlmodel import Session, create_engine, select

from . import models
from .config import config

engine = None


def make_engine(url: Optional[str] = None):
    url = url or config.DATABASE_URL
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    if url.startswith("sqlite"):
        return create_engine(url, echo=False, connect_args=connect_args)
    # pooled connections for real databases
    return create_engine(
        url,
        echo=False,
        connect_args=connect_args,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
        pool_recycle=1800,
    )


def get_engine():
    global engine
    if engine is None:
        engine = make_engine()
    return engine


def record_entry(session: Session, name: str, date: str, seconds: float) -> models.LeaderboardEntry:
    entry = models.LeaderboardEntry(name=name, date=date, seconds=seconds, created_at=datetime.now(timezone.utc))
    session.add(entry)
    session.commit()
    session.refresh(entry)

    from .cache import invalidate_leaderboard_cache
    invalidate_leaderboard_cache(date)
    return entry


def get_leaderboard(session: Session, date: str, limit: Optional[int] = 10) -> List[models.LeaderboardEntry]:
    """Entries for the date, best (lowest) time first; ties go to the earlier submission.
    If limit is None, return all rows.
    """
    stmt = (
        select(models.LeaderboardEntry)
        .where(models.LeaderboardEntry.date == date)
        .order_by(models.LeaderboardEntry.seconds, models.LeaderboardEntry.created_at, models.LeaderboardEntry.id)
    )
    if isinstance(limit, int) and limit > 0:
        stmt = stmt.limit(limit)
    return list(session.exec(stmt).all())


def get_placement(session: Session, date: str, seconds: float) -> int:
    """1-indexed rank a time would take on the date's board."""
    better = session.exec(
        select(func.count(models.LeaderboardEntry.id))
        .where(models.LeaderboardEntry.date == date)
        .where(models.LeaderboardEntry.seconds < seconds)
    ).one()
    return int(better or 0) + 1
