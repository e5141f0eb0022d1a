"""
Tracked schema migrations for the leaderboard database.
Each migration runs once; applied names are recorded in the migration table.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlmodel import Field, Session, SQLModel, select, text

from .crud import make_engine
from .logging_utils import get_logger, setup_logging

logger = get_logger("jbbly.migrations")


class Migration(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True, unique=True)
    applied_at: datetime


MIGRATIONS = (
    (
        "001_leaderboard_indexes",
        """
        CREATE INDEX IF NOT EXISTS idx_entry_date_seconds ON leaderboardentry(date, seconds);
        CREATE INDEX IF NOT EXISTS idx_entry_created_at ON leaderboardentry(created_at)
        """,
    ),
)


def has_migration_been_applied(engine, name: str) -> bool:
    Migration.metadata.create_all(engine, tables=[Migration.__table__])
    with Session(engine) as session:
        return session.exec(select(Migration).where(Migration.name == name)).first() is not None


def apply_migration(engine, name: str, sql: str) -> bool:
    """Apply one migration; False if it had already been applied."""
    if has_migration_been_applied(engine, name):
        logger.info("migration_skipped", extra={"event": name})
        return False

    with Session(engine) as session:
        try:
            for statement in sql.strip().split(';'):
                statement = statement.strip()
                if statement:
                    session.execute(text(statement))
            session.add(Migration(name=name, applied_at=datetime.now(timezone.utc)))
            session.commit()
        except Exception as e:
            session.rollback()
            logger.error("migration_failed", extra={"event": name, "error": str(e)})
            raise
    logger.info("migration_applied", extra={"event": name})
    return True


def run_migrations(engine=None) -> None:
    engine = engine or make_engine()
    for name, sql in MIGRATIONS:
        apply_migration(engine, name, sql)
    logger.info("migrations_complete")


if __name__ == "__main__":
    setup_logging()
    run_migrations()
