from datetime import datetime
from typing import Optional

from sqlmodel import Field, SQLModel


class LeaderboardEntry(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    seconds: float
    date: str = Field(default="", index=True)  # YYYY-MM-DD (UTC)
    created_at: Optional[datetime] = None

    def to_public(self) -> dict:
        return {"name": self.name, "time": self.seconds}
