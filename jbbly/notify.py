"""Notices: short messages for the player, delivered by whatever renders the game."""

import threading
from dataclasses import dataclass
from typing import List, Protocol

from .logging_utils import get_logger

logger = get_logger("jbbly.notify")

INFO = "info"
SUCCESS = "success"
WARNING = "warning"
ERROR = "error"
CELEBRATE = "celebrate"


@dataclass(frozen=True)
class Notice:
    kind: str
    text: str

    def to_dict(self) -> dict:
        return {"kind": self.kind, "text": self.text}


class NoticeSink(Protocol):
    def send(self, notice: Notice) -> None:
        ...


class LoggingSink:
    def send(self, notice: Notice) -> None:
        logger.info("notice", extra={"kind": notice.kind, "event": notice.text})


class CollectingSink:
    """Buffers notices until someone drains them."""

    def __init__(self):
        self.notices: List[Notice] = []
        self._lock = threading.Lock()

    def send(self, notice: Notice) -> None:
        with self._lock:
            self.notices.append(notice)

    def drain(self) -> List[Notice]:
        with self._lock:
            out, self.notices = self.notices, []
        return out
