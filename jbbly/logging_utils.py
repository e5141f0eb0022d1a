import json
import logging
import sys
import typing as _t
from contextvars import ContextVar
from typing import Any, Dict, Optional

from .config import config

# Request id for the HTTP layer; game session id for anything a session triggers
request_id_ctx: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
session_id_ctx: ContextVar[Optional[str]] = ContextVar("session_id", default=None)

# extra= fields copied onto the structured record when present
EXTRA_FIELDS = (
    "session_id",
    "event",
    "player",
    "seconds",
    "date",
    "kind",
    "index",
    "count",
    "path",
    "method",
    "status",
    "duration_ms",
    "client",
    "ws_count",
    "errors",
    "error",
)


class JsonFormatter(logging.Formatter):
    """One JSON object per line, for log aggregation."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "level": record.levelname,
            "time": self.formatTime(record, datefmt="%Y-%m-%dT%H:%M:%S%z"),
            "logger": record.name,
            "message": record.getMessage(),
        }
        rid = request_id_ctx.get()
        if rid:
            payload["request_id"] = rid
        sid = session_id_ctx.get()
        if sid:
            payload["session_id"] = sid
        for key in EXTRA_FIELDS:
            val = getattr(record, key, None)
            if val is not None:
                payload[key] = val
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


class ColorFormatter(logging.Formatter):
    """Readable single-line output for terminals."""

    RESET = "\033[0m"
    BOLD = "\033[1m"
    GREY = "\033[90m"
    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }

    def __init__(self, use_color: bool = True):
        super().__init__()
        self.use_color = use_color

    def _color(self, text: str, color: str) -> str:
        if not self.use_color or not color:
            return text
        return f"{color}{text}{self.RESET}"

    def _request_line(self, record: logging.LogRecord) -> Optional[str]:
        method = getattr(record, "method", None)
        path = getattr(record, "path", None)
        status = getattr(record, "status", None)
        duration_ms = getattr(record, "duration_ms", None)
        parts: _t.List[str] = []
        if method:
            parts.append(self._color(method, self.BOLD))
        if path:
            parts.append(self._color(path, "\033[36m"))
        if isinstance(status, int):
            parts.append(self._color(str(status), "\033[32m" if status < 400 else "\033[31m"))
        if duration_ms is not None:
            parts.append(self._color(f"{duration_ms}ms", self.GREY))
        return " ".join(parts) if parts else None

    def _fields(self, record: logging.LogRecord) -> Optional[str]:
        skip = {"method", "path", "status", "duration_ms"}
        items = []
        for key in EXTRA_FIELDS:
            if key in skip:
                continue
            val = getattr(record, key, None)
            if val is not None:
                items.append(f"{key}={val}")
        return "[" + " ".join(items) + "]" if items else None

    def format(self, record: logging.LogRecord) -> str:
        level = record.levelname
        parts: _t.List[str] = [
            self._color(level, self.COLORS.get(level, "")),
            self.formatTime(record, datefmt="%H:%M:%S"),
        ]
        rid = request_id_ctx.get()
        if rid:
            parts.append(self._color(f"rid={rid}", "\033[35m"))
        parts.append(self._color(record.name, "\033[34m"))

        req_line = self._request_line(record)
        if req_line:
            parts.append(req_line)

        msg = record.getMessage()
        if msg:
            parts.extend(["-", msg])

        fields = self._fields(record)
        if fields:
            parts.append(self._color(fields, self.GREY))

        if record.exc_info:
            parts.append("\n" + self.formatException(record.exc_info))
        return " ".join(parts)


def _isatty(stream) -> bool:
    try:
        return hasattr(stream, "isatty") and stream.isatty()
    except Exception:
        return False


def setup_logging(level: int = logging.INFO) -> logging.Logger:
    """Configure the root and uvicorn loggers.

    LOG_FORMAT=pretty or LOG_FORMAT=json force a format; otherwise pretty is
    used on a TTY and JSON everywhere else. LOG_COLOR=0 turns colors off.
    """
    root = logging.getLogger()
    root.setLevel(level)
    for h in root.handlers[:]:
        root.removeHandler(h)

    fmt_env = config.LOG_FORMAT
    use_pretty = fmt_env == "pretty" or (fmt_env == "" and _isatty(sys.stdout))
    use_color = use_pretty and config.LOG_COLOR not in ("0", "false", "no")

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(ColorFormatter(use_color=use_color) if use_pretty else JsonFormatter())
    root.addHandler(handler)

    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        lg = logging.getLogger(name)
        lg.handlers = [handler]
        lg.setLevel(level)
        lg.propagate = False

    return root


def get_logger(name: str = "jbbly") -> logging.Logger:
    return logging.getLogger(name)
