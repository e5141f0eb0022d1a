"""
Realtime publisher: fans leaderboard inserts out over NATS so other
processes can refresh their boards. Without NATS_URL (or the nats client)
every function is a safe no-op.
"""
from __future__ import annotations

import asyncio
import json
import os
from datetime import datetime, timezone
from typing import Any

from .config import config
from .logging_utils import get_logger

logger = get_logger("jbbly.realtime")

_nc = None  # type: ignore

try:
    import nats
except ImportError:  # pragma: no cover - optional dep
    nats = None  # type: ignore


def enabled() -> bool:
    return bool(nats and config.NATS_URL)


async def _connect_once() -> None:
    global _nc
    if _nc or not enabled():
        return
    try:
        _nc = await nats.connect(config.NATS_URL, name="jbbly-python")
    except Exception as e:
        logger.warning("nats_connect_failed", extra={"error": str(e)})
        _nc = None


async def publish_leaderboard_insert(date: str, payload: dict[str, Any]) -> None:
    """Publish an insert on subject leaderboard.<date>.insert"""
    await _connect_once()
    if not _nc:
        return
    env = {
        "v": 1,
        "type": "insert",
        "date": date,
        "id": os.urandom(8).hex(),
        "ts": datetime.now(timezone.utc).isoformat(),
        "payload": payload,
    }
    try:
        await _nc.publish(f"leaderboard.{date}.insert", json.dumps(env).encode("utf-8"))
    except Exception as e:
        logger.warning("nats_publish_failed", extra={"date": date, "error": str(e)})


def publish_leaderboard_insert_sync(date: str, payload: dict[str, Any]) -> None:
    """Run the publisher from sync code, on the running loop when there is one."""
    if not enabled():
        return
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        asyncio.run(publish_leaderboard_insert(date, payload))
        return
    loop.create_task(publish_leaderboard_insert(date, payload))
