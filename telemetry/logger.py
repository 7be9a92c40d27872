# telemetry/logger.py
from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from settings import TELEMETRY_DB_PATH

DB_PATH = TELEMETRY_DB_PATH

logger = logging.getLogger(__name__)


def _conn() -> sqlite3.Connection:
    c = sqlite3.connect(DB_PATH)
    c.execute(
        """
        CREATE TABLE IF NOT EXISTS events (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            ts TEXT NOT NULL,
            view_id TEXT,
            event TEXT NOT NULL,
            payload TEXT NOT NULL
        )
        """
    )
    c.commit()
    return c


def log_event(event: str, payload: Dict[str, Any], view_id: Optional[str] = None) -> None:
    """
    Telemetry must NEVER break the search path.
    Payload carries ids, counts and flags only, never raw search text.
    """
    try:
        ts = datetime.now(timezone.utc).isoformat()
        with _conn() as c:
            c.execute(
                "INSERT INTO events (ts, view_id, event, payload) VALUES (?, ?, ?, ?)",
                (ts, view_id, event, json.dumps(payload, ensure_ascii=False)),
            )
            c.commit()
    except Exception as e:
        logger.debug("telemetry write failed for %s: %s", event, e)


def recent_events(limit: int = 50) -> List[Dict[str, Any]]:
    with _conn() as c:
        rows = c.execute(
            "SELECT ts, view_id, event, payload FROM events ORDER BY id DESC LIMIT ?",
            (int(limit),),
        ).fetchall()
    return [
        {"ts": ts, "view_id": view_id, "event": event, "payload": json.loads(payload)}
        for ts, view_id, event, payload in rows
    ]
