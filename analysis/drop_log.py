from __future__ import annotations

import json
import sqlite3
from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

REASONS = (
    "filtered",
    "row_cap",
    "empty_endpoint",
    "bad_value",
    "self_loop",
    "cycle",
)


@dataclass(frozen=True)
class DropEntry:
    """A single row or edge that the pipeline discarded."""

    stage: str
    reason: str
    source: Optional[str] = None
    target: Optional[str] = None
    value: Any = None
    row_index: Optional[int] = None


class DropCounter:
    """Count dropped rows/edges per reason without keeping them."""

    def __init__(self) -> None:
        self.counts: Counter[str] = Counter()

    def log(
        self,
        stage: str,
        reason: str,
        source: Optional[str] = None,
        target: Optional[str] = None,
        value: Any = None,
        row_index: Optional[int] = None,
    ) -> None:
        self.counts[reason] += 1

    def summary(self) -> Dict[str, int]:
        return {reason: self.counts[reason] for reason in REASONS if self.counts[reason]}

    def close(self) -> None:
        return None


class DropRecorder(DropCounter):
    """Keep dropped rows/edges in memory so callers can inspect what was discarded."""

    def __init__(self) -> None:
        super().__init__()
        self.entries: List[DropEntry] = []

    def log(
        self,
        stage: str,
        reason: str,
        source: Optional[str] = None,
        target: Optional[str] = None,
        value: Any = None,
        row_index: Optional[int] = None,
    ) -> None:
        self.entries.append(DropEntry(stage, reason, source, target, value, row_index))
        super().log(stage, reason, source, target, value, row_index)


class SqliteDropLogger(DropCounter):
    """Persist drop events to SQLite with lightweight batching.

    Only per-reason counts stay in memory, so `summary()` works after the run
    without querying the database.
    """

    def __init__(self, db_path: str | Path, batch_size: int = 1000) -> None:
        super().__init__()
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._pending = 0
        self._batch_size = batch_size
        self.conn = sqlite3.connect(self.db_path)
        self.conn.execute("PRAGMA journal_mode=WAL")
        self.conn.execute("PRAGMA synchronous=NORMAL")
        self.conn.execute(
            """
            CREATE TABLE IF NOT EXISTS drops (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                real_ts TEXT NOT NULL,
                stage TEXT NOT NULL,
                reason TEXT NOT NULL,
                source TEXT,
                target TEXT,
                value TEXT,
                row_index INTEGER
            )
            """
        )
        self.conn.commit()

    def log(
        self,
        stage: str,
        reason: str,
        source: Optional[str] = None,
        target: Optional[str] = None,
        value: Any = None,
        row_index: Optional[int] = None,
    ) -> None:
        """Insert a drop row, committing in batches."""
        super().log(stage, reason, source, target, value, row_index)
        self.conn.execute(
            """
            INSERT INTO drops (real_ts, stage, reason, source, target, value, row_index)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                datetime.now(timezone.utc).isoformat(),
                stage,
                reason,
                source,
                target,
                json.dumps(value, ensure_ascii=False, default=str),
                row_index,
            ),
        )
        self._pending += 1
        if self._pending >= self._batch_size:
            self.conn.commit()
            self._pending = 0

    def close(self) -> None:
        """Flush pending inserts and close the connection."""
        if self._pending:
            self.conn.commit()
            self._pending = 0
        self.conn.close()


class NoOpDropLogger:
    """Drop-in replacement when drop instrumentation is disabled."""

    def log(
        self,
        stage: str,
        reason: str,
        source: Optional[str] = None,
        target: Optional[str] = None,
        value: Any = None,
        row_index: Optional[int] = None,
    ) -> None:
        return None

    def summary(self) -> Dict[str, int]:
        return {}

    def close(self) -> None:
        return None
