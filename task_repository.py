"""SQLite-backed persistence for background search tasks."""
from __future__ import annotations

import json
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

STATUSES = ("queued", "running", "finished", "failed", "cancelled")


@dataclass
class SearchTask:
    """A flight search running, or ran, in the background."""

    id: str
    status: str
    created_at: datetime
    request: Dict[str, Any]
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    finished_at: Optional[datetime] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def done(self) -> bool:
        return self.status in {"finished", "failed", "cancelled"}

    def to_dict(self) -> Dict[str, Any]:
        """Serialise the task into a JSON-ready structure."""

        return {
            "id": self.id,
            "status": self.status,
            "created_at": self.created_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "request": self.request,
            "error": self.error,
            "metadata": self.metadata,
            "result": self.result,
        }


class TaskRepository:
    """SQLite backed persistence for :class:`SearchTask` objects."""

    def __init__(self, database: str) -> None:
        self.database = database
        db_path = Path(database)
        if db_path.parent and not db_path.parent.exists():
            db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()

    def _connect(self) -> sqlite3.Connection:
        connection = sqlite3.connect(self.database)
        connection.row_factory = sqlite3.Row
        return connection

    def _ensure_schema(self) -> None:
        with self._connect() as connection:
            connection.execute(
                """
                CREATE TABLE IF NOT EXISTS searches (
                    id TEXT PRIMARY KEY,
                    status TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    finished_at TEXT,
                    request TEXT NOT NULL,
                    result TEXT,
                    error TEXT,
                    metadata TEXT NOT NULL
                )
                """
            )

    def create(self, task: SearchTask) -> None:
        payload = (
            task.id,
            task.status,
            task.created_at.isoformat(),
            json.dumps(task.request),
            json.dumps(task.metadata or {}),
        )
        with self._connect() as connection:
            connection.execute(
                """
                INSERT INTO searches (id, status, created_at, request, metadata)
                VALUES (?, ?, ?, ?, ?)
                """,
                payload,
            )

    def mark_running(self, task_id: str) -> None:
        with self._connect() as connection:
            connection.execute("UPDATE searches SET status = 'running' WHERE id = ?", (task_id,))

    def complete(self, task_id: str, result: Dict[str, Any], status: str = "finished") -> None:
        """Store the result; ``status`` is ``cancelled`` for a partial sweep."""

        if status not in STATUSES:
            raise ValueError(f"Unknown task status: {status}")
        with self._connect() as connection:
            connection.execute(
                "UPDATE searches SET status = ?, result = ?, error = NULL, finished_at = ? WHERE id = ?",
                (status, json.dumps(result), datetime.utcnow().isoformat(), task_id),
            )

    def fail(self, task_id: str, message: str, partial: Optional[Dict[str, Any]] = None) -> None:
        with self._connect() as connection:
            connection.execute(
                "UPDATE searches SET status = 'failed', error = ?, result = ?, finished_at = ? WHERE id = ?",
                (
                    message,
                    json.dumps(partial) if partial is not None else None,
                    datetime.utcnow().isoformat(),
                    task_id,
                ),
            )

    def get(self, task_id: str) -> Optional[SearchTask]:
        with self._connect() as connection:
            cursor = connection.execute("SELECT * FROM searches WHERE id = ?", (task_id,))
            row = cursor.fetchone()
        if not row:
            return None
        return SearchTask(
            id=row["id"],
            status=row["status"],
            created_at=datetime.fromisoformat(row["created_at"]),
            finished_at=datetime.fromisoformat(row["finished_at"]) if row["finished_at"] else None,
            request=json.loads(row["request"]),
            result=json.loads(row["result"]) if row["result"] else None,
            error=row["error"],
            metadata=json.loads(row["metadata"]) if row["metadata"] else {},
        )
