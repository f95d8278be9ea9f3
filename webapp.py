"""Flask based backend for running flight searches in the background."""
from __future__ import annotations

import logging
import os
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from threading import Event, Lock
from typing import Any, Callable, Dict, Optional
from uuid import uuid4

from flask import Flask, jsonify, request, url_for

from fare_core import SearchResult, SweepAborted, create_config, run_flight_search, validate_config
from fare_core.events import LoggingEventSink, WebhookEventSink
from task_repository import SearchTask, TaskRepository

LOGGER = logging.getLogger(__name__)
logging.basicConfig(level=logging.INFO)

app = Flask(__name__)

SearchRunner = Callable[[Event], SearchResult]


class TaskManager:
    def __init__(self, repository: TaskRepository, max_workers: int = 2) -> None:
        self.executor = ThreadPoolExecutor(max_workers=max_workers)
        self.repository = repository
        self._cancel_events: Dict[str, Event] = {}
        self._lock = Lock()

    def submit(
        self,
        request_data: Dict[str, Any],
        run_fn: SearchRunner,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> SearchTask:
        task_id = uuid4().hex
        task = SearchTask(
            id=task_id,
            status="queued",
            created_at=datetime.utcnow(),
            request=request_data,
            metadata=metadata or {},
        )
        cancel_event = Event()
        with self._lock:
            self._cancel_events[task_id] = cancel_event

        def _runner() -> None:
            self.repository.mark_running(task_id)
            try:
                result = run_fn(cancel_event)
                status = "cancelled" if result.cancelled else "finished"
                self.repository.complete(task_id, result.to_dict(), status=status)
            except SweepAborted as exc:
                LOGGER.warning("Search %s aborted: %s", task_id, exc)
                partial = {
                    "offers": [offer.to_dict() for offer in exc.result.offers],
                    "outcomes": [outcome.to_dict() for outcome in exc.result.outcomes],
                }
                self.repository.fail(task_id, str(exc), partial=partial)
            except Exception as exc:  # pragma: no cover - runtime safeguard
                LOGGER.exception("Search %s failed", task_id)
                self.repository.fail(task_id, str(exc))
            finally:
                with self._lock:
                    self._cancel_events.pop(task_id, None)

        self.repository.create(task)
        self.executor.submit(_runner)
        return task

    def cancel(self, task_id: str) -> bool:
        """Stop the sweep after the query unit currently in progress."""

        with self._lock:
            cancel_event = self._cancel_events.get(task_id)
        if cancel_event is None:
            return False
        cancel_event.set()
        return True

    def get(self, task_id: str) -> Optional[SearchTask]:
        return self.repository.get(task_id)


task_repository = TaskRepository(os.getenv("TASK_DB_PATH", os.path.join(os.getcwd(), "searches.db")))
task_manager = TaskManager(task_repository)
event_webhook_url = os.getenv("FARE_EVENT_WEBHOOK_URL")


def _event_sink():
    if event_webhook_url:
        return WebhookEventSink(event_webhook_url)
    return LoggingEventSink()


@app.route("/")
def index():
    return jsonify(
        {
            "endpoints": {
                "search": url_for("start_search"),
                "status": "/api/status/<task_id>",
                "cancel": "/api/cancel/<task_id>",
            }
        }
    )


@app.route("/api/search", methods=["POST"])
def start_search():
    if request.is_json:
        payload = request.get_json(silent=True) or {}
    else:
        payload = request.form.to_dict()

    if not isinstance(payload, dict):
        return jsonify({"error": "expected a JSON object"}), 400
    query: Any = payload.get("query") or payload
    if not query:
        return jsonify({"error": "query text or search fields required"}), 400
    try:
        config = create_config(query)
        validate_config(config)
    except (TypeError, ValueError) as exc:
        return jsonify({"error": str(exc)}), 400

    def _run(cancel_event: Event) -> SearchResult:
        return run_flight_search(config, cancel_event=cancel_event, sink=_event_sink())

    task = task_manager.submit(config.to_dict(), _run, metadata={"source": "api"})
    status_url = url_for("task_status", task_id=task.id, _external=True)
    return jsonify({"task_id": task.id, "status_url": status_url}), 202


@app.route("/api/status/<task_id>")
def task_status(task_id: str):
    task = task_manager.get(task_id)
    if not task:
        return jsonify({"error": "unknown task"}), 404
    return jsonify(task.to_dict())


@app.route("/api/cancel/<task_id>", methods=["POST"])
def cancel_search(task_id: str):
    task = task_manager.get(task_id)
    if not task:
        return jsonify({"error": "unknown task"}), 404
    if task.done or not task_manager.cancel(task_id):
        return jsonify({"error": f"task is already {task.status}"}), 409
    return jsonify({"task_id": task_id, "status": "cancelling"}), 202


if __name__ == "__main__":
    app.run(debug=True)
