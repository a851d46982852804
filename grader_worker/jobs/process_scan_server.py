"""HTTP entrypoint that receives pushed scan jobs (Cloud Run friendly)."""

from __future__ import annotations

import logging
import os
import threading
from typing import Any, Callable, Dict, Optional

from flask import Flask, current_app, jsonify, request

from grader_worker.core.config import get_settings
from grader_worker.jobs.intake import (
    InvalidJobError,
    ScanWorkerPool,
    build_orchestrator,
    decode_job,
    job_summary,
)

# ---------- Logging ----------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s - %(message)s",
)
logger = logging.getLogger(__name__)

_POOL_KEY = "scan_worker_pool"
_pool_lock = threading.Lock()


def _default_pool() -> ScanWorkerPool:
    settings = get_settings()
    return ScanWorkerPool(build_orchestrator(settings), concurrency=settings.worker_concurrency)


def create_app(pool_factory: Optional[Callable[[], ScanWorkerPool]] = None) -> Flask:
    """Build the app; the worker pool is created on the first delivery."""
    app = Flask(__name__)
    app.config["SCAN_POOL_FACTORY"] = pool_factory or _default_pool

    # ---------- Routes ----------

    @app.get("/")
    def root() -> Any:
        """Simple root to avoid 404 on GET /"""
        return "ok", 200

    @app.get("/healthz")
    def healthcheck() -> Any:
        """Lightweight health endpoint; reads settings only, never touches the database."""
        settings = get_settings()
        return (
            jsonify(
                {
                    "status": "ok",
                    "worker_concurrency": settings.worker_concurrency,
                    "revision": os.getenv("K_REVISION", "unknown"),
                    "region": os.getenv("X_GOOGLE_RUNTIMEREGION", "unknown"),
                }
            ),
            200,
        )

    @app.post("/jobs/scan")
    def accept_scan_job() -> Any:
        """
        Accept one scan job delivery.
        Required JSON fields: scanId
        Optional: businessInput (object or JSON string), placeId, city, cuisine
        """
        payload: Dict[str, Any] = request.get_json(silent=True) or {}
        try:
            job = decode_job(payload)
        except InvalidJobError as exc:
            return jsonify({"error": str(exc)}), 400

        logger.info("Accepted scan job: %s", job_summary(job))
        _get_pool().submit(job)

        # 202: progress is observed on the scan row, not on this response.
        return jsonify({"data": {"status": "accepted", "scan_id": job.scan_id}}), 202

    return app


def _get_pool() -> ScanWorkerPool:
    extensions = current_app.extensions
    with _pool_lock:
        if _POOL_KEY not in extensions:
            extensions[_POOL_KEY] = current_app.config["SCAN_POOL_FACTORY"]()
    return extensions[_POOL_KEY]


app = create_app()


def main() -> None:
    """Cloud Run injects PORT; fall back to WORKER_PORT for local runs."""
    env_port = os.getenv("PORT")
    port = int(env_port or get_settings().worker_port)
    logger.info("[BOOT] Binding on 0.0.0.0:%d", port)
    app.run(host="0.0.0.0", port=port)


if __name__ == "__main__":
    main()
