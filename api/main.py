"""Health and metrics HTTP surface for the monitor worker.

Runs beside the gRPC server when HEALTH_PORT is set.
"""

import logging
import threading
from typing import Any, Dict, Optional

import uvicorn
from fastapi import FastAPI, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

log = logging.getLogger(__name__)


def create_app(pool: Optional[Any] = None) -> FastAPI:
    app = FastAPI(title="monitor-worker")

    @app.get("/")
    def root() -> Dict[str, str]:
        return {"status": "ok"}

    @app.get("/health")
    def health() -> Dict[str, Any]:
        body: Dict[str, Any] = {"status": "ok"}
        if pool is not None:
            body["pool"] = pool.stats()
        return body

    @app.get("/metrics")
    def metrics() -> Response:
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    return app


def serve_in_thread(app: FastAPI, port: int, host: str = "0.0.0.0") -> threading.Thread:
    """Start uvicorn for `app` on a daemon thread and return the thread."""
    config = uvicorn.Config(app, host=host, port=port, log_level="warning", access_log=False)
    server = uvicorn.Server(config)
    thread = threading.Thread(target=server.run, name="health-server", daemon=True)
    thread.start()
    log.info("Health server listening on %s:%s", host, port)
    return thread
