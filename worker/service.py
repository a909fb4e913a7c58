"""gRPC entry point for the monitor worker.

PerformTask parses the JSON task payload, hands it to the bounded TaskPool and
answers right away: success=true means "accepted for processing", not
"completed". Only a malformed payload or a failed submission is reported as
success=false; everything that happens later is visible in logs, metrics and
the talkbacks the pipeline sends.
"""

import logging
import signal
import sys
import threading
from concurrent import futures
from typing import Any, Optional

import grpc
from pydantic import ValidationError

from api.main import create_app, serve_in_thread
from clients.bluesky import AuthenticationError, BlueskyClient
from clients.gemini import GeminiClient
from clients.wiphala import WiphalaClient
from protos import WORKER_SERVICE, WorkerRequest, WorkerResponse

from .config import Settings
from .metrics import tasks_received_total
from .models import Task
from .pool import PoolSaturated, TaskPool
from .worker import Pipeline

log = logging.getLogger(__name__)


class WorkerService:
    """Implements worker.WorkerService."""

    def __init__(self, pipeline: Pipeline, pool: TaskPool) -> None:
        self.pipeline = pipeline
        self.pool = pool

    def perform_task(self, request: Any, context: Any = None) -> Any:
        try:
            task = Task.parse(request.payload)
        except ValidationError as exc:
            log.error("Rejected task payload: %s", exc)
            tasks_received_total.labels(result="rejected").inc()
            return WorkerResponse(success=False)
        except Exception:
            log.exception("Could not read task payload")
            tasks_received_total.labels(result="rejected").inc()
            return WorkerResponse(success=False)

        try:
            self.pool.submit(self.pipeline.process_task, task)
        except PoolSaturated as exc:
            log.warning("Refused %s for %s: %s", task.name, task.slug, exc)
            tasks_received_total.labels(result="saturated").inc()
            return WorkerResponse(success=False)
        except Exception:
            log.exception("Could not schedule %s for %s", task.name, task.slug)
            tasks_received_total.labels(result="error").inc()
            return WorkerResponse(success=False)

        log.info("Accepted %s for %s", task.name, task.slug)
        tasks_received_total.labels(result="accepted").inc()
        return WorkerResponse(success=True)

    def rpc_handler(self) -> grpc.GenericRpcHandler:
        return grpc.method_handlers_generic_handler(
            WORKER_SERVICE,
            {
                "PerformTask": grpc.unary_unary_rpc_method_handler(
                    self.perform_task,
                    request_deserializer=WorkerRequest.FromString,
                    response_serializer=WorkerResponse.SerializeToString,
                ),
            },
        )


def build_pipeline(settings: Settings) -> Pipeline:
    """Construct the service clients once per process. Raises AuthenticationError."""
    return Pipeline(
        bluesky=BlueskyClient(refresh_on_expiry=settings.bluesky_refresh_on_expiry),
        gemini=GeminiClient(),
        wiphala=WiphalaClient(timeout=settings.talkback_timeout),
    )


def create_server(service: WorkerService, settings: Settings) -> grpc.Server:
    server = grpc.server(futures.ThreadPoolExecutor(max_workers=settings.rpc_threads))
    server.add_generic_rpc_handlers((service.rpc_handler(),))
    server.add_insecure_port(settings.address)
    return server


def main(settings: Optional[Settings] = None) -> int:
    settings = settings or Settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        pipeline = build_pipeline(settings)
    except AuthenticationError as exc:
        log.error("Cannot start worker: %s", exc)
        return 1

    pool = TaskPool(max_workers=settings.pool_size, max_pending=settings.max_pending)
    server = create_server(WorkerService(pipeline, pool), settings)

    if settings.health_port:
        serve_in_thread(create_app(pool), settings.health_port)

    stop = threading.Event()
    for sig in (signal.SIGINT, signal.SIGTERM):
        signal.signal(sig, lambda *_: stop.set())

    server.start()
    log.info(
        "Worker listening on %s (pool=%d, max_pending=%d)",
        settings.address,
        settings.pool_size,
        settings.max_pending,
    )
    stop.wait()

    log.info("Shutting down")
    server.stop(grace=5).wait()
    pool.shutdown(wait=True)
    return 0


if __name__ == "__main__":
    sys.exit(main())
