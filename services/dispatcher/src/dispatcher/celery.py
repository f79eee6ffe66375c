"""Celery application setup and worker initialization."""

import logging

from celery import Celery, signals

from notify_shared.config import CeleryConfig, PostgresConfig
from notify_shared.db.base import create_db_engine, create_session_factory

from dispatcher.config import DispatchConfig, HandlerConfig
from dispatcher.handlers import create_default_registry, create_http_client
from dispatcher.log import setup_logging
from dispatcher.orchestrator import DispatchOrchestrator
from dispatcher.service import NotificationService

logger = logging.getLogger(__name__)

celery_config = CeleryConfig()

app = Celery("dispatcher", broker=celery_config.broker_url)

app.conf.update(
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_default_queue="retries",
)

app.autodiscover_tasks(["dispatcher"])


@signals.worker_init.connect
def _init_worker(**_kwargs: object) -> None:
    """Initialize shared resources once per worker process."""
    dispatch_config = DispatchConfig()
    setup_logging(dispatch_config.log_level)

    pg_config = PostgresConfig()
    engine = create_db_engine(pg_config.dsn)
    session_factory = create_session_factory(engine)

    http_client = create_http_client()
    registry = create_default_registry(HandlerConfig(), http_client)
    orchestrator = DispatchOrchestrator(session_factory, registry, dispatch_config)

    app.conf.update(
        _http_client=http_client,
        _notification_service=NotificationService(session_factory, orchestrator),
    )
    logger.info(
        "Worker initialized",
        extra={"handlers": [str(k) for k in registry.available_kinds()]},
    )


@signals.worker_shutdown.connect
def _shutdown_worker(**_kwargs: object) -> None:
    """Clean up resources on worker shutdown."""
    http_client = getattr(app.conf, "_http_client", None)
    if http_client is not None:
        http_client.close()
    logger.info("Worker shut down")
