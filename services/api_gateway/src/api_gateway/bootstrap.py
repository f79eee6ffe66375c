"""Wires the production object graph from environment configuration."""

import atexit

from celery import Celery
from flask import Flask

from notify_shared.config import CeleryConfig, PostgresConfig
from notify_shared.db.base import create_db_engine, create_session_factory

from dispatcher.config import DispatchConfig, HandlerConfig
from dispatcher.handlers import create_default_registry, create_http_client
from dispatcher.orchestrator import DispatchOrchestrator
from dispatcher.service import ChannelService, NotificationService

from api_gateway.app import create_app
from api_gateway.config import GatewayConfig
from api_gateway.health import HealthChecker
from api_gateway.retry import RetryPublisher


def build_app(config: GatewayConfig | None = None) -> Flask:
    config = config or GatewayConfig()

    engine = create_db_engine(PostgresConfig().dsn)
    session_factory = create_session_factory(engine)

    http_client = create_http_client()
    registry = create_default_registry(HandlerConfig(), http_client)
    orchestrator = DispatchOrchestrator(session_factory, registry, DispatchConfig())

    celery_app = Celery("api_gateway", broker=CeleryConfig().broker_url)

    atexit.register(http_client.close)
    atexit.register(engine.dispose)

    return create_app(
        NotificationService(session_factory, orchestrator),
        ChannelService(session_factory, registry),
        HealthChecker(session_factory, registry),
        RetryPublisher(celery_app),
        log_level=config.log_level,
    )
