from __future__ import annotations

import datetime as dt
import json
import logging

import pika

from . import config

logger = logging.getLogger(__name__)


def _connect() -> pika.BlockingConnection:
    params = pika.URLParameters(config.RABBITMQ_URL)
    params.heartbeat = 30
    params.blocked_connection_timeout = 30
    return pika.BlockingConnection(params)


def occurred_at() -> str:
    return dt.datetime.now(dt.timezone.utc).isoformat().replace("+00:00", "Z")


def publish_event(routing_key: str, payload: dict) -> bool:
    """Publish to the events exchange; a no-op unless EVENTS_ENABLED is set."""
    if not config.EVENTS_ENABLED:
        logger.debug("events disabled, dropping %s", routing_key)
        return False

    connection = _connect()
    try:
        ch = connection.channel()
        ch.exchange_declare(exchange=config.EVENTS_EXCHANGE, exchange_type="topic", durable=True)
        body = json.dumps(payload, ensure_ascii=False, default=str).encode("utf-8")
        ch.basic_publish(
            exchange=config.EVENTS_EXCHANGE,
            routing_key=routing_key,
            body=body,
            properties=pika.BasicProperties(
                content_type="application/json",
                delivery_mode=2,
            ),
        )
    finally:
        connection.close()
    logger.info("published %s", routing_key)
    return True
