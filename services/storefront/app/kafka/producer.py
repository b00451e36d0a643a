"""Kafka publisher for order events. Only wired in when KAFKA_BOOTSTRAP is set."""
import json
import logging
from datetime import datetime, timezone
from kafka import KafkaProducer
from app.core.config import settings

logger = logging.getLogger(__name__)

_producer = None

def _serialize(value: dict) -> bytes:
    return json.dumps(value, default=str, separators=(",", ":")).encode("utf-8")

def get_producer() -> KafkaProducer:
    global _producer
    if _producer is None:
        _producer = KafkaProducer(
            bootstrap_servers=[s.strip() for s in settings.KAFKA_BOOTSTRAP.split(",") if s.strip()],
            client_id="storefront",
            acks="all",
            value_serializer=_serialize,
            key_serializer=lambda v: (v.encode("utf-8") if isinstance(v, str) else v),
            linger_ms=5,
            retries=3,
        )
    return _producer

def send(topic: str, key: str, value: dict):
    """Publish one event and wait for the broker ack; raises KafkaError on failure."""
    event = {"source": "storefront", "published_at": datetime.now(timezone.utc).isoformat(), **value}
    metadata = get_producer().send(topic, key=key, value=event).get(timeout=5)
    logger.debug("Published %s to %s[%s]@%s", event.get("type"), metadata.topic, metadata.partition, metadata.offset)

def close():
    global _producer
    if _producer is not None:
        _producer.flush(5)
        _producer.close(5)
        _producer = None
