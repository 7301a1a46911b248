import logging
from typing import Optional
from confluent_kafka import Producer, KafkaException
from common.schemas import CoinEvent
from common.settings import settings

logger = logging.getLogger(__name__)

TOPIC_COIN_EVENTS = "coin_events"

FLUSH_TIMEOUT_SECONDS = 5.0

_producer: Optional[Producer] = None

def get_producer() -> Producer:
    global _producer
    if _producer is None:
        _producer = Producer({"bootstrap.servers": settings.kafka_bootstrap, "enable.idempotence": True})
    return _producer

def publish_event(event: CoinEvent) -> None:
    """Send a coin event after the ledger has committed.

    Failures are logged only; the database is the source of truth.
    """
    if not settings.kafka_enabled:
        logger.debug(f"Kafka disabled, dropping {event.type} for fid {event.fid}")
        return
    try:
        producer = get_producer()
        producer.produce(TOPIC_COIN_EVENTS, key=str(event.fid), value=event.model_dump_json().encode("utf-8"))
        remaining = producer.flush(FLUSH_TIMEOUT_SECONDS)
        if remaining:
            logger.warning(f"📤 {remaining} coin event(s) still queued after flush")
        else:
            logger.info(f"📤 Published {event.type} for fid {event.fid}")
    except (KafkaException, BufferError) as e:
        logger.error(f"❌ Failed to publish {event.type} for fid {event.fid}: {e}")
