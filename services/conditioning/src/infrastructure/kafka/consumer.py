import asyncio
from typing import Any, Optional

from aiokafka import AIOKafkaConsumer
from src.core.config import settings
from src.core.logger import get_logger
from src.events.dispatcher import EventDispatcher

from .message_parser import decode_message, parse_message
from .metrics import (
    KAFKA_COMMITS_TOTAL,
    KAFKA_CONSUMER_RUNNING,
    KAFKA_INVALID_RECORDS_TOTAL,
    KAFKA_RECORDS_TOTAL,
)

logger = get_logger("conditioning.consumer")


async def start_consumer_with_retries(consumer: Any, attempts: Optional[int] = None) -> None:
    """Start Kafka consumer with exponential backoff.

    Raises RuntimeError after exhausting retries.
    """
    attempts = attempts or settings.kafka_start_attempts
    delay = 1.0
    for attempt in range(1, attempts + 1):
        try:
            await consumer.start()
            logger.info(
                "kafka_consumer_started",
                extra={
                    "topics": list(settings.change_event_topics),
                    "attempt": attempt,
                },
            )
            return
        except Exception as e:  # noqa
            logger.warning(
                "kafka_consumer_start_failed",
                extra={"attempt": attempt, "error": str(e), "retry_in": delay},
            )
            await asyncio.sleep(delay)
            delay = min(delay * 2, settings.kafka_start_max_backoff_s)
    raise RuntimeError("Kafka consumer could not start after retries")


def build_consumer() -> AIOKafkaConsumer:
    return AIOKafkaConsumer(
        *settings.change_event_topics,
        bootstrap_servers=settings.kafka_bootstrap_servers,
        group_id=settings.change_event_consumer_group,
        client_id=settings.kafka_client_name,
        enable_auto_commit=False,
        auto_offset_reset=settings.change_event_consume_from,
    )


async def consume_loop(dispatcher: EventDispatcher, app_state: Any, consumer: Any = None) -> None:
    """Dispatch change events written by other processes.

    Offsets are committed after each record has been dispatched; malformed
    records are logged, counted and committed past.
    """
    consumer = consumer or build_consumer()
    await start_consumer_with_retries(consumer)
    KAFKA_CONSUMER_RUNNING.set(1)
    first = True
    try:
        async for msg in consumer:
            KAFKA_RECORDS_TOTAL.inc()
            payload = decode_message(msg.value)
            event = parse_message(msg.topic, payload) if payload is not None else None
            if event is None:
                KAFKA_INVALID_RECORDS_TOTAL.inc()
            else:
                await dispatcher.dispatch(event)
            try:
                await consumer.commit()
                KAFKA_COMMITS_TOTAL.inc()
            except Exception as e:  # noqa
                logger.warning("kafka_commit_failed", extra={"error": str(e)})
            if first:
                first = False
                if getattr(app_state, "consumer_ready", None):
                    app_state.consumer_ready.set()
    except asyncio.CancelledError:  # graceful cancellation
        logger.info("consume_loop_cancelled")
        raise
    except Exception as e:  # noqa
        logger.exception("consume_loop_fatal", extra={"error": str(e)})
        raise
    finally:
        KAFKA_CONSUMER_RUNNING.set(0)
        await consumer.stop()
        logger.info("kafka_consumer_stopped")
