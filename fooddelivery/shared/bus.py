"""
Kafka Event Bus

Publisher and consumer wrappers used by every service.

RELAY PATTERN:
┌─────────────────────────────────────────────────────────────────────────┐
│  EventConsumer loop                                                     │
├─────────────────────────────────────────────────────────────────────────┤
│  1. Subscribe to the registered topics → join the service's group      │
│  2. Poll for a message (blocking with timeout)                          │
│  3. Decode JSON bytes → dict                                            │
│  4. Validate into the topic's event model (pydantic)                    │
│  5. Run the handler (DB write, socket push, follow-up publish)          │
│  6. Commit the offset, whether or not the handler succeeded            │
└─────────────────────────────────────────────────────────────────────────┘

FAILURE HANDLING:
- Bad JSON, validation errors and handler exceptions are logged with the
  order id as correlation_id, counted, and the offset is committed anyway.
- No dead-letter queue, no retry policy at this layer.
- Redelivered events are handled again; event_id is not tracked.
- Fatal broker errors (all brokers down, auth) stop the loop.

PUBLISHING:
- Key = order id, so one order's events share a partition.
- Idempotent producer (acks=all), snappy compression, 10ms linger.
- Delivery reports are logged from the producer's poll().
"""

import json
import logging
import threading
import time
from typing import Any, Callable, Dict, List, Optional

from confluent_kafka import Consumer, KafkaError, KafkaException, Message, Producer
from pydantic import ValidationError

from fooddelivery.shared.config import ServiceConfig
from fooddelivery.shared.events import TOPIC_EVENTS, BaseEvent
from fooddelivery.shared.logger import CorrelationAdapter

Handler = Callable[[BaseEvent], None]

# ==============================================================================
# PUBLISHER
# ==============================================================================


class EventPublisher:
    """
    Publishes lifecycle events to Kafka.

    Attributes:
        producer: confluent_kafka.Producer (or an injected stand-in)
        delivery_callback: Called from poll()/flush() with (err, msg)
        messages_published: Count of successful produce() calls
    """

    def __init__(
        self,
        config: ServiceConfig,
        producer: Optional[Producer] = None,
        delivery_callback: Optional[Callable] = None,
    ):
        """
        Args:
            config: Service configuration (Kafka producer settings)
            producer: Pre-built producer; created from config when omitted
            delivery_callback: Custom delivery report callback

        Raises:
            KafkaException: If producer initialization fails
        """
        self.config = config
        self.logger = logging.getLogger(__name__)
        self.delivery_callback = delivery_callback or self._default_delivery_callback
        self.messages_published = 0

        if producer is not None:
            self.producer = producer
        else:
            producer_config = config.get_producer_config()
            try:
                self.producer = Producer(producer_config)
            except KafkaException:
                self.logger.error("Failed to initialize Kafka producer", exc_info=True)
                raise
            self.logger.info(
                "Kafka producer initialized",
                extra={
                    "bootstrap_servers": producer_config["bootstrap.servers"],
                    "client_id": producer_config["client.id"],
                    "compression": producer_config["compression.type"],
                },
            )

    def publish(self, topic: str, event: BaseEvent) -> None:
        """
        Publish one event.

        Args:
            topic: Destination topic
            event: Event model; serialized to JSON, keyed by order id

        Raises:
            KafkaException: Broker/producer failure (callers map this to 503)
        """
        key = event.partition_key()
        payload = event.to_bytes()
        kwargs = {
            "key": key.encode("utf-8") if key is not None else None,
            "value": payload,
            "on_delivery": self.delivery_callback,
        }

        try:
            self.producer.produce(topic, **kwargs)
        except BufferError:
            # Local queue full: serve delivery reports to drain it, retry once
            self.logger.warning(
                "Producer queue full, draining before retry",
                extra={"correlation_id": key, "topic": topic},
            )
            self.producer.poll(1.0)
            self.producer.produce(topic, **kwargs)

        self.producer.poll(0)
        self.messages_published += 1

        self.logger.debug(
            "Event queued",
            extra={
                "correlation_id": key,
                "topic": topic,
                "event_type": event.event_type,
                "event_id": event.event_id,
            },
        )

    def _default_delivery_callback(self, err: Optional[KafkaError], msg) -> None:
        """
        Log delivery reports.

        Runs inside poll()/flush(), so it must stay fast.
        """
        key = msg.key().decode("utf-8") if msg is not None and msg.key() else None
        if err is not None:
            self.logger.error(
                "Event delivery failed",
                extra={
                    "correlation_id": key,
                    "error": err.str(),
                    "error_code": err.code(),
                    "topic": msg.topic() if msg is not None else None,
                },
            )
        else:
            self.logger.info(
                "Event delivered",
                extra={
                    "correlation_id": key,
                    "topic": msg.topic(),
                    "partition": msg.partition(),
                    "offset": msg.offset(),
                },
            )

    def flush(self, timeout: float = 10.0) -> int:
        """
        Wait for outstanding deliveries.

        Returns:
            Number of messages still in the queue (0 = all delivered)
        """
        remaining = self.producer.flush(timeout)
        if remaining > 0:
            self.logger.warning(
                "Flush timed out with undelivered events",
                extra={"remaining": remaining, "timeout": timeout},
            )
        return remaining

    def close(self) -> None:
        """Flush pending events before shutdown."""
        self.logger.info(
            "Closing Kafka producer",
            extra={"messages_published": self.messages_published},
        )
        self.flush()


# ==============================================================================
# CONSUMER
# ==============================================================================

FATAL_ERROR_CODES = (
    KafkaError._ALL_BROKERS_DOWN,
    KafkaError._AUTHENTICATION,
    KafkaError.TOPIC_AUTHORIZATION_FAILED,
    KafkaError.GROUP_AUTHORIZATION_FAILED,
)


class EventConsumer:
    """
    Subscribes to topics and dispatches each event to its handler.

    Attributes:
        handlers: topic -> handler callable
        running: Loop flag; cleared by stop()
        messages_processed: Handler completed
        messages_failed: Decode, validation or handler failure
    """

    def __init__(
        self,
        config: ServiceConfig,
        consumer: Optional[Consumer] = None,
        name: Optional[str] = None,
    ):
        """
        Args:
            config: Service configuration (group id, offsets, poll timeout)
            consumer: Pre-built consumer; created from config on start() when omitted
            name: Label used in logs and as thread name
        """
        self.config = config
        self.name = name or config.consumer_group_id
        self.logger = logging.getLogger(__name__)
        self.handlers: Dict[str, Handler] = {}
        self.consumer = consumer
        self.running = False
        self.messages_processed = 0
        self.messages_failed = 0
        self._thread: Optional[threading.Thread] = None
        self._stop_requested = threading.Event()

    def register(self, topic: str, handler: Handler) -> None:
        """Bind ``handler`` to ``topic``. The event model comes from TOPIC_EVENTS."""
        if topic not in TOPIC_EVENTS:
            raise ValueError(f"Unknown topic: {topic}")
        self.handlers[topic] = handler

    @property
    def topics(self) -> List[str]:
        return list(self.handlers)

    def _create_consumer(self) -> Consumer:
        kafka_config = self.config.get_consumer_config()
        self.logger.debug("Creating Kafka consumer", extra={"config": kafka_config})
        return Consumer(kafka_config)

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    def start(self) -> None:
        """
        Run the consumer loop until stop() is called (blocking).
        """
        if not self.handlers:
            raise RuntimeError("No handlers registered")

        if self.consumer is None:
            self.consumer = self._create_consumer()
        self.consumer.subscribe(self.topics)
        # A stop() that arrived before the loop started still wins
        self.running = not self._stop_requested.is_set()

        self.logger.info(
            "Consumer started",
            extra={
                "consumer": self.name,
                "topics": self.topics,
                "group_id": self.config.consumer_group_id,
            },
        )

        try:
            while self.running:
                msg = self.consumer.poll(timeout=self.config.consumer_poll_timeout)

                if msg is None:
                    continue

                if msg.error():
                    self._handle_kafka_error(msg.error())
                    continue

                self.dispatch(msg)
        except Exception:
            self.logger.error("Fatal error in consumer loop", exc_info=True)
            raise
        finally:
            self._shutdown()

    def dispatch(self, msg: Message) -> None:
        """
        Process one message: decode, validate, handle, commit.

        Never raises for bad data or handler failures.
        """
        topic = msg.topic()
        start_time = time.time()
        order_id: Any = None

        try:
            data = json.loads(msg.value().decode("utf-8"))
            order_id = data.get("order_id") if isinstance(data, dict) else None
            log = CorrelationAdapter(self.logger, {"correlation_id": order_id})

            handler = self.handlers.get(topic)
            if handler is None:
                raise ValueError(f"No handler registered for topic {topic}")

            event = TOPIC_EVENTS[topic].model_validate(data)
            handler(event)

            self.messages_processed += 1
            log.info(
                "Event handled",
                extra={
                    "consumer": self.name,
                    "topic": topic,
                    "event_id": event.event_id,
                    "partition": msg.partition(),
                    "offset": msg.offset(),
                    "processing_time_ms": round((time.time() - start_time) * 1000, 2),
                },
            )

        except (json.JSONDecodeError, UnicodeDecodeError):
            self.messages_failed += 1
            self.logger.error(
                "Failed to decode event",
                exc_info=True,
                extra={"consumer": self.name, "topic": topic, "offset": msg.offset()},
            )

        except (ValidationError, ValueError) as e:
            self.messages_failed += 1
            self.logger.error(
                "Event validation failed",
                extra={
                    "correlation_id": order_id,
                    "consumer": self.name,
                    "topic": topic,
                    "error": str(e),
                },
            )

        except Exception:
            self.messages_failed += 1
            self.logger.error(
                "Handler failed, skipping event",
                exc_info=True,
                extra={"correlation_id": order_id, "consumer": self.name, "topic": topic},
            )

        self._commit(msg, order_id)

    def _commit(self, msg: Message, order_id: Any) -> None:
        if self.config.enable_auto_commit:
            return
        try:
            self.consumer.commit(message=msg, asynchronous=False)
        except KafkaException:
            self.logger.error(
                "Failed to commit offset",
                exc_info=True,
                extra={"correlation_id": order_id, "consumer": self.name},
            )

    def _handle_kafka_error(self, error: KafkaError) -> None:
        if error.code() == KafkaError._PARTITION_EOF:
            self.logger.debug("Reached end of partition", extra={"consumer": self.name})
            return

        self.logger.error(
            f"Kafka error: {error.str()}",
            extra={
                "consumer": self.name,
                "error_code": error.code(),
                "error_name": error.name(),
            },
        )

        if error.code() in FATAL_ERROR_CODES:
            self.logger.critical("Fatal Kafka error, stopping consumer", extra={"consumer": self.name})
            self.stop()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def run_in_background(self) -> threading.Thread:
        """Start the loop on a daemon thread."""
        self._thread = threading.Thread(target=self.start, name=self.name, daemon=True)
        self._thread.start()
        return self._thread

    def stop(self) -> None:
        """Signal the loop to exit after the current message."""
        self.logger.info("Stopping consumer...", extra={"consumer": self.name})
        self.running = False
        self._stop_requested.set()

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout)

    def _shutdown(self) -> None:
        self.logger.info(
            "Consumer shutting down",
            extra={
                "consumer": self.name,
                "messages_processed": self.messages_processed,
                "messages_failed": self.messages_failed,
            },
        )
        try:
            self.consumer.close()
        except Exception:
            self.logger.error("Error closing Kafka consumer", exc_info=True)
