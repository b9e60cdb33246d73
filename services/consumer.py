"""
RabbitMQ consumer for task lifecycle events.

kombu's ConsumerMixin owns the blocking consume loop and reconnection; it runs
in a worker thread. Each message is parsed, handed to the async handler on the
application's event loop, and acknowledged on the worker thread only after the
handler has finished. Any failure rejects the message without requeue: an event
is processed at most once (or dead-lettered, when a DLX is configured).
"""

import asyncio
from enum import Enum
from typing import Awaitable, Callable, Optional
from kombu import Connection, Exchange, Queue
from kombu.mixins import ConsumerMixin
from models.event import TaskLifecycleEvent
from logging_config import get_logger
from config import config

logger = get_logger("consumer")

EventHandler = Callable[[TaskLifecycleEvent], Awaitable[object]]


class ConsumerState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONSUMING = "consuming"
    RECONNECTING = "reconnecting"


class ConsumerStopped(Exception):
    """Raised from the connection retry loop to abandon it on shutdown."""


def build_task_queue(
    exchange_name: str = config.TASK_EVENTS_EXCHANGE,
    queue_name: str = config.TASK_EVENTS_QUEUE,
    routing_key: str = config.TASK_EVENTS_ROUTING_KEY,
    dead_letter_exchange: Optional[str] = config.TASK_EVENTS_DEAD_LETTER_EXCHANGE,
) -> Queue:
    exchange = Exchange(exchange_name, type="topic", durable=True)
    queue_arguments = {"x-dead-letter-exchange": dead_letter_exchange} if dead_letter_exchange else None
    return Queue(
        queue_name,
        exchange=exchange,
        routing_key=routing_key,
        durable=True,
        queue_arguments=queue_arguments,
    )


def parse_event(body) -> TaskLifecycleEvent:
    if isinstance(body, str):
        body = body.encode("utf-8")
    return TaskLifecycleEvent.model_validate_json(body)


class TaskEventConsumer(ConsumerMixin):
    def __init__(
        self,
        connection: Connection,
        handler: EventHandler,
        loop: asyncio.AbstractEventLoop,
        queue: Optional[Queue] = None,
        prefetch_count: int = config.CONSUMER_PREFETCH,
    ):
        self.connection = connection
        self.handler = handler
        self.loop = loop
        self.queue = queue or build_task_queue()
        self.prefetch_count = prefetch_count
        self.state = ConsumerState.DISCONNECTED

    def _set_state(self, state: ConsumerState):
        if state != self.state:
            logger.info(f"Consumer state: {self.state.value} -> {state.value}")
            self.state = state

    # --- kombu hooks ---

    def get_consumers(self, Consumer, channel):
        return [Consumer(queues=[self.queue], on_message=self.on_message, prefetch_count=self.prefetch_count)]

    def on_connection_revived(self):
        logger.info("RabbitMQ connected", extra={"data": {"queue": self.queue.name}})

    def on_consume_ready(self, connection, channel, consumers, **kwargs):
        self._set_state(ConsumerState.CONSUMING)

    def on_connection_error(self, exc, interval):
        if self.should_stop:
            raise ConsumerStopped()
        self._set_state(ConsumerState.RECONNECTING)
        logger.warning(f"RabbitMQ connection error: {exc}; retrying in {interval}s")

    def on_consume_end(self, connection, channel):
        if not self.should_stop:
            self._set_state(ConsumerState.RECONNECTING)

    def run(self, _tokens=1, **kwargs):
        self._set_state(ConsumerState.CONNECTING)
        try:
            super().run(_tokens, **kwargs)
        except ConsumerStopped:
            pass
        finally:
            self._set_state(ConsumerState.DISCONNECTED)
            logger.info("RabbitMQ consumer stopped")

    # --- Message processing ---

    def on_message(self, message):
        self.process(message)

    def process(self, message) -> bool:
        """
        Handle one message to completion, then ack it; reject without requeue on any failure.
        Must be called from a thread other than the event loop's.
        """
        try:
            event = parse_event(message.body)
            future = asyncio.run_coroutine_threadsafe(self.handler(event), self.loop)
            future.result()
        except Exception as e:
            logger.error(f"Error processing task event: {e}", exc_info=True)
            message.reject(requeue=False)
            return False

        message.ack()
        return True


def start_consumer(handler: EventHandler):
    """Start the consumer on a worker thread. Returns (consumer, task)."""
    consumer = TaskEventConsumer(
        Connection(config.RABBITMQ_URL),
        handler=handler,
        loop=asyncio.get_running_loop(),
    )
    task = asyncio.create_task(asyncio.to_thread(consumer.run))
    return consumer, task


async def stop_consumer(consumer: TaskEventConsumer, task: asyncio.Task):
    consumer.should_stop = True
    await task
    consumer.connection.release()
