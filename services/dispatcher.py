"""
Delivery dispatcher: pushes resolved notifications to the socket rooms they
target and falls back to the offline store for users with no live session.
"""

from typing import Optional
from constants import ServerEvents, user_room, role_room
from models.event import TaskLifecycleEvent
from models.notification import NotificationModel
from realtime.manager import ConnectionManager, manager
from services.offline import OfflineNotificationStore, offline_store
from services.resolver import Delivery, Target, USER, ROLE, resolve_recipients
from logging_config import get_logger
from config import config

logger = get_logger("dispatcher")


class DeliveryDispatcher:
    def __init__(
        self,
        connections: ConnectionManager,
        offline: Optional[OfflineNotificationStore] = None,
        store_offline: bool = config.OFFLINE_FALLBACK,
    ):
        self.connections = connections
        self.offline = offline
        self.store_offline = store_offline

    async def handle_event(self, event: TaskLifecycleEvent) -> int:
        """
        Deliver every notification the event resolves to, then broadcast the
        raw `task:update` signal so clients can refresh live views.
        Returns the number of sessions that received a targeted notification.
        """
        if not event.is_known_type:
            logger.info(f"Unknown event type: {event.event_type}", extra={"data": {"task_id": event.task.id}})
            return 0

        logger.info(
            f"Processing task event: {event.event_type} for task {event.task.id}",
            extra={"data": {"actor": event.user_id}}
        )

        delivered = 0
        for delivery in resolve_recipients(event):
            delivered += await self.deliver(delivery)

        await self.connections.broadcast(ServerEvents.TASK_UPDATE, {
            "eventType": event.event_type,
            "task": event.task.model_dump(mode="json", by_alias=True),
            "userId": event.user_id,
            "timestamp": event.timestamp,
        })
        return delivered

    async def deliver(self, delivery: Delivery) -> int:
        sent = await self.connections.emit_to_room(
            delivery.target.room, ServerEvents.NOTIFICATION, delivery.notification.to_payload()
        )
        if sent == 0 and delivery.target.kind == USER and self.store_offline:
            await self.store_for_later(delivery.target.id, delivery.notification)
        return sent

    async def store_for_later(self, user_id: str, notification: NotificationModel) -> Optional[NotificationModel]:
        """Explicit persistence path; never raises."""
        if self.offline is None:
            return None
        return await self.offline.append(user_id, notification)

    # --- Administrative injection ---

    async def send_to_user(self, user_id: str, notification: NotificationModel) -> int:
        return await self.deliver(Delivery(Target(USER, user_id), notification))

    async def send_to_role(self, role: str, notification: NotificationModel) -> int:
        return await self.deliver(Delivery(Target(ROLE, role), notification))

    async def broadcast(self, notification: NotificationModel) -> int:
        return await self.connections.broadcast(ServerEvents.NOTIFICATION, notification.to_payload())

    async def send_direct_message(self, recipient_id: str, message: dict) -> int:
        return await self.connections.emit_to_room(user_room(recipient_id), ServerEvents.MESSAGE_RECEIVED, message)

    def role_size(self, role: str) -> int:
        return self.connections.room_size(role_room(role))


dispatcher = DeliveryDispatcher(manager, offline_store)
