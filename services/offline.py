"""
Offline notification store: a bounded per-user queue of notifications kept for
users who were not connected when they were sent.

Each user's queue is a single MongoDB document so that push-and-trim is one
atomic `$push` with `$position`/`$slice`. The whole queue expires
`OFFLINE_NOTIFICATION_TTL_DAYS` after the most recent push.
"""

from datetime import datetime, timedelta
from typing import List, Optional
from pymongo.errors import PyMongoError
from models.notification import NotificationModel, new_notification_id
from database import offline_notifications_collection
from logging_config import get_logger
from config import config

logger = get_logger("offline_notifications")


class OfflineNotificationStore:
    def __init__(
        self,
        collection,
        limit: int = config.OFFLINE_NOTIFICATION_LIMIT,
        ttl_days: int = config.OFFLINE_NOTIFICATION_TTL_DAYS,
    ):
        self._collection = collection
        self.limit = limit
        self.ttl = timedelta(days=ttl_days)

    async def append(self, user_id: str, notification: NotificationModel) -> Optional[NotificationModel]:
        """Push to the front of the user's queue, keep the newest `limit` entries and reset the expiry."""
        stored = notification.model_copy(update={"id": new_notification_id(), "stored": True})
        now = datetime.utcnow()
        try:
            # An expired queue the TTL monitor has not swept yet must not be revived
            await self._collection.delete_one({"user_id": user_id, "expires_at": {"$lte": now}})
            await self._collection.update_one(
                {"user_id": user_id},
                {
                    "$push": {
                        "notifications": {
                            "$each": [stored.to_payload()],
                            "$position": 0,
                            "$slice": self.limit,
                        }
                    },
                    "$set": {"expires_at": now + self.ttl},
                },
                upsert=True,
            )
        except PyMongoError as e:
            logger.error(f"Error storing offline notification: {e}", extra={"data": {"user_id": user_id}})
            return None

        logger.debug("Offline notification stored", extra={"data": {"user_id": user_id, "id": stored.id}})
        return stored

    async def drain(self, user_id: str) -> List[NotificationModel]:
        """Return the queue, newest first, without removing it."""
        try:
            doc = await self._collection.find_one({"user_id": user_id, "expires_at": {"$gt": datetime.utcnow()}})
        except PyMongoError as e:
            logger.error(f"Error getting offline notifications: {e}", extra={"data": {"user_id": user_id}})
            return []
        if not doc:
            return []
        return [NotificationModel(**item) for item in doc.get("notifications", [])]

    async def clear(self, user_id: str) -> bool:
        try:
            await self._collection.delete_one({"user_id": user_id})
        except PyMongoError as e:
            logger.error(f"Error clearing offline notifications: {e}", extra={"data": {"user_id": user_id}})
            return False
        return True


offline_store = OfflineNotificationStore(offline_notifications_collection)
