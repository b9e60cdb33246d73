"""
Presence store: which users currently hold a socket session.

One record per user (the latest connection overwrites the previous one), with a
TTL that the socket session renews on activity. Records live in MongoDB with a
TTL index on `expires_at`; reads also filter on `expires_at` because the TTL
monitor only sweeps once a minute.

Every operation is best-effort: a MongoDB failure is logged and turned into a
neutral result so presence never blocks notification delivery.
"""

from datetime import datetime, timedelta
from typing import List, Optional
from pymongo.errors import PyMongoError
from models.session import SessionModel
from database import sessions_collection
from logging_config import get_logger
from config import config

logger = get_logger("presence")


class PresenceStore:
    def __init__(self, collection, ttl_seconds: int = config.PRESENCE_TTL_SECONDS):
        self._collection = collection
        self.ttl = timedelta(seconds=ttl_seconds)

    async def put(self, user_id: str, session_id: str, metadata: Optional[dict] = None) -> bool:
        """Upsert the user's session record and restart its TTL."""
        metadata = metadata or {}
        now = datetime.utcnow()
        record = {
            "user_id": user_id,
            "socket_id": session_id,
            "email": metadata.get("email"),
            "role": metadata.get("role"),
            "connected_at": metadata.get("connected_at") or now,
            "last_seen": now,
            "expires_at": now + self.ttl,
        }
        try:
            await self._collection.update_one({"user_id": user_id}, {"$set": record}, upsert=True)
        except PyMongoError as e:
            logger.error(f"Error storing user session: {e}", extra={"data": {"user_id": user_id}})
            return False
        return True

    async def touch(self, user_id: str) -> bool:
        """Extend a live record's TTL. Returns False if there was nothing to extend."""
        now = datetime.utcnow()
        try:
            result = await self._collection.update_one(
                {"user_id": user_id, "expires_at": {"$gt": now}},
                {"$set": {"last_seen": now, "expires_at": now + self.ttl}},
            )
        except PyMongoError as e:
            logger.error(f"Error refreshing user session: {e}", extra={"data": {"user_id": user_id}})
            return False
        return result.matched_count > 0

    async def remove(self, user_id: str, session_id: Optional[str] = None) -> bool:
        """Delete the record; with `session_id`, only if it still belongs to that session."""
        query = {"user_id": user_id}
        if session_id is not None:
            query["socket_id"] = session_id
        try:
            await self._collection.delete_one(query)
        except PyMongoError as e:
            logger.error(f"Error removing user session: {e}", extra={"data": {"user_id": user_id}})
            return False
        return True

    async def get(self, user_id: str) -> Optional[SessionModel]:
        try:
            doc = await self._collection.find_one({"user_id": user_id, "expires_at": {"$gt": datetime.utcnow()}})
        except PyMongoError as e:
            logger.error(f"Error getting user session: {e}", extra={"data": {"user_id": user_id}})
            return None
        return SessionModel(**doc) if doc else None

    async def list_online(self) -> List[SessionModel]:
        try:
            docs = await self._collection.find({"expires_at": {"$gt": datetime.utcnow()}}).to_list(None)
        except PyMongoError as e:
            logger.error(f"Error getting online users: {e}")
            return []
        return [SessionModel(**doc) for doc in docs]

    async def is_online(self, user_id: str) -> bool:
        return await self.get(user_id) is not None


presence_store = PresenceStore(sessions_collection)
