from pydantic import BaseModel, Field, ConfigDict
from typing import Optional
from datetime import datetime, timezone
import time
import uuid


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def new_notification_id() -> str:
    """Time-based id with a random suffix, e.g. `1718035200123_3f9a0c2be`."""
    return f"{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


class NotificationModel(BaseModel):
    """Notification pushed over the socket and, when stored, kept in the offline queue."""
    id: Optional[str] = None  # Assigned when persisted for offline delivery
    type: str = "task_update"

    # Content
    title: str
    message: str
    data: dict = Field(default_factory=dict)  # taskId, eventType, task snapshot, comment...

    timestamp: str = Field(default_factory=utc_timestamp)
    stored: Optional[bool] = None

    model_config = ConfigDict(populate_by_name=True)

    def to_payload(self) -> dict:
        return self.model_dump(mode="json", exclude_none=True)


class NotifyRequest(BaseModel):
    """Body of the administrative notify endpoints."""
    type: str = Field(min_length=1)
    title: str = Field(min_length=1)
    message: str = Field(min_length=1)
    data: Optional[dict] = None

    def to_notification(self) -> NotificationModel:
        return NotificationModel(
            type=self.type,
            title=self.title,
            message=self.message,
            data=self.data or {},
        )
