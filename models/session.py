from pydantic import BaseModel, Field, ConfigDict
from typing import Optional
from datetime import datetime


class SessionModel(BaseModel):
    """Presence record: one per user, the most recent connection wins."""
    user_id: str = Field(alias="userId")
    socket_id: str = Field(alias="socketId")
    email: Optional[str] = None
    role: Optional[str] = None
    connected_at: Optional[datetime] = Field(default=None, alias="connectedAt")
    last_seen: Optional[datetime] = Field(default=None, alias="lastSeen")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    def to_payload(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)
