from pydantic import BaseModel, Field, ConfigDict, field_validator
from typing import Optional, List
from constants import EventTypes


class UserRef(BaseModel):
    """Denormalized user reference embedded in a task snapshot."""
    user_id: Optional[str] = Field(default=None, alias="userId")
    email: Optional[str] = None
    name: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True, extra="allow")


class NewComment(BaseModel):
    content: Optional[str] = None
    mentions: List[UserRef] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    @field_validator("mentions", mode="before")
    @classmethod
    def _none_as_empty(cls, value):
        return value or []


class TaskSnapshot(BaseModel):
    """Copy of the task as it was when the event was published. Read-only here."""
    id: Optional[str] = Field(default=None, alias="_id")
    title: str = ""
    status: Optional[str] = None
    assigned_to: Optional[UserRef] = Field(default=None, alias="assignedTo")
    created_by: Optional[UserRef] = Field(default=None, alias="createdBy")
    watchers: List[UserRef] = Field(default_factory=list)
    new_comment: Optional[NewComment] = Field(default=None, alias="newComment")

    # Everything else the task service sends is kept and forwarded untouched
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    @field_validator("watchers", mode="before")
    @classmethod
    def _none_as_empty(cls, value):
        return value or []

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, value):
        return str(value) if value is not None else None


class TaskLifecycleEvent(BaseModel):
    """Message published by the task service on `task.<eventType>`."""
    # Kept as a plain string so unknown types still parse and can be ignored
    event_type: str = Field(alias="eventType")
    task: TaskSnapshot
    user_id: Optional[str] = Field(default=None, alias="userId")  # The actor
    timestamp: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True)

    @property
    def is_known_type(self) -> bool:
        return self.event_type in EventTypes.ALL
