"""
Recipient resolution for task lifecycle events.

Pure policy: given an event, decide which user and role rooms get a
notification and with what text. The actor never hears about their own
action; role rooms are addressed as a whole.
"""

from dataclasses import dataclass
from typing import Callable, Dict, List, Optional
from constants import EventTypes, Roles, NOTIFICATION_TYPE_TASK_UPDATE, user_room, role_room
from models.event import TaskLifecycleEvent, UserRef
from models.notification import NotificationModel
from logging_config import get_logger

logger = get_logger("resolver")

USER = "user"
ROLE = "role"


@dataclass(frozen=True)
class Target:
    kind: str  # USER or ROLE
    id: str

    @property
    def room(self) -> str:
        return user_room(self.id) if self.kind == USER else role_room(self.id)


@dataclass(frozen=True)
class Delivery:
    target: Target
    notification: NotificationModel


class _Recipients:
    """Ordered, de-duplicated user recipients for one event, actor excluded."""

    def __init__(self, actor_id: Optional[str]):
        self.actor_id = actor_id
        self._by_user: Dict[str, NotificationModel] = {}

    def add(self, ref: Optional[UserRef], notification: NotificationModel, replace: bool = False):
        if ref is None or not ref.user_id or ref.user_id == self.actor_id:
            return
        if replace or ref.user_id not in self._by_user:
            self._by_user[ref.user_id] = notification

    def deliveries(self) -> List[Delivery]:
        return [Delivery(Target(USER, user_id), n) for user_id, n in self._by_user.items()]


def _notification(event: TaskLifecycleEvent, title: str, message: str, **extra_data) -> NotificationModel:
    data = {
        "taskId": event.task.id,
        "eventType": event.event_type,
        "task": event.task.model_dump(mode="json", by_alias=True),
    }
    data.update(extra_data)
    return NotificationModel(type=NOTIFICATION_TYPE_TASK_UPDATE, title=title, message=message, data=data)


def _on_created(event: TaskLifecycleEvent) -> List[Delivery]:
    task = event.task
    generic = _notification(event, "New Task Created", f"Task '{task.title}' has been created")

    recipients = _Recipients(event.user_id)
    recipients.add(
        task.assigned_to,
        generic.model_copy(update={"message": f"You have been assigned a new task: '{task.title}'"}),
    )
    deliveries = recipients.deliveries()
    deliveries.append(Delivery(Target(ROLE, Roles.PROJECT_MANAGER), generic))
    deliveries.append(Delivery(Target(ROLE, Roles.ADMIN), generic))
    return deliveries


def _on_updated(event: TaskLifecycleEvent) -> List[Delivery]:
    task = event.task
    notification = _notification(event, "Task Updated", f"Task '{task.title}' has been updated")
    recipients = _Recipients(event.user_id)
    for watcher in task.watchers:
        recipients.add(watcher, notification)
    recipients.add(task.assigned_to, notification)
    return recipients.deliveries()


def _on_status_changed(event: TaskLifecycleEvent) -> List[Delivery]:
    task = event.task
    notification = _notification(
        event, "Task Status Changed", f"Task '{task.title}' status changed to {task.status}"
    )
    recipients = _Recipients(event.user_id)
    for watcher in task.watchers:
        recipients.add(watcher, notification)
    recipients.add(task.created_by, notification)
    recipients.add(task.assigned_to, notification)
    return recipients.deliveries()


def _on_comment_added(event: TaskLifecycleEvent) -> List[Delivery]:
    task = event.task
    comment = task.new_comment.model_dump(mode="json", by_alias=True) if task.new_comment else None
    notification = _notification(
        event, "New Comment Added", f"New comment on task '{task.title}'", comment=comment
    )
    recipients = _Recipients(event.user_id)
    for watcher in task.watchers:
        recipients.add(watcher, notification)

    if task.new_comment:
        mentioned = notification.model_copy(update={
            "title": "You were mentioned",
            "message": f"You were mentioned in a comment on task '{task.title}'",
        })
        # A mention supersedes the generic watcher notification for that user
        for mention in task.new_comment.mentions:
            recipients.add(mention, mentioned, replace=True)
    return recipients.deliveries()


def _on_deleted(event: TaskLifecycleEvent) -> List[Delivery]:
    task = event.task
    notification = _notification(event, "Task Deleted", f"Task '{task.title}' has been deleted")
    recipients = _Recipients(event.user_id)
    for watcher in task.watchers:
        recipients.add(watcher, notification)
    recipients.add(task.assigned_to, notification)
    return recipients.deliveries()


POLICIES: Dict[str, Callable[[TaskLifecycleEvent], List[Delivery]]] = {
    EventTypes.CREATED: _on_created,
    EventTypes.UPDATED: _on_updated,
    EventTypes.STATUS_CHANGED: _on_status_changed,
    EventTypes.COMMENT_ADDED: _on_comment_added,
    EventTypes.DELETED: _on_deleted,
}


def resolve_recipients(event: TaskLifecycleEvent) -> List[Delivery]:
    """Map an event to the (target, notification) pairs it should produce."""
    policy = POLICIES.get(event.event_type)
    if policy is None:
        logger.info(f"Unknown event type: {event.event_type}", extra={"data": {"task_id": event.task.id}})
        return []
    return policy(event)
