# Global Constants

class Roles:
    ADMIN = "admin"
    PROJECT_MANAGER = "project_manager"
    TEAM_MEMBER = "team_member"

    ALL = (ADMIN, PROJECT_MANAGER, TEAM_MEMBER)


class EventTypes:
    CREATED = "created"
    UPDATED = "updated"
    STATUS_CHANGED = "status_changed"
    COMMENT_ADDED = "comment_added"
    DELETED = "deleted"

    ALL = (CREATED, UPDATED, STATUS_CHANGED, COMMENT_ADDED, DELETED)


class PresenceStatus:
    ONLINE = "online"
    AWAY = "away"
    BUSY = "busy"

    ALL = (ONLINE, AWAY, BUSY)


class ClientEvents:
    """Events sent by connected clients."""
    GET_OFFLINE_NOTIFICATIONS = "get:offline_notifications"
    CLEAR_OFFLINE_NOTIFICATIONS = "clear:offline_notifications"
    JOIN_ROOM = "join:room"
    LEAVE_ROOM = "leave:room"
    JOIN_TASK = "join:task"
    LEAVE_TASK = "leave:task"
    TASK_TYPING = "task:typing"
    USER_PRESENCE = "user:presence"
    GET_ONLINE_USERS = "get:online_users"
    DIRECT_MESSAGE = "message:direct"
    TASK_ACTIVITY = "task:activity"
    PING = "ping"
    CUSTOM_EVENT = "custom:event"


class ServerEvents:
    """Events pushed to connected clients."""
    NOTIFICATION = "notification"
    OFFLINE_NOTIFICATIONS = "notifications:offline"
    NOTIFICATIONS_CLEARED = "notifications:cleared"
    ROOM_JOINED = "room:joined"
    ROOM_LEFT = "room:left"
    TASK_JOINED = "task:joined"
    TASK_LEFT = "task:left"
    USER_TYPING = "task:user_typing"
    PRESENCE_UPDATE = "user:presence_update"
    ONLINE_USERS = "online_users"
    MESSAGE_RECEIVED = "message:received"
    MESSAGE_SENT = "message:sent"
    TASK_ACTIVITY_UPDATE = "task:activity_update"
    TASK_UPDATE = "task:update"
    USER_ONLINE = "user:online"
    USER_OFFLINE = "user:offline"
    PONG = "pong"
    CUSTOM_EVENT_RECEIVED = "custom:event_received"


NOTIFICATION_TYPE_TASK_UPDATE = "task_update"

TASK_ID_LENGTH = 24 # MongoDB ObjectId hex length
MAX_ROOM_NAME_LENGTH = 100


def user_room(user_id: str) -> str:
    return f"user:{user_id}"


def role_room(role: str) -> str:
    return f"role:{role}"


def task_room(task_id: str) -> str:
    return f"task:{task_id}"
