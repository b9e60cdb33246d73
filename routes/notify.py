from fastapi import APIRouter, Depends, HTTPException
from constants import Roles
from models.notification import NotifyRequest
from models.user import UserModel
from routes.deps import require_role
from realtime.manager import manager
from services.dispatcher import dispatcher
from logging_config import get_logger

router = APIRouter(prefix="/notify", tags=["Notifications"])
logger = get_logger("notify")


@router.post("/user/{user_id}")
async def notify_user(
    user_id: str,
    payload: NotifyRequest,
    current_user: UserModel = Depends(require_role(Roles.ADMIN)),
):
    """Send a notification to one user (stored for later if they are offline)."""
    sessions = await dispatcher.send_to_user(user_id, payload.to_notification())
    logger.info(f"Notification sent to user", extra={"data": {"user_id": user_id, "sessions": sessions}})
    return {"success": True, "message": "Notification sent", "recipients": 1}


@router.post("/role/{role}")
async def notify_role(
    role: str,
    payload: NotifyRequest,
    current_user: UserModel = Depends(require_role(Roles.ADMIN)),
):
    """Send a notification to every connected user holding a role."""
    if role not in Roles.ALL:
        raise HTTPException(status_code=400, detail="Invalid role")

    sessions = await dispatcher.send_to_role(role, payload.to_notification())
    logger.info(f"Notification sent to role", extra={"data": {"role": role, "sessions": sessions}})
    return {"success": True, "message": "Notification sent to role", "role": role, "recipients": sessions}


@router.post("/broadcast")
async def notify_broadcast(
    payload: NotifyRequest,
    current_user: UserModel = Depends(require_role(Roles.ADMIN)),
):
    """Broadcast a notification to all connected users."""
    await dispatcher.broadcast(payload.to_notification())
    recipients = manager.connection_count
    logger.info(f"Notification broadcast", extra={"data": {"recipients": recipients}})
    return {"success": True, "message": "Notification broadcast", "recipients": recipients}
