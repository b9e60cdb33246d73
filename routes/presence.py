from fastapi import APIRouter, Depends
from models.user import UserModel
from routes.deps import get_current_user
from services.presence import presence_store

router = APIRouter(prefix="/users", tags=["Presence"])


@router.get("/online")
async def get_online_users(current_user: UserModel = Depends(get_current_user)):
    """Users with a live presence record (empty if the presence store is unavailable)."""
    sessions = await presence_store.list_online()
    return {
        "count": len(sessions),
        "users": [session.to_payload() for session in sessions],
    }
