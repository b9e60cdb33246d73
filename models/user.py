from pydantic import BaseModel, ConfigDict
from typing import Optional


class UserModel(BaseModel):
    """The authenticated user as carried in the auth service's JWT."""
    id: str
    email: Optional[str] = None
    role: str = "team_member"

    model_config = ConfigDict(
        populate_by_name=True,
        extra="ignore"
    )
