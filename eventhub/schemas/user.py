"""
Pydantic schemas for identities.
"""

from typing import List
from pydantic import BaseModel, ConfigDict

from ..models.event import UserRole


class Identity(BaseModel):
    """Resolved caller identity."""
    id: int
    name: str = ""
    email: str
    role: UserRole = UserRole.USER

    model_config = ConfigDict(from_attributes=True)

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


class UserEventsResponse(BaseModel):
    """Caller profile with event back-references."""
    id: int
    name: str
    email: str
    role: UserRole
    created_events: List[int]
    attending_events: List[int]
