from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel, Field


class Role(str, Enum):
    MEMBER = "member"
    SCRUM_MASTER = "scrumMaster"
    LEADER = "leader"
    ADMIN = "admin"
    AUDITOR = "auditor"

    @property
    def is_cross_team(self) -> bool:
        return self in (Role.ADMIN, Role.AUDITOR)


class ActivityCounters(BaseModel):
    seconds_in_call: int = Field(default=0, ge=0)
    tasks_assigned: int = Field(default=0, ge=0)
    tasks_completed: int = Field(default=0, ge=0)


class User(BaseModel):
    id: str
    display_name: str
    role: Role = Role.MEMBER
    team: str
    token: str
    counters: ActivityCounters = Field(default_factory=ActivityCounters)
    last_activity_at: Optional[datetime] = None

    def public_view(self) -> Dict[str, object]:
        """User data without the credential token."""
        return self.model_dump(mode="json", exclude={"token"})


UsersDocument = Dict[str, User]
