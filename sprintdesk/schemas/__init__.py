from .user import ActivityCounters, Role, User, UsersDocument
from .team import (
    PROJECT_NAMES,
    GENERAL_PROJECT,
    DELIVERY_PROJECT,
    SECOND_DELIVERY_PROJECT,
    SCHEMA_VERSION,
    SYSTEM_ACTOR,
    UNASSIGNED,
    normalize_assignees,
    ActivityEntry,
    BacklogItem,
    BacklogState,
    BurndownPoint,
    BurndownSeries,
    Project,
    ProjectKind,
    Sprint,
    Task,
    TaskState,
    TeamDocument,
    TeamStatistics,
    TeamsDocument,
    VelocitySample,
)

__all__ = [
    "ActivityCounters",
    "Role",
    "User",
    "UsersDocument",
    "PROJECT_NAMES",
    "GENERAL_PROJECT",
    "DELIVERY_PROJECT",
    "SECOND_DELIVERY_PROJECT",
    "SCHEMA_VERSION",
    "SYSTEM_ACTOR",
    "UNASSIGNED",
    "normalize_assignees",
    "ActivityEntry",
    "BacklogItem",
    "BacklogState",
    "BurndownPoint",
    "BurndownSeries",
    "Project",
    "ProjectKind",
    "Sprint",
    "Task",
    "TaskState",
    "TeamDocument",
    "TeamStatistics",
    "TeamsDocument",
    "VelocitySample",
]
