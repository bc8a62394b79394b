from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel, Field, PositiveInt, field_validator, model_validator

SCHEMA_VERSION = 2

UNASSIGNED = "@Unassigned"
SYSTEM_ACTOR = "SYSTEM"

GENERAL_PROJECT = "GenT"
DELIVERY_PROJECT = "Proy"
SECOND_DELIVERY_PROJECT = "Proy2"
PROJECT_NAMES = (GENERAL_PROJECT, DELIVERY_PROJECT, SECOND_DELIVERY_PROJECT)


class BacklogState(str, Enum):
    TODO = "TODO"
    IN_SPRINT = "IN_SPRINT"
    IN_PROGRESS = "IN_PROGRESS"
    DONE = "DONE"


class TaskState(str, Enum):
    TODO = "TODO"
    IN_PROGRESS = "IN_PROGRESS"
    DONE = "DONE"
    VERIFIED = "VERIFIED"

    @property
    def is_finished(self) -> bool:
        return self in (TaskState.DONE, TaskState.VERIFIED)


class ProjectKind(str, Enum):
    GENERAL = "general"
    DELIVERY = "delivery"


def normalize_assignees(names: Iterable[str]) -> List[str]:
    """Drop blanks and duplicates; an empty set becomes the unassigned sentinel."""
    stripped = (name.strip() for name in names if name)
    named = [name for name in stripped if name and name != UNASSIGNED]
    return list(dict.fromkeys(named)) or [UNASSIGNED]


class ActivityEntry(BaseModel):
    at: datetime
    actor: str
    action: str
    comment: Optional[str] = None
    from_state: Optional[TaskState] = None
    to_state: Optional[TaskState] = None


class BacklogItem(BaseModel):
    id: str
    title: str = ""
    as_a: str
    i_want: str
    so_that: str
    acceptance_criteria: str = ""
    priority: str
    story_points: PositiveInt
    state: BacklogState = BacklogState.TODO
    created_at: datetime
    created_by: str


class Task(BaseModel):
    id: str
    description: str
    assignees: List[str] = Field(default_factory=lambda: [UNASSIGNED])
    priority: str = "MEDIUM"
    due_date: Optional[date] = None
    state: TaskState = TaskState.TODO
    backlog_item_id: Optional[str] = None
    estimate_hours: float = Field(default=0, ge=0)
    created_at: datetime
    created_by: str
    activity_log: List[ActivityEntry] = Field(default_factory=list)

    @field_validator("assignees")
    @classmethod
    def _never_empty(cls, value: List[str]) -> List[str]:
        return normalize_assignees(value)

    @property
    def named_assignees(self) -> List[str]:
        return [name for name in self.assignees if name != UNASSIGNED]


class BurndownPoint(BaseModel):
    day: int = Field(ge=0)
    work: float
    recorded_on: Optional[date] = None


class BurndownSeries(BaseModel):
    planned_work: List[BurndownPoint] = Field(default_factory=list)
    actual_work: List[BurndownPoint] = Field(default_factory=list)


class Sprint(BaseModel):
    number: PositiveInt
    start_date: date
    end_date: date
    scrum_board: List[str] = Field(default_factory=list)
    tasks: Dict[str, Task] = Field(default_factory=dict)
    burndown: BurndownSeries = Field(default_factory=BurndownSeries)

    @model_validator(mode="after")
    def _dates_ordered(self) -> "Sprint":
        if self.end_date < self.start_date:
            raise ValueError("Sprint end date precedes its start date")
        return self


class Project(BaseModel):
    name: str
    kind: ProjectKind
    sprint_duration_weeks: PositiveInt
    current_sprint_number: PositiveInt = 1
    product_backlog: List[BacklogItem] = Field(default_factory=list)
    sprints: Dict[int, Sprint] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _sprints_contiguous(self) -> "Project":
        numbers = sorted(self.sprints)
        if numbers != list(range(1, len(numbers) + 1)):
            raise ValueError(f"Sprint numbers of {self.name} are not contiguous from 1: {numbers}")
        for number, sprint in self.sprints.items():
            if sprint.number != number:
                raise ValueError(f"Sprint keyed {number} carries number {sprint.number}")
        if self.current_sprint_number not in self.sprints:
            raise ValueError(
                f"Current sprint {self.current_sprint_number} of {self.name} has no sprint entry"
            )
        return self

    @property
    def current_sprint(self) -> Sprint:
        return self.sprints[self.current_sprint_number]

    def find_backlog_item(self, item_id: str) -> Optional[BacklogItem]:
        for item in self.product_backlog:
            if item.id == item_id:
                return item
        return None


class VelocitySample(BaseModel):
    project: str
    sprint: int
    completed_points: int
    end_date: date


class TeamStatistics(BaseModel):
    total_story_points: int = 0
    completed_story_points: int = 0
    average_velocity: float = 0.0
    velocity_history: List[VelocitySample] = Field(default_factory=list)


class TeamDocument(BaseModel):
    schema_version: int = SCHEMA_VERSION
    name: str
    started: bool = False
    started_at: Optional[datetime] = None
    projects: Dict[str, Project] = Field(default_factory=dict)
    statistics: TeamStatistics = Field(default_factory=TeamStatistics)
    preserved_backlog: Dict[str, List[BacklogItem]] = Field(default_factory=dict)
    last_reset_at: Optional[datetime] = None
    reset_by: Optional[str] = None

    @model_validator(mode="after")
    def _started_has_projects(self) -> "TeamDocument":
        if self.started and not self.projects:
            raise ValueError(f"Team {self.name} is started but holds no projects")
        if self.schema_version != SCHEMA_VERSION:
            raise ValueError(
                f"Team {self.name} uses schema version {self.schema_version}; "
                f"migrate it to {SCHEMA_VERSION} first"
            )
        return self

    def get_project(self, name: str) -> Optional[Project]:
        return self.projects.get(name)


TeamsDocument = Dict[str, TeamDocument]
