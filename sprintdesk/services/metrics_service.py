"""
Derived metrics: burndown, completion percentages, velocity, productivity.

Everything here is a pure function of the stored records. The only values
written back are the burndown samples and the cached ``TeamStatistics``
block, both always recomputed from scratch.
"""

from __future__ import annotations

import math
from datetime import date
from enum import Enum
from typing import Dict, Iterable, List, Mapping

from pydantic import BaseModel, Field

from ..schemas.team import (
    BacklogState,
    BurndownPoint,
    Project,
    Sprint,
    TaskState,
    TeamDocument,
    VelocitySample,
)
from ..schemas.user import Role, User

SECONDS_PER_HOUR = 3600

OPEN_BACKLOG_STATES = (BacklogState.IN_SPRINT, BacklogState.IN_PROGRESS)


class Participation(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class CompletionBreakdown(BaseModel):
    total: float = 0
    done: float = 0
    in_progress: float = 0
    percent: int = 0


class ProjectCompletion(BaseModel):
    project: str
    current_sprint: int
    backlog_items: CompletionBreakdown
    story_points: CompletionBreakdown
    tasks: CompletionBreakdown


class BacklogItemProgress(BaseModel):
    id: str
    title: str
    story_points: int
    state: BacklogState
    total_tasks: int
    done_tasks: int
    in_progress_tasks: int
    percent: int


class ActiveSprintVelocity(BaseModel):
    project: str
    sprint: int
    completed_points: int
    baseline: float


class VelocityReport(BaseModel):
    samples: List[VelocitySample] = Field(default_factory=list)
    average_velocity: float = 0.0
    active_sprints: List[ActiveSprintVelocity] = Field(default_factory=list)


class MemberMetrics(BaseModel):
    user_id: str
    display_name: str
    role: Role
    seconds_in_call: int
    hours_in_call: float
    tasks_assigned: int
    tasks_completed: int
    tasks_in_progress: int
    percent: int
    productivity: float
    participation: Participation


class TeamSummary(BaseModel):
    name: str
    started: bool
    projects: int
    members: int
    tasks: int
    completed_tasks: int
    percent: int


class GlobalMetrics(BaseModel):
    total_teams: int
    started_teams: int
    total_users: int
    total_projects: int
    total_backlog_items: int
    total_tasks: int
    completed_tasks: int
    percent: int
    role_distribution: Dict[str, int]
    teams: List[TeamSummary]


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def weighted_completion(done: float, in_progress: float, total: float) -> int:
    """Percentage counting in-progress work as half done; 0 for an empty total."""
    if total <= 0:
        return 0
    return round_half_up(100 * (done + 0.5 * in_progress) / total)


def build_planned_work(total_points: float, day_count: int) -> List[BurndownPoint]:
    """Ideal linear decay from ``total_points`` to zero over ``day_count`` days."""
    if day_count <= 0:
        return [BurndownPoint(day=0, work=total_points)]
    return [
        BurndownPoint(day=i, work=total_points - (total_points * i / day_count))
        for i in range(day_count + 1)
    ]


def remaining_work(sprint: Sprint) -> float:
    total = sum(task.estimate_hours for task in sprint.tasks.values())
    finished = sum(task.estimate_hours for task in sprint.tasks.values() if task.state.is_finished)
    return total - finished


def record_burndown_sample(sprint: Sprint, today: date) -> BurndownPoint:
    """Append or update today's actual-work sample; planned work is left alone."""
    day = max(0, (today - sprint.start_date).days)
    work = remaining_work(sprint)

    actual = sprint.burndown.actual_work
    for point in actual:
        if point.day == day:
            point.work = work
            point.recorded_on = today
            break
    else:
        point = BurndownPoint(day=day, work=work, recorded_on=today)
        actual.append(point)

    actual.sort(key=lambda p: p.day)
    return point


def _task_counts(sprint: Sprint) -> CompletionBreakdown:
    tasks = list(sprint.tasks.values())
    done = sum(1 for t in tasks if t.state.is_finished)
    in_progress = sum(1 for t in tasks if t.state == TaskState.IN_PROGRESS)
    return CompletionBreakdown(
        total=len(tasks),
        done=done,
        in_progress=in_progress,
        percent=weighted_completion(done, in_progress, len(tasks)),
    )


def project_completion(project: Project) -> ProjectCompletion:
    items = project.product_backlog
    done_items = [i for i in items if i.state == BacklogState.DONE]
    open_items = [i for i in items if i.state in OPEN_BACKLOG_STATES]

    total_points = sum(i.story_points for i in items)
    done_points = sum(i.story_points for i in done_items)
    open_points = sum(i.story_points for i in open_items)

    return ProjectCompletion(
        project=project.name,
        current_sprint=project.current_sprint_number,
        backlog_items=CompletionBreakdown(
            total=len(items),
            done=len(done_items),
            in_progress=len(open_items),
            percent=weighted_completion(len(done_items), len(open_items), len(items)),
        ),
        story_points=CompletionBreakdown(
            total=total_points,
            done=done_points,
            in_progress=open_points,
            percent=weighted_completion(done_points, open_points, total_points),
        ),
        tasks=_task_counts(project.current_sprint),
    )


def backlog_item_progress(project: Project) -> List[BacklogItemProgress]:
    """Per-item progress measured by the linked tasks of the current sprint."""
    tasks = list(project.current_sprint.tasks.values())
    progress = []
    for item in project.product_backlog:
        linked = [t for t in tasks if t.backlog_item_id == item.id]
        done = sum(1 for t in linked if t.state.is_finished)
        in_progress = sum(1 for t in linked if t.state == TaskState.IN_PROGRESS)

        if linked:
            percent = weighted_completion(done, in_progress, len(linked))
        elif item.state == BacklogState.DONE:
            percent = 100
        else:
            percent = 0

        progress.append(BacklogItemProgress(
            id=item.id,
            title=item.title or f"{item.as_a} - {item.i_want}",
            story_points=item.story_points,
            state=item.state,
            total_tasks=len(linked),
            done_tasks=done,
            in_progress_tasks=in_progress,
            percent=percent,
        ))
    return progress


def completed_points(project: Project, sprint: Sprint) -> int:
    board = set(sprint.scrum_board)
    return sum(
        item.story_points
        for item in project.product_backlog
        if item.id in board and item.state == BacklogState.DONE
    )


def team_velocity(team: TeamDocument, today: date) -> VelocityReport:
    samples: List[VelocitySample] = []
    for name, project in team.projects.items():
        for number in sorted(project.sprints):
            sprint = project.sprints[number]
            if sprint.end_date <= today:
                samples.append(VelocitySample(
                    project=name,
                    sprint=number,
                    completed_points=completed_points(project, sprint),
                    end_date=sprint.end_date,
                ))

    average = sum(s.completed_points for s in samples) / len(samples) if samples else 0.0
    average = round(average, 2)

    active = [
        ActiveSprintVelocity(
            project=name,
            sprint=project.current_sprint_number,
            completed_points=completed_points(project, project.current_sprint),
            baseline=average,
        )
        for name, project in team.projects.items()
    ]
    return VelocityReport(samples=samples, average_velocity=average, active_sprints=active)


def refresh_team_statistics(team: TeamDocument, today: date) -> None:
    items = [item for project in team.projects.values() for item in project.product_backlog]
    velocity = team_velocity(team, today)

    stats = team.statistics
    stats.total_story_points = sum(i.story_points for i in items)
    stats.completed_story_points = sum(i.story_points for i in items if i.state == BacklogState.DONE)
    stats.average_velocity = velocity.average_velocity
    stats.velocity_history = velocity.samples


def participation_band(seconds_in_call: int) -> Participation:
    hours = seconds_in_call / SECONDS_PER_HOUR
    if hours > 1:
        return Participation.HIGH
    if hours > 0.5:
        return Participation.MEDIUM
    return Participation.LOW


def _current_tasks(team: TeamDocument) -> Iterable:
    for project in team.projects.values():
        yield from project.current_sprint.tasks.values()


def member_metrics(team_name: str, team: TeamDocument, users: Mapping[str, User]) -> List[MemberMetrics]:
    tasks = list(_current_tasks(team))
    members = []
    for user_id, user in users.items():
        if user.team != team_name:
            continue

        mine = [t for t in tasks if user.display_name in t.assignees]
        done = sum(1 for t in mine if t.state.is_finished)
        in_progress = sum(1 for t in mine if t.state == TaskState.IN_PROGRESS)
        seconds = user.counters.seconds_in_call
        hours = seconds / SECONDS_PER_HOUR

        members.append(MemberMetrics(
            user_id=user_id,
            display_name=user.display_name,
            role=user.role,
            seconds_in_call=seconds,
            hours_in_call=round(hours, 1),
            tasks_assigned=len(mine),
            tasks_completed=done,
            tasks_in_progress=in_progress,
            percent=weighted_completion(done, in_progress, len(mine)),
            productivity=round(done / hours, 2) if hours > 0 else 0.0,
            participation=participation_band(seconds),
        ))
    return members


def global_metrics(teams: Mapping[str, TeamDocument], users: Mapping[str, User]) -> GlobalMetrics:
    summaries = []
    for name, team in teams.items():
        tasks = list(_current_tasks(team))
        done = sum(1 for t in tasks if t.state.is_finished)
        in_progress = sum(1 for t in tasks if t.state == TaskState.IN_PROGRESS)
        summaries.append(TeamSummary(
            name=name,
            started=team.started,
            projects=len(team.projects),
            members=sum(1 for u in users.values() if u.team == name),
            tasks=len(tasks),
            completed_tasks=done,
            percent=weighted_completion(done, in_progress, len(tasks)),
        ))

    roles: Dict[str, int] = {role.value: 0 for role in Role}
    for user in users.values():
        roles[user.role.value] += 1

    all_tasks = [t for team in teams.values() for t in _current_tasks(team)]
    done = sum(1 for t in all_tasks if t.state.is_finished)
    in_progress = sum(1 for t in all_tasks if t.state == TaskState.IN_PROGRESS)

    return GlobalMetrics(
        total_teams=len(teams),
        started_teams=sum(1 for t in teams.values() if t.started),
        total_users=len(users),
        total_projects=sum(len(t.projects) for t in teams.values()),
        total_backlog_items=sum(len(p.product_backlog) for t in teams.values() for p in t.projects.values()),
        total_tasks=len(all_tasks),
        completed_tasks=done,
        percent=weighted_completion(done, in_progress, len(all_tasks)),
        role_distribution=roles,
        teams=summaries,
    )


class MemberProductivity(BaseModel):
    user_id: str
    display_name: str
    role: Role
    tasks_assigned: int
    tasks_completed: int
    percent: int
    hours_in_call: float
    estimated_hours: float
    efficiency: float
    story_points_completed: int
    score: float


class TeamProductivitySummary(BaseModel):
    members: int
    total_tasks: int
    completed_tasks: int
    percent: int
    average_efficiency: float


class ProductivityReport(BaseModel):
    team: str
    summary: TeamProductivitySummary
    members: List[MemberProductivity]


class CallTimeEntry(BaseModel):
    rank: int
    user_id: str
    display_name: str
    team: str
    seconds_in_call: int
    hours_in_call: float


class CallTimeRanking(BaseModel):
    entries: List[CallTimeEntry] = Field(default_factory=list)
    total_seconds: int = 0
    average_seconds: float = 0.0


def _sprint_tasks_to_date(project: Project) -> List:
    """Tasks of every sprint up to and including the current one."""
    return [
        task
        for number in sorted(project.sprints)
        if number <= project.current_sprint_number
        for task in project.sprints[number].tasks.values()
    ]


def productivity_score(percent: int, efficiency: float) -> float:
    return round(0.4 * percent + 6 * efficiency, 2)


def productivity_report(team_name: str, team: TeamDocument, users: Mapping[str, User]) -> ProductivityReport:
    """
    Per-member productivity over the whole project history.

    Efficiency is completed tasks per hour spent in calls; story points
    count the ``DONE`` backlog items the member worked on through a linked
    task. Members are ranked by score, highest first.
    """
    tasks_by_project = {name: _sprint_tasks_to_date(p) for name, p in team.projects.items()}

    members = []
    for user_id, user in users.items():
        if user.team != team_name:
            continue

        name = user.display_name
        assigned = completed = points = 0
        estimated = 0.0
        for project_name, project in team.projects.items():
            mine = [t for t in tasks_by_project[project_name] if name in t.assignees]
            assigned += len(mine)
            completed += sum(1 for t in mine if t.state.is_finished)
            estimated += sum(t.estimate_hours for t in mine)

            worked_on = {t.backlog_item_id for t in mine if t.backlog_item_id}
            points += sum(
                item.story_points
                for item in project.product_backlog
                if item.state == BacklogState.DONE and item.id in worked_on
            )

        hours = user.counters.seconds_in_call / SECONDS_PER_HOUR
        efficiency = round(completed / hours, 2) if hours > 0 else 0.0
        percent = round_half_up(100 * completed / assigned) if assigned else 0

        members.append(MemberProductivity(
            user_id=user_id,
            display_name=name,
            role=user.role,
            tasks_assigned=assigned,
            tasks_completed=completed,
            percent=percent,
            hours_in_call=round(hours, 1),
            estimated_hours=estimated,
            efficiency=efficiency,
            story_points_completed=points,
            score=productivity_score(percent, efficiency),
        ))

    members.sort(key=lambda m: m.score, reverse=True)

    total = sum(m.tasks_assigned for m in members)
    done = sum(m.tasks_completed for m in members)
    average_efficiency = round(sum(m.efficiency for m in members) / len(members), 2) if members else 0.0

    return ProductivityReport(
        team=team_name,
        summary=TeamProductivitySummary(
            members=len(members),
            total_tasks=total,
            completed_tasks=done,
            percent=round_half_up(100 * done / total) if total else 0,
            average_efficiency=average_efficiency,
        ),
        members=members,
    )


def call_time_ranking(users: Mapping[str, User]) -> CallTimeRanking:
    ranked = sorted(
        (u for u in users.values() if u.counters.seconds_in_call > 0),
        key=lambda u: u.counters.seconds_in_call,
        reverse=True,
    )
    if not ranked:
        return CallTimeRanking()

    total = sum(u.counters.seconds_in_call for u in ranked)
    return CallTimeRanking(
        entries=[
            CallTimeEntry(
                rank=position,
                user_id=user.id,
                display_name=user.display_name,
                team=user.team,
                seconds_in_call=user.counters.seconds_in_call,
                hours_in_call=round(user.counters.seconds_in_call / SECONDS_PER_HOUR, 1),
            )
            for position, user in enumerate(ranked, start=1)
        ],
        total_seconds=total,
        average_seconds=round(total / len(ranked), 2),
    )
