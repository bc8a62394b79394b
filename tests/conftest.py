"""Shared fixtures: a fixed clock, a JSON store under tmp_path and seeded users."""

from datetime import date
from typing import Dict

import pytest

from sprintdesk.core.clock import FixedClock
from sprintdesk.schemas.user import Role, User
from sprintdesk.services.engine import ScrumEngine
from sprintdesk.store.json_store import JsonFileDocumentStore
from sprintdesk.store.repository import StateRepository

TODAY = date(2024, 3, 4)
VALID_TEAMS = ["Grupo1", "Grupo2", "Grupo3", "Grupo4", "Admin"]


def make_user(user_id: str, name: str, role: Role, team: str) -> User:
    return User(id=user_id, display_name=name, role=role, team=team, token=f"token-{user_id}")


@pytest.fixture
def clock():
    return FixedClock(TODAY)


@pytest.fixture
def store(tmp_path):
    return JsonFileDocumentStore(tmp_path / "db.json", tmp_path / "users.json")


@pytest.fixture
def repository(store):
    return StateRepository(store, retry_attempts=2, retry_delay=0, timeout=5)


@pytest.fixture
def seeded_users() -> Dict[str, User]:
    return {
        "u-ana": make_user("u-ana", "Ana", Role.LEADER, "Grupo1"),
        "u-bob": make_user("u-bob", "Bob", Role.MEMBER, "Grupo1"),
        "u-cid": make_user("u-cid", "Cid", Role.SCRUM_MASTER, "Grupo1"),
        "u-dan": make_user("u-dan", "Dan", Role.MEMBER, "Grupo2"),
        "u-gus": make_user("u-gus", "Gus", Role.LEADER, "Grupo2"),
        "u-eve": make_user("u-eve", "Eve", Role.ADMIN, "Admin"),
        "u-fay": make_user("u-fay", "Fay", Role.AUDITOR, "Admin"),
    }


@pytest.fixture
async def engine(repository, clock, seeded_users):
    await repository.save_users(seeded_users)
    return ScrumEngine(repository, clock, VALID_TEAMS)


@pytest.fixture
def leader(seeded_users):
    return seeded_users["u-ana"]


@pytest.fixture
def member(seeded_users):
    return seeded_users["u-bob"]


@pytest.fixture
def scrum_master(seeded_users):
    return seeded_users["u-cid"]


@pytest.fixture
def outsider(seeded_users):
    return seeded_users["u-dan"]


@pytest.fixture
def admin(seeded_users):
    return seeded_users["u-eve"]


@pytest.fixture
def auditor(seeded_users):
    return seeded_users["u-fay"]


@pytest.fixture
async def started_team(engine, leader):
    """Grupo1 initialized with GenT (2 weeks) and Proy (3 weeks)."""
    result = await engine.initialize_project(
        leader, "Grupo1", {"project_count": 2, "durations": {"GenT": 2, "Proy": 3}}
    )
    assert result.success, result.error
    return result.data


def story(points: int = 3, want: str = "to track my work") -> dict:
    return {
        "as_a": "student",
        "i_want": want,
        "so_that": "the team knows where we stand",
        "priority": "HIGH",
        "story_points": points,
    }


@pytest.fixture
async def planned_sprint(engine, leader, started_team):
    """GenT sprint 1 with two selected stories and tasks of 5h (Bob) and 3h (Cid)."""
    items = await engine.bulk_import_backlog_items(
        leader, "Grupo1", "GenT", [story(5, "login"), story(3, "logout")]
    )
    assert items.success, items.error
    first, second = items.data

    selected = await engine.select_sprint_backlog(leader, "Grupo1", "GenT", [first.id, second.id])
    assert selected.success, selected.error

    bob_task = await engine.create_task(leader, "Grupo1", "GenT", {
        "description": "Build login form",
        "assignees": ["Bob"],
        "backlog_item_id": first.id,
        "estimate_hours": 5,
    })
    cid_task = await engine.create_task(leader, "Grupo1", "GenT", {
        "description": "Wire logout",
        "assignees": ["Cid"],
        "backlog_item_id": second.id,
        "estimate_hours": 3,
    })
    assert bob_task.success and cid_task.success

    return {
        "items": [first, second],
        "bob_task": bob_task.data,
        "cid_task": cid_task.data,
    }
