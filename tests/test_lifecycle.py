"""
Tests for project initialization, sprint advancement and reset.

Validates:
- sprint 1 dates follow the configured duration in weeks
- a started team cannot be initialized twice
- interactive advance refuses while tasks are open
- reset with and without a preserved backlog
"""

from datetime import date

import pytest

from sprintdesk.schemas.team import BacklogState, ProjectKind
from sprintdesk.services.sprint_service import ProjectSetup, compute_end_date

from .conftest import TODAY, story


class TestInitializeProject:
    async def test_two_projects_get_their_first_sprint(self, engine, repository, started_team):
        team = await repository.load_team("Grupo1")

        assert team.started
        assert set(team.projects) == {"GenT", "Proy"}
        assert team.projects["GenT"].kind == ProjectKind.GENERAL
        assert team.projects["Proy"].kind == ProjectKind.DELIVERY

        gent = team.projects["GenT"].current_sprint
        assert gent.number == 1
        assert gent.start_date == TODAY
        assert gent.end_date == date(2024, 3, 18)
        assert team.projects["Proy"].current_sprint.end_date == date(2024, 3, 25)

    async def test_three_projects_include_the_second_delivery(self, engine, admin):
        result = await engine.initialize_project(
            admin, "Grupo3", {"project_count": 3, "durations": {"GenT": 1, "Proy": 2, "Proy2": 2}}
        )

        assert result.success, result.error
        assert list(result.data.projects) == ["GenT", "Proy", "Proy2"]

    async def test_second_initialization_conflicts(self, engine, leader, started_team):
        result = await engine.initialize_project(
            leader, "Grupo1", {"project_count": 2, "durations": {"GenT": 1, "Proy": 1}}
        )

        assert not result.success
        assert result.to_dict()["error"]["kind"] == "conflict"
        assert result.error.reason == "already_started"

    async def test_member_cannot_initialize(self, engine, member):
        result = await engine.initialize_project(
            member, "Grupo1", {"project_count": 2, "durations": {"GenT": 1, "Proy": 1}}
        )

        assert result.error.kind == "permission_denied"
        assert result.error.reason == "insufficient_role"

    async def test_unknown_team_is_not_created(self, engine, admin):
        result = await engine.initialize_project(
            admin, "Grupo9", {"project_count": 2, "durations": {"GenT": 1, "Proy": 1}}
        )

        assert result.error.kind == "not_found"

    async def test_missing_duration_is_rejected(self, engine, leader):
        result = await engine.initialize_project(leader, "Grupo1", {"project_count": 2, "durations": {"GenT": 2}})

        assert result.error.kind == "invalid_state"

    def test_setup_lists_projects_in_order(self):
        setup = ProjectSetup(project_count=3, durations={"GenT": 1, "Proy": 1, "Proy2": 1})
        assert setup.project_names == ("GenT", "Proy", "Proy2")

    def test_end_date_is_weeks_after_start(self):
        assert compute_end_date(date(2024, 2, 26), 2) == date(2024, 3, 11)


class TestAdvanceSprint:
    async def test_advance_with_open_tasks_conflicts(self, engine, leader, planned_sprint):
        result = await engine.advance_sprint(leader, "Grupo1", "GenT")

        assert result.error.kind == "conflict"
        assert result.error.reason == "sprint_incomplete"

    async def test_advance_once_every_task_is_finished(self, engine, leader, repository, planned_sprint):
        for key in ("bob_task", "cid_task"):
            done = await engine.update_task_state(leader, "Grupo1", "GenT", planned_sprint[key].id, "DONE")
            assert done.success, done.error

        result = await engine.advance_sprint(leader, "Grupo1", "GenT")

        assert result.success, result.error
        sprint = result.data
        assert sprint.number == 2
        assert sprint.start_date == date(2024, 3, 18)
        assert sprint.end_date == date(2024, 4, 1)

        project = (await repository.load_team("Grupo1")).projects["GenT"]
        assert project.current_sprint_number == 2
        assert sorted(project.sprints) == [1, 2]

    async def test_empty_sprint_advances(self, engine, leader, started_team):
        result = await engine.advance_sprint(leader, "Grupo1", "Proy")
        assert result.success
        assert result.data.number == 2

    async def test_unknown_project(self, engine, leader, started_team):
        result = await engine.advance_sprint(leader, "Grupo1", "Proy2")
        assert result.error.kind == "not_found"

    async def test_team_not_started(self, engine, gus_leader):
        result = await engine.advance_sprint(gus_leader, "Grupo2", "GenT")
        assert not result.success


@pytest.fixture
def gus_leader(seeded_users):
    return seeded_users["u-gus"]


class TestResetProject:
    async def test_leader_cannot_reset(self, engine, leader, started_team):
        result = await engine.reset_project(leader, "Grupo1")

        assert result.error.kind == "permission_denied"
        assert result.error.reason == "insufficient_role"

    async def test_reset_clears_projects_and_records_who(self, engine, admin, repository, planned_sprint):
        result = await engine.reset_project(admin, "Grupo1")

        assert result.success, result.error
        team = await repository.load_team("Grupo1")
        assert not team.started
        assert team.projects == {}
        assert team.preserved_backlog == {}
        assert team.reset_by == "Eve"
        assert team.last_reset_at is not None
        assert team.statistics.total_story_points == 0

    async def test_preserved_backlog_survives_reinitialization(self, engine, admin, leader, repository, planned_sprint):
        extra = await engine.add_backlog_item(leader, "Grupo1", "Proy", story(8, "deploy"))
        original_ids = {item.id for item in planned_sprint["items"]}

        reset = await engine.reset_project(admin, "Grupo1", preserve_backlog=True)
        assert reset.success, reset.error

        again = await engine.initialize_project(
            leader, "Grupo1", {"project_count": 2, "durations": {"GenT": 1, "Proy": 1}}
        )
        assert again.success, again.error

        team = await repository.load_team("Grupo1")
        gent_backlog = team.projects["GenT"].product_backlog
        assert {item.id for item in gent_backlog} == original_ids
        assert all(item.state == BacklogState.TODO for item in gent_backlog)
        assert [item.id for item in team.projects["Proy"].product_backlog] == [extra.data.id]
        assert team.preserved_backlog == {}
        assert team.projects["GenT"].current_sprint.tasks == {}

    async def test_reset_without_preserving_starts_empty(self, engine, admin, leader, repository, planned_sprint):
        await engine.reset_project(admin, "Grupo1")
        await engine.initialize_project(leader, "Grupo1", {"project_count": 2, "durations": {"GenT": 1, "Proy": 1}})

        team = await repository.load_team("Grupo1")
        assert team.projects["GenT"].product_backlog == []

    async def test_done_items_keep_their_state(self, engine, admin, leader, repository, planned_sprint):
        first = planned_sprint["items"][0]
        done = await engine.edit_backlog_item(leader, "Grupo1", "GenT", first.id, {"state": "DONE"})
        assert done.success, done.error

        await engine.reset_project(admin, "Grupo1", preserve_backlog=True)

        team = await repository.load_team("Grupo1")
        states = {item.id: item.state for item in team.preserved_backlog["GenT"]}
        assert states[first.id] == BacklogState.DONE
        assert states[planned_sprint["items"][1].id] == BacklogState.TODO


class TestGetSprint:
    async def test_current_and_numbered(self, engine, member, started_team):
        current = await engine.get_sprint(member, "Grupo1", "GenT")
        first = await engine.get_sprint(member, "Grupo1", "GenT", 1)

        assert current.data.number == 1
        assert first.data == current.data

    async def test_missing_sprint(self, engine, member, started_team):
        result = await engine.get_sprint(member, "Grupo1", "GenT", 4)
        assert result.error.kind == "not_found"

    async def test_other_team_is_hidden(self, engine, outsider, started_team):
        result = await engine.get_sprint(outsider, "Grupo1", "GenT")
        assert result.error.reason == "wrong_team"
