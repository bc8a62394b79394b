"""
Tests for the daily sprint rollover sweep.

Validates:
- only sprints ending today advance, even with open tasks
- a second sweep on the same day changes nothing
- one malformed team does not stop the others
- an unavailable store aborts the sweep
"""

from datetime import date

import pytest

from sprintdesk.core.errors import StoreIOError, StoreUnavailableError
from sprintdesk.schemas.team import TeamDocument
from sprintdesk.services.scheduler import ROLLOVER_JOB_ID, SprintScheduler
from sprintdesk.services.sprint_service import SprintLifecycleService
from sprintdesk.store.json_store import JsonFileDocumentStore
from sprintdesk.store.repository import StateRepository

GENT_END = date(2024, 3, 18)


@pytest.fixture
def scheduler(engine, clock):
    return SprintScheduler(engine.lifecycle, clock)


class BrokenStore(JsonFileDocumentStore):
    async def read_team(self, team_id):
        raise StoreIOError("connection reset")


class TestDailySweep:
    async def test_nothing_due_before_the_end_date(self, scheduler, started_team):
        report = await scheduler.run_daily_sweep()

        assert report.advanced == []
        assert report.failed == []

    async def test_due_sprint_advances_despite_open_tasks(self, scheduler, clock, repository, planned_sprint):
        clock.set(GENT_END)

        report = await scheduler.run_daily_sweep()

        assert report.day == GENT_END
        assert report.advanced == [("Grupo1", "GenT", 2)]
        team = await repository.load_team("Grupo1")
        gent = team.projects["GenT"]
        assert gent.current_sprint_number == 2
        assert gent.current_sprint.start_date == GENT_END
        assert gent.sprints[1].tasks  # open tasks stay on the old sprint
        assert team.projects["Proy"].current_sprint_number == 1

    async def test_second_sweep_same_day_is_a_no_op(self, scheduler, clock, repository, started_team):
        clock.set(GENT_END)

        first = await scheduler.run_daily_sweep()
        second = await scheduler.run_daily_sweep()

        assert first.advanced == [("Grupo1", "GenT", 2)]
        assert second.advanced == []
        assert sorted((await repository.load_team("Grupo1")).projects["GenT"].sprints) == [1, 2]

    async def test_explicit_day_overrides_clock(self, scheduler, started_team):
        report = await scheduler.run_daily_sweep(date(2024, 3, 25))
        assert report.advanced == [("Grupo1", "Proy", 2)]

    async def test_concluded_sprint_counts_towards_velocity(self, engine, leader, scheduler, clock, repository, planned_sprint):
        first = planned_sprint["items"][0]
        await engine.edit_backlog_item(leader, "Grupo1", "GenT", first.id, {"state": "DONE"})
        clock.set(GENT_END)

        await scheduler.run_daily_sweep()

        stats = (await repository.load_team("Grupo1")).statistics
        assert [(s.project, s.sprint, s.completed_points) for s in stats.velocity_history] == [("GenT", 1, 5)]
        assert stats.average_velocity == 5

    async def test_unstarted_and_malformed_teams(self, scheduler, clock, store, repository, started_team):
        await repository.save_team("Grupo2", TeamDocument(name="Grupo2"))
        await store.write_team("Grupo3", {"name": "Grupo3", "started": True, "projects": {}})
        clock.set(GENT_END)

        report = await scheduler.run_daily_sweep()

        assert report.advanced == [("Grupo1", "GenT", 2)]
        assert [(f.team, f.kind) for f in report.failed] == [("Grupo3", "invalid_state")]

    async def test_store_outage_aborts_the_sweep(self, tmp_path, clock):
        store = BrokenStore(tmp_path / "db.json", tmp_path / "users.json")
        await store.write_team("Grupo1", {"name": "Grupo1"})
        repository = StateRepository(store, retry_attempts=1, retry_delay=0)
        scheduler = SprintScheduler(SprintLifecycleService(repository, clock), clock)

        with pytest.raises(StoreUnavailableError):
            await scheduler.run_daily_sweep()


class TestSchedulerJob:
    async def test_start_registers_daily_job(self, scheduler):
        scheduler.rollover_time = (0, 5)
        scheduler.start()
        try:
            assert scheduler.running
            job = scheduler._scheduler.get_job(ROLLOVER_JOB_ID)
            assert job is not None
            assert str(job.trigger.fields[5]) == "0"  # hour
            assert str(job.trigger.fields[6]) == "5"  # minute
        finally:
            scheduler.shutdown()

        assert not scheduler.running

    async def test_start_twice_keeps_one_scheduler(self, scheduler):
        scheduler.start()
        first = scheduler._scheduler
        scheduler.start()
        try:
            assert scheduler._scheduler is first
        finally:
            scheduler.shutdown()

    async def test_scheduled_run_swallows_store_outage(self, tmp_path, clock):
        store = BrokenStore(tmp_path / "db.json", tmp_path / "users.json")
        await store.write_team("Grupo1", {"name": "Grupo1"})
        repository = StateRepository(store, retry_attempts=0, retry_delay=0)
        scheduler = SprintScheduler(SprintLifecycleService(repository, clock), clock)

        await scheduler._scheduled_sweep()
