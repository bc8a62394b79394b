"""
Tests for the document stores and the retrying repository.

Validates:
- JSON and SQL stores persist whole documents and read missing data as empty
- a failed JSON write leaves the previous file intact
- transient store failures are retried, persistent ones surface as store_unavailable
- per-team mutations are serialized without lost updates
"""

import asyncio
import json

import pytest
from sqlalchemy.ext.asyncio import create_async_engine

from sprintdesk.core.errors import InvalidStateError, NotFoundError, StoreIOError, StoreUnavailableError
from sprintdesk.database import create_session_factory, create_tables
from sprintdesk.schemas.team import TeamDocument
from sprintdesk.services.engine import ScrumEngine
from sprintdesk.store.json_store import JsonFileDocumentStore
from sprintdesk.store.repository import StateRepository
from sprintdesk.store.sql_store import SqlDocumentStore

from .conftest import story


class FlakyStore(JsonFileDocumentStore):
    """Fails the first ``failures`` team reads, then behaves normally."""

    def __init__(self, tmp_path, failures):
        super().__init__(tmp_path / "db.json", tmp_path / "users.json")
        self.failures = failures
        self.read_calls = 0
        self.write_calls = 0

    async def read_team(self, team_id):
        self.read_calls += 1
        if self.read_calls <= self.failures:
            raise StoreIOError("disk busy")
        return await super().read_team(team_id)

    async def write_team(self, team_id, document):
        self.write_calls += 1
        await super().write_team(team_id, document)


class SlowStore(JsonFileDocumentStore):
    async def read_team(self, team_id):
        await asyncio.sleep(1)
        return None


class TestJsonFileDocumentStore:
    async def test_missing_files_read_empty(self, store):
        assert await store.read_teams() == {}
        assert await store.read_users() == {}
        assert await store.read_team("Grupo1") is None

    async def test_team_documents_share_one_file(self, store):
        await store.write_team("Grupo2", {"name": "Grupo2"})
        await store.write_team("Grupo1", {"name": "Grupo1"})

        assert await store.list_team_ids() == ["Grupo1", "Grupo2"]
        on_disk = json.loads(store.teams_path.read_text(encoding="utf-8"))
        assert set(on_disk) == {"Grupo1", "Grupo2"}

    async def test_failed_write_keeps_previous_content(self, store):
        await store.write_team("Grupo1", {"name": "Grupo1"})

        with pytest.raises(StoreIOError):
            await store.write_team("Grupo1", {"name": "Grupo1", "bad": {1, 2}})

        assert await store.read_team("Grupo1") == {"name": "Grupo1"}
        leftovers = [p for p in store.teams_path.parent.iterdir() if p.suffix == ".tmp"]
        assert leftovers == []

    async def test_corrupt_file_is_an_io_error(self, store):
        store.teams_path.write_text("{not json", encoding="utf-8")

        with pytest.raises(StoreIOError):
            await store.read_teams()


class TestSqlDocumentStore:
    @pytest.fixture
    async def sql_store(self, tmp_path):
        engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'sprintdesk.db'}")
        await create_tables(engine)
        store = SqlDocumentStore(create_session_factory(engine), engine)
        yield store
        await store.close()

    async def test_team_round_trip(self, sql_store):
        document = TeamDocument(name="Grupo1").model_dump(mode="json")

        await sql_store.write_team("Grupo1", document)
        await sql_store.write_team("Grupo1", {**document, "started": False, "reset_by": "Eve"})

        assert (await sql_store.read_team("Grupo1"))["reset_by"] == "Eve"
        assert await sql_store.read_team("Grupo9") is None
        assert await sql_store.list_team_ids() == ["Grupo1"]

    async def test_write_teams_replaces_collection(self, sql_store):
        await sql_store.write_team("Grupo1", {"name": "Grupo1"})
        await sql_store.write_teams({"Grupo2": {"name": "Grupo2"}, "Grupo3": {"name": "Grupo3"}})

        assert await sql_store.list_team_ids() == ["Grupo2", "Grupo3"]
        assert set(await sql_store.read_teams()) == {"Grupo2", "Grupo3"}

    async def test_users_collection(self, sql_store):
        await sql_store.write_users({"u1": {"id": "u1"}, "u2": {"id": "u2"}})
        await sql_store.write_users({"u2": {"id": "u2", "team": "Grupo1"}})

        assert await sql_store.read_users() == {"u2": {"id": "u2", "team": "Grupo1"}}

    async def test_engine_runs_on_sql_store(self, sql_store, clock, seeded_users):
        repository = StateRepository(sql_store, retry_attempts=0, retry_delay=0)
        await repository.save_users(seeded_users)
        engine = ScrumEngine(repository, clock, ["Grupo1"])

        result = await engine.initialize_project(
            seeded_users["u-ana"], "Grupo1", {"project_count": 2, "durations": {"GenT": 1, "Proy": 1}}
        )

        assert result.success, result.error
        assert (await repository.load_team("Grupo1")).started


class TestStateRepository:
    async def test_transient_failures_are_retried(self, tmp_path):
        store = FlakyStore(tmp_path, failures=2)
        await store.write_team("Grupo1", TeamDocument(name="Grupo1").model_dump(mode="json"))
        repository = StateRepository(store, retry_attempts=2, retry_delay=0)

        team = await repository.load_team("Grupo1")

        assert team.name == "Grupo1"
        assert store.read_calls == 3

    async def test_exhausted_retries_raise_store_unavailable(self, tmp_path):
        store = FlakyStore(tmp_path, failures=10)
        repository = StateRepository(store, retry_attempts=2, retry_delay=0)

        with pytest.raises(StoreUnavailableError):
            await repository.load_team("Grupo1")
        assert store.read_calls == 3

    async def test_timeouts_count_as_failures(self, tmp_path):
        store = SlowStore(tmp_path / "db.json", tmp_path / "users.json")
        repository = StateRepository(store, retry_attempts=0, retry_delay=0, timeout=0.01)

        with pytest.raises(StoreUnavailableError):
            await repository.load_team("Grupo1")

    async def test_missing_team(self, repository):
        with pytest.raises(NotFoundError):
            await repository.load_team("Grupo1")
        assert not await repository.team_exists("Grupo1")

    async def test_malformed_team_is_invalid_state(self, store, repository):
        await store.write_team("Grupo1", {"name": "Grupo1", "started": True, "projects": {}})

        with pytest.raises(InvalidStateError):
            await repository.load_team("Grupo1")

    async def test_unchanged_mutation_does_not_write(self, tmp_path):
        store = FlakyStore(tmp_path, failures=0)
        await store.write_team("Grupo1", TeamDocument(name="Grupo1").model_dump(mode="json"))
        repository = StateRepository(store, retry_delay=0)

        async with repository.mutate_team("Grupo1") as team:
            assert team.name == "Grupo1"

        assert store.write_calls == 1

    async def test_failed_mutation_is_discarded(self, store, repository):
        await repository.save_team("Grupo1", TeamDocument(name="Grupo1"))

        with pytest.raises(RuntimeError):
            async with repository.mutate_team("Grupo1") as team:
                team.reset_by = "nobody"
                raise RuntimeError("abort")

        assert (await repository.load_team("Grupo1")).reset_by is None

    async def test_create_on_missing_team(self, repository):
        async with repository.mutate_team("Grupo4", create=True) as team:
            team.reset_by = "Eve"

        assert (await repository.load_team("Grupo4")).reset_by == "Eve"

    async def test_concurrent_mutations_do_not_lose_updates(self, engine, leader, repository, started_team):
        results = await asyncio.gather(*[
            engine.add_backlog_item(leader, "Grupo1", "GenT", story(1, f"story {n}")) for n in range(10)
        ])

        assert all(result.success for result in results)
        team = await repository.load_team("Grupo1")
        assert len(team.projects["GenT"].product_backlog) == 10
        assert team.statistics.total_story_points == 10
        assert repository._team_locks == {}

    async def test_unknown_teams_leave_no_locks_behind(self, repository):
        for team_id in ("Grupo7", "Grupo8", "Grupo9"):
            with pytest.raises(NotFoundError):
                async with repository.mutate_team(team_id):
                    pass

        assert repository._team_locks == {}
        assert repository._lock_users == {}
