from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import List, Optional, Union

from ..core.errors import StoreIOError
from .base import DocumentStore, RawCollection, RawDocument

logger = logging.getLogger(__name__)


class JsonFileDocumentStore(DocumentStore):
    """
    Keeps all teams in one JSON file and all users in another.

    Writes go to a temporary file in the same directory and are moved into
    place with ``os.replace``, so readers see either the old or the new file.
    A missing file reads as an empty collection.
    """

    def __init__(self, teams_path: Union[str, Path], users_path: Union[str, Path]) -> None:
        self.teams_path = Path(teams_path)
        self.users_path = Path(users_path)
        # Single-team writes rewrite the shared teams file
        self._teams_file_lock = asyncio.Lock()

    async def read_teams(self) -> RawCollection:
        return await asyncio.to_thread(self._load, self.teams_path)

    async def write_teams(self, documents: RawCollection) -> None:
        async with self._teams_file_lock:
            await asyncio.to_thread(self._dump, self.teams_path, documents)

    async def read_team(self, team_id: str) -> Optional[RawDocument]:
        teams = await self.read_teams()
        return teams.get(team_id)

    async def write_team(self, team_id: str, document: RawDocument) -> None:
        async with self._teams_file_lock:
            teams = await asyncio.to_thread(self._load, self.teams_path)
            teams[team_id] = document
            await asyncio.to_thread(self._dump, self.teams_path, teams)

    async def list_team_ids(self) -> List[str]:
        teams = await self.read_teams()
        return sorted(teams)

    async def read_users(self) -> RawCollection:
        return await asyncio.to_thread(self._load, self.users_path)

    async def write_users(self, documents: RawCollection) -> None:
        await asyncio.to_thread(self._dump, self.users_path, documents)

    @staticmethod
    def _load(path: Path) -> RawCollection:
        try:
            with path.open("r", encoding="utf-8") as handle:
                data = json.load(handle)
        except FileNotFoundError:
            return {}
        except (OSError, json.JSONDecodeError) as e:
            raise StoreIOError(f"Cannot read {path}: {e}") from e

        if not isinstance(data, dict):
            raise StoreIOError(f"{path} does not hold a JSON object")
        return data

    @staticmethod
    def _dump(path: Path, documents: RawCollection) -> None:
        tmp_name = None
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(documents, handle, indent=2, ensure_ascii=False)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, path)
            tmp_name = None
        except (OSError, TypeError, ValueError) as e:
            raise StoreIOError(f"Cannot write {path}: {e}") from e
        finally:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)
        logger.debug("Wrote %s", path)
