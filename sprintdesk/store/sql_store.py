from __future__ import annotations

import logging
from typing import List, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker

from ..core.errors import StoreIOError
from ..models.document import TeamDocumentRow, UserDocumentRow
from .base import DocumentStore, RawCollection, RawDocument

logger = logging.getLogger(__name__)


class SqlDocumentStore(DocumentStore):
    """One row per team and one row per user; every write is a single transaction."""

    def __init__(self, session_factory: async_sessionmaker, engine: Optional[AsyncEngine] = None) -> None:
        self._session_factory = session_factory
        self._engine = engine

    async def read_teams(self) -> RawCollection:
        try:
            async with self._session_factory() as session:
                result = await session.execute(select(TeamDocumentRow))
                return {row.team_id: row.payload for row in result.scalars()}
        except SQLAlchemyError as e:
            raise StoreIOError(f"Cannot read team documents: {e}") from e

    async def write_teams(self, documents: RawCollection) -> None:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    await session.execute(
                        delete(TeamDocumentRow).where(TeamDocumentRow.team_id.not_in(list(documents)))
                    )
                    for team_id, document in documents.items():
                        await self._upsert_team(session, team_id, document)
        except SQLAlchemyError as e:
            raise StoreIOError(f"Cannot write team documents: {e}") from e

    async def read_team(self, team_id: str) -> Optional[RawDocument]:
        try:
            async with self._session_factory() as session:
                row = await session.get(TeamDocumentRow, team_id)
                return row.payload if row is not None else None
        except SQLAlchemyError as e:
            raise StoreIOError(f"Cannot read team {team_id}: {e}") from e

    async def write_team(self, team_id: str, document: RawDocument) -> None:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    await self._upsert_team(session, team_id, document)
        except SQLAlchemyError as e:
            raise StoreIOError(f"Cannot write team {team_id}: {e}") from e
        logger.debug("Stored team document %s", team_id)

    async def list_team_ids(self) -> List[str]:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(TeamDocumentRow.team_id).order_by(TeamDocumentRow.team_id)
                )
                return list(result.scalars())
        except SQLAlchemyError as e:
            raise StoreIOError(f"Cannot list teams: {e}") from e

    async def read_users(self) -> RawCollection:
        try:
            async with self._session_factory() as session:
                result = await session.execute(select(UserDocumentRow))
                return {row.user_id: row.payload for row in result.scalars()}
        except SQLAlchemyError as e:
            raise StoreIOError(f"Cannot read user documents: {e}") from e

    async def write_users(self, documents: RawCollection) -> None:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    await session.execute(
                        delete(UserDocumentRow).where(UserDocumentRow.user_id.not_in(list(documents)))
                    )
                    for user_id, document in documents.items():
                        row = await session.get(UserDocumentRow, user_id)
                        if row is None:
                            session.add(UserDocumentRow(user_id=user_id, payload=document))
                        else:
                            row.payload = document
        except SQLAlchemyError as e:
            raise StoreIOError(f"Cannot write user documents: {e}") from e

    async def close(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()

    @staticmethod
    async def _upsert_team(session, team_id: str, document: RawDocument) -> None:
        version = document.get("schema_version", 2)
        row = await session.get(TeamDocumentRow, team_id)
        if row is None:
            session.add(TeamDocumentRow(team_id=team_id, payload=document, schema_version=version))
        else:
            row.payload = document
            row.schema_version = version
