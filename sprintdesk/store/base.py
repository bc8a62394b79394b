from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

# Raw JSON-compatible documents, validated by the repository
RawDocument = Dict[str, Any]
RawCollection = Dict[str, RawDocument]


class DocumentStore(ABC):
    """
    Whole-document persistence for team state and user accounts.

    Implementations raise ``StoreIOError`` for any failed attempt; retries,
    timeouts and validation belong to ``StateRepository``. A failed write
    must leave the previous content readable.
    """

    @abstractmethod
    async def read_teams(self) -> RawCollection:
        """Return every team document keyed by team id."""

    @abstractmethod
    async def write_teams(self, documents: RawCollection) -> None:
        """Replace the whole teams collection."""

    @abstractmethod
    async def read_team(self, team_id: str) -> Optional[RawDocument]:
        pass

    @abstractmethod
    async def write_team(self, team_id: str, document: RawDocument) -> None:
        pass

    @abstractmethod
    async def list_team_ids(self) -> List[str]:
        pass

    @abstractmethod
    async def read_users(self) -> RawCollection:
        pass

    @abstractmethod
    async def write_users(self, documents: RawCollection) -> None:
        pass

    async def close(self) -> None:
        """Release any held resources."""
        return None
