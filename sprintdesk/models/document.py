from sqlalchemy import Column, Integer, String, JSON

from .base import TimestampedModel


class TeamDocumentRow(TimestampedModel):
    """One team's full state, stored as a single JSON document."""

    __tablename__ = "team_documents"

    team_id = Column(String(64), primary_key=True)
    payload = Column(JSON, nullable=False)
    schema_version = Column(Integer, nullable=False, default=2)

    def __repr__(self):
        return f"<TeamDocumentRow(team_id='{self.team_id}', schema_version={self.schema_version})>"


class UserDocumentRow(TimestampedModel):
    __tablename__ = "user_documents"

    user_id = Column(String(64), primary_key=True)
    payload = Column(JSON, nullable=False)

    def __repr__(self):
        return f"<UserDocumentRow(user_id='{self.user_id}')>"
