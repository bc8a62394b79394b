from .base import Base, TimestampedModel
from .document import TeamDocumentRow, UserDocumentRow

__all__ = ["Base", "TimestampedModel", "TeamDocumentRow", "UserDocumentRow"]
