from .base import DocumentStore
from .json_store import JsonFileDocumentStore
from .sql_store import SqlDocumentStore
from .repository import StateRepository

__all__ = ["DocumentStore", "JsonFileDocumentStore", "SqlDocumentStore", "StateRepository"]
