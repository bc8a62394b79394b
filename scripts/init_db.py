#!/usr/bin/env python3
"""
Initialize the document tables and optionally load a legacy users.json
"""
import argparse
import asyncio
import json
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sprintdesk.config import get_settings
from sprintdesk.database import create_engine_from_settings, create_session_factory, create_tables
from sprintdesk.models.base import Base
from sprintdesk.services.legacy import convert_legacy_users
from sprintdesk.store.repository import StateRepository
from sprintdesk.store.sql_store import SqlDocumentStore


async def init_database(legacy_users_path=None):
    """Create all tables"""
    settings = get_settings()
    engine = create_engine_from_settings(settings)

    print("🗄️  Initializing database...")
    print(f"Creating tables: {', '.join([t.name for t in Base.metadata.sorted_tables])}")
    await create_tables(engine)

    if legacy_users_path:
        with open(legacy_users_path, encoding="utf-8") as handle:
            users = convert_legacy_users(json.load(handle))
        store = SqlDocumentStore(create_session_factory(engine))
        repository = StateRepository.from_settings(store, settings)
        async with repository.mutate_users() as stored:
            stored.update(users)
        print(f"👥 Loaded {len(users)} users from {legacy_users_path}")

    await engine.dispose()
    print("✅ Database initialized successfully!")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--legacy-users", help="path to a legacy users.json to import")
    args = parser.parse_args()
    asyncio.run(init_database(args.legacy_users))
