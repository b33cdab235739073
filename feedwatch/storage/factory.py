"""Build the configured store backend."""

import logging

from feedwatch.config.settings import Settings, get_settings
from feedwatch.plans.tiers import PlanConfig
from feedwatch.storage.database import Database
from feedwatch.storage.memory import InMemoryStore
from feedwatch.storage.repository import PostgresStore

logger = logging.getLogger(__name__)


async def create_store(settings: Settings | None = None) -> InMemoryStore | PostgresStore:
    """
    Create the store selected by ``store_backend``.

    The PostgreSQL store is returned connected; callers release it with
    ``await store.close()``.
    """
    settings = settings or get_settings()
    plan_config = PlanConfig()

    if settings.store_backend == "postgres":
        database = Database(settings.database_url)
        await database.connect()
        return PostgresStore(database, plan_config=plan_config)

    if settings.memory_store_seed:
        store = InMemoryStore.from_json_file(settings.memory_store_seed, plan_config=plan_config)
    else:
        store = InMemoryStore(plan_config=plan_config)
        logger.info("Using empty in-memory store")
    return store
