"""SQLite schema management (code-first, schemas declared by feature modules)."""

import logging

from src.core import db_client
from src.core.module_registry import get_all_indexes, get_all_table_schemas, get_modules


logger = logging.getLogger(__name__)


def register_default_modules() -> None:
    """Register the built-in feature modules if they are not registered yet."""
    from src.core.module_registry import register_module
    from src.modules.gamification import GamificationModule
    from src.modules.rotation import RotationModule

    registered = get_modules()
    for module in (RotationModule(), GamificationModule()):
        if module.name not in registered:
            register_module(module)


async def init_db(*, db_path: str | None = None) -> None:
    """Create every registered table and index if missing."""
    register_default_modules()

    conn = await db_client.get_connection(db_path=db_path)
    schemas = get_all_table_schemas()
    for table_name, create_sql in schemas.items():
        await conn.execute(create_sql)
        logger.debug("Ensured table", extra={"table": table_name})

    for index_sql in get_all_indexes():
        await conn.execute(index_sql)

    await conn.commit()
    logger.info("Database schema initialized", extra={"tables": len(schemas)})
