"""Backfill display_name on existing folders.

Root folders get the owner's first + last name from the identity provider and
the "root_<owner id>" folder_name; subfolders get display_name = folder_name.
A row that fails is logged and skipped.

Usage (from backend/):
    python -m scripts.migrate_display_names
"""
import asyncio
import logging
import sys

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config import settings
from app.database import build_engine, build_session_factory
from app.models.folder import Folder
from app.services.errors import DriveError
from app.services.identity import DatabaseIdentityProvider, IdentityProvider

logger = logging.getLogger("migrate_display_names")


async def _set(session_factory, folder_id, **values) -> None:
    async with session_factory() as db:
        await db.execute(update(Folder).where(Folder.id == folder_id).values(**values))
        await db.commit()


async def migrate_display_names(
    session_factory: async_sessionmaker[AsyncSession],
    identity: IdentityProvider,
) -> dict:
    """Run the backfill. Returns counts of updated and failed rows."""
    counts = {"roots": 0, "subfolders": 0, "failed": 0}

    async with session_factory() as db:
        roots = (await db.execute(
            select(Folder.id, Folder.owner_id).where(Folder.is_root.is_(True))
        )).all()
    logger.info(f"Found {len(roots)} root folders to migrate")

    for folder_id, owner_id in roots:
        try:
            principal = await identity.get_principal(owner_id)
            if principal is None:
                raise DriveError(f"Principal {owner_id} not found")
            await _set(
                session_factory,
                folder_id,
                display_name=principal.full_name,
                folder_name=f"root_{owner_id}",
            )
            counts["roots"] += 1
            logger.info(f"Updated root folder {folder_id} with display_name: {principal.full_name}")
        except (DriveError, SQLAlchemyError) as e:
            counts["failed"] += 1
            logger.error(f"Error updating root folder {folder_id}: {e}")

    async with session_factory() as db:
        subfolders = (await db.execute(
            select(Folder.id, Folder.folder_name).where(Folder.is_root.is_(False))
        )).all()
    logger.info(f"Found {len(subfolders)} subfolders to migrate")

    for folder_id, folder_name in subfolders:
        try:
            await _set(session_factory, folder_id, display_name=folder_name)
            counts["subfolders"] += 1
        except SQLAlchemyError as e:
            counts["failed"] += 1
            logger.error(f"Error updating subfolder {folder_id}: {e}")

    logger.info(
        f"Migration complete: {counts['roots']} roots, {counts['subfolders']} subfolders, "
        f"{counts['failed']} failed"
    )
    return counts


async def main() -> int:
    logging.basicConfig(level=settings.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    engine = build_engine(settings.DATABASE_URL)
    session_factory = build_session_factory(engine)
    try:
        await migrate_display_names(session_factory, DatabaseIdentityProvider(session_factory))
    except SQLAlchemyError as e:
        logger.error(f"Migration failed: {e}")
        return 1
    finally:
        await engine.dispose()
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
