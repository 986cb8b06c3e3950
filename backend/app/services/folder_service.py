"""Folder hierarchy management.

Owns the per-principal folder tree: root provisioning, subfolder creation,
shallow and recursive reads, breadcrumb ancestry and recursive deletion.

Every folder has a ``.folder-info.txt`` marker object in the blob store so the
folder exists in the object namespace even while empty.

Root provisioning runs the existence check and the insert in one
transaction. The partial unique index on (owner_id) WHERE is_root is the
backstop: a request that loses the race gets RootFolderConflict and reads
the winner's row instead.
"""
import logging
import uuid
from datetime import datetime, timezone

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from app.models.file_record import FileRecord
from app.models.folder import Folder
from app.services.errors import (
    DatabaseError,
    DriveError,
    ExternalStoreError,
    NotFoundError,
    RootFolderConflict,
    describe,
)
from app.services.file_storage import BlobStore
from app.services.identity import ROOT_FOLDER_KEY, IdentityProvider, Principal

logger = logging.getLogger(__name__)

MARKER_NAME = ".folder-info.txt"
ROOT_INDEX_NAME = "uq_folders_one_root_per_owner"
UNIQUE_VIOLATION = "23505"


def as_uuid(value) -> uuid.UUID | None:
    """Coerce an id from a path, metadata or model into a UUID (None if malformed)."""
    if value is None or isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


def _is_root_conflict(exc: IntegrityError, dialect_name: str) -> bool:
    """True if the integrity error came from the one-root-per-owner index."""
    orig = exc.orig
    if dialect_name == "postgresql":
        sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
        if sqlstate != UNIQUE_VIOLATION:
            return False
        # asyncpg keeps the server error as __cause__, psycopg exposes diag
        driver_error = getattr(orig, "__cause__", None)
        constraint = getattr(driver_error, "constraint_name", None) or getattr(
            getattr(orig, "diag", None), "constraint_name", None
        )
        return constraint == ROOT_INDEX_NAME
    if dialect_name == "sqlite":
        errorname = getattr(orig, "sqlite_errorname", None)
        if errorname is not None and errorname != "SQLITE_CONSTRAINT_UNIQUE":
            return False
        # SQLite names the indexed columns, not the index
        message = str(orig).lower()
        return "unique" in message and "folders.owner_id" in message
    return False


def _with_children(stmt):
    return stmt.options(
        selectinload(Folder.files),
        selectinload(Folder.subfolders),
    ).execution_options(populate_existing=True)


def _file_summary(f: FileRecord) -> dict:
    return {
        "id": f.id,
        "file_name": f.file_name,
        "size": f.size,
        "created_at": f.created_at,
    }


def _ancestor_entry(folder: Folder) -> dict:
    return {
        "id": folder.id,
        "name": folder.name,
        "parent_id": folder.parent_folder_id,
    }


class FolderService:
    """Creates, reads and deletes folder trees."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        blob_store: BlobStore,
        identity: IdentityProvider,
        max_depth: int = 64,
    ):
        self.session_factory = session_factory
        self.blob_store = blob_store
        self.identity = identity
        self.max_depth = max_depth

    # ── Root provisioning ────────────────────────────────────────

    async def create_root_folder(self, principal: Principal) -> Folder:
        """Return the principal's root folder, creating it on first access.

        The returned folder has its files and subfolders loaded. As a side
        effect the principal's metadata caches the root folder id (a stale
        cached id is overwritten).
        """
        try:
            try:
                root = await self._find_or_create_root(principal)
            except RootFolderConflict:
                logger.warning(f"Root folder for {principal.id} created concurrently, re-reading")
                root = await self._find_root(principal.id)
                if root is None:
                    raise DatabaseError("Root folder should exist but was not found")
        except SQLAlchemyError as e:
            logger.error(f"Error creating root folder for {principal.id}: {e}")
            raise DatabaseError(describe("create root folder", e)) from e

        # An existing root with children was provisioned on an earlier call
        if not root.subfolders:
            await self._write_marker(root)

        if principal.root_folder_id != str(root.id):
            metadata = {**principal.public_metadata, ROOT_FOLDER_KEY: str(root.id)}
            await self.identity.update_metadata(principal.id, metadata)
            principal.public_metadata = metadata

        return root

    async def _find_or_create_root(self, principal: Principal) -> Folder:
        folder_name = f"root_{principal.id}"
        async with self.session_factory() as db:
            try:
                async with db.begin():
                    existing = await self._select_root(db, principal.id)
                    if existing is not None:
                        return existing
                    root = Folder(
                        folder_name=folder_name,
                        display_name=principal.full_name or None,
                        is_root=True,
                        owner_id=principal.id,
                        blob_path=folder_name,
                        blob_key=f"{folder_name}/{MARKER_NAME}",
                        subfolders=[],
                        files=[],
                    )
                    db.add(root)
                    await db.flush()
            except IntegrityError as e:
                if _is_root_conflict(e, db.bind.dialect.name):
                    raise RootFolderConflict(f"Root folder already exists for {principal.id}") from e
                raise
        logger.info(f"Created root folder {root.id} for {principal.id}")
        return root

    async def _select_root(self, db: AsyncSession, owner_id: str) -> Folder | None:
        result = await db.execute(
            _with_children(
                select(Folder).where(Folder.owner_id == owner_id, Folder.is_root.is_(True))
            )
        )
        return result.scalar_one_or_none()

    async def _find_root(self, owner_id: str) -> Folder | None:
        async with self.session_factory() as db:
            return await self._select_root(db, owner_id)

    async def _write_marker(self, folder: Folder) -> None:
        """Put the .folder-info.txt object that represents the folder in the blob store."""
        if not folder.blob_key:
            return
        created = datetime.now(timezone.utc).isoformat()
        body = f"#Folder: {folder.blob_path}\n# Folder ID {folder.id}\n Created {created}"
        await self.blob_store.put(
            folder.blob_key,
            body,
            content_type="text/plain",
            metadata={
                "folder-id": str(folder.id),
                "folder-name": folder.folder_name,
                "created-at": created,
                "folder-type": "root" if folder.is_root else "subfolder",
            },
        )

    # ── Reads ────────────────────────────────────────────────────

    async def get_folder(self, folder_id) -> Folder | None:
        """Fetch one folder with its direct files and subfolders."""
        folder_uuid = as_uuid(folder_id)
        if folder_uuid is None:
            return None
        try:
            async with self.session_factory() as db:
                return await self._load(db, folder_uuid)
        except SQLAlchemyError as e:
            raise DatabaseError(describe(f"get folder {folder_id}", e)) from e

    async def require_folder(self, folder_id) -> Folder:
        folder = await self.get_folder(folder_id)
        if folder is None:
            raise NotFoundError(f"Folder {folder_id} not found")
        return folder

    async def _load(self, db: AsyncSession, folder_id: uuid.UUID) -> Folder | None:
        result = await db.execute(_with_children(select(Folder).where(Folder.id == folder_id)))
        return result.scalar_one_or_none()

    async def find_child_by_name(self, parent_id, name: str) -> Folder | None:
        """Case-insensitive lookup of a direct subfolder by name."""
        try:
            async with self.session_factory() as db:
                result = await db.execute(
                    select(Folder)
                    .where(
                        Folder.parent_folder_id == as_uuid(parent_id),
                        func.lower(Folder.folder_name) == name.lower(),
                    )
                    .limit(1)
                )
                return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise DatabaseError(describe("look up subfolder", e)) from e

    async def get_folder_recursively(self, folder_id) -> dict | None:
        """Return the folder and all its descendants as a nested dict.

        Each node lists its direct files; ``subfolders`` holds child nodes.
        Levels beyond max_depth are logged and left out.
        """
        folder_uuid = as_uuid(folder_id)
        if folder_uuid is None:
            return None
        try:
            async with self.session_factory() as db:
                return await self._build_tree(db, folder_uuid, 0)
        except SQLAlchemyError as e:
            raise DatabaseError(describe(f"get folder tree {folder_id}", e)) from e

    async def _build_tree(self, db: AsyncSession, folder_id: uuid.UUID, depth: int) -> dict | None:
        folder = await self._load(db, folder_id)
        if folder is None:
            return None

        children = []
        if depth >= self.max_depth:
            logger.warning(f"Folder {folder_id} is deeper than {self.max_depth} levels, truncating tree")
        else:
            for sub in folder.subfolders:
                node = await self._build_tree(db, sub.id, depth + 1)
                if node is not None:
                    children.append(node)

        return {
            "id": folder.id,
            "folder_name": folder.folder_name,
            "display_name": folder.display_name,
            "is_root": folder.is_root,
            "parent_folder_id": folder.parent_folder_id,
            "shared": folder.shared,
            "expires_at": folder.expires_at,
            "created_at": folder.created_at,
            "updated_at": folder.updated_at,
            "files": [_file_summary(f) for f in folder.files],
            "subfolders": children,
        }

    async def get_ancestors(self, folder_id, principal: Principal) -> list[dict] | None:
        """Return the breadcrumb chain from the root down to `folder_id`.

        With no folder id, the chain is just the principal's root folder.
        """
        try:
            if not folder_id:
                root_id = principal.root_folder_id
                root = await self.get_folder(root_id) if root_id else await self._find_root(principal.id)
                if root is None:
                    return None
                return [_ancestor_entry(root)]

            folder_uuid = as_uuid(folder_id)
            if folder_uuid is None:
                return None
            async with self.session_factory() as db:
                current = await db.get(Folder, folder_uuid)
                if current is None:
                    return None

                ancestors = []
                seen: set[uuid.UUID] = set()
                while current is not None:
                    if current.id in seen or len(ancestors) > self.max_depth:
                        logger.warning(f"Stopped ancestor walk for folder {folder_id} at {current.id}")
                        break
                    seen.add(current.id)
                    ancestors.append(_ancestor_entry(current))
                    if current.parent_folder_id is None:
                        break
                    current = await db.get(Folder, current.parent_folder_id)

            ancestors.reverse()
            return ancestors
        except SQLAlchemyError as e:
            raise DatabaseError(describe(f"get ancestors of {folder_id}", e)) from e

    # ── Mutations ────────────────────────────────────────────────

    async def create_subfolder(
        self, parent_folder: Folder, name: str, root_folder: Folder, owner_id: str
    ) -> Folder:
        """Create `name` under `parent_folder`.

        Sibling name collisions are checked by the caller (find_child_by_name).
        """
        path = f"{root_folder.folder_name}/{name}"
        try:
            async with self.session_factory() as db:
                folder = Folder(
                    folder_name=name,
                    display_name=name,
                    is_root=False,
                    owner_id=owner_id,
                    parent_folder_id=parent_folder.id,
                    blob_path=path,
                    blob_key=f"{path}/{MARKER_NAME}",
                    subfolders=[],
                    files=[],
                )
                db.add(folder)
                await db.commit()
        except SQLAlchemyError as e:
            logger.error(f"Error creating subfolder {name!r}: {e}")
            raise DatabaseError(describe(f"create subfolder {name}", e)) from e

        await self._write_marker(folder)
        logger.info(f"Created folder {folder.id} under {parent_folder.id}")
        return folder

    async def delete_folder_recursively(self, folder_id) -> None:
        """Delete a folder, its subfolders and all their files.

        Best effort: a failure on one file or subfolder is logged and the
        rest of the tree is still processed. Rows are deleted after their
        blobs, children before parents. Rows left behind by a failure go with
        their folder through the ON DELETE CASCADE foreign keys; only the
        unreachable blob remains.
        """
        folder_uuid = as_uuid(folder_id)
        if folder_uuid is None or await self.get_folder(folder_uuid) is None:
            raise NotFoundError(f"Folder {folder_id} not found")
        try:
            await self._delete_tree(folder_uuid, 0)
        except SQLAlchemyError as e:
            logger.error(f"Error deleting folder {folder_id}: {e}")
            raise DatabaseError(describe(f"delete folder {folder_id}", e)) from e

    async def _delete_tree(self, folder_id: uuid.UUID, depth: int) -> None:
        if depth > self.max_depth:
            raise DriveError(f"Folder {folder_id} is deeper than {self.max_depth} levels")

        folder = await self.get_folder(folder_id)
        if folder is None:
            logger.warning(f"Folder {folder_id} disappeared during deletion")
            return

        for f in folder.files:
            try:
                if f.blob_key:
                    await self.blob_store.delete(f.blob_key)
                await self._delete_row(FileRecord, f.id)
            except (ExternalStoreError, SQLAlchemyError) as e:
                logger.error(f"Error deleting file {f.file_name} ({f.id}): {e}")

        for child in folder.subfolders:
            try:
                await self._delete_tree(child.id, depth + 1)
            except (DriveError, SQLAlchemyError) as e:
                logger.error(f"Error deleting folder {child.id}: {e}")

        if folder.blob_key:
            try:
                await self.blob_store.delete(folder.blob_key)
            except ExternalStoreError as e:
                # Orphaned marker objects are tolerated
                logger.error(f"Error deleting marker for folder {folder.id}: {e}")
        await self._delete_row(Folder, folder.id)

    async def _delete_row(self, model, row_id: uuid.UUID) -> None:
        async with self.session_factory() as db:
            await db.execute(delete(model).where(model.id == row_id))
            await db.commit()
