"""Identity provider: authenticated principals and their metadata bag.

Authentication itself happens upstream (the auth proxy in front of the API
forwards the user id). This module only knows who the principal is and keeps
the small public metadata dict the folder service uses to cache the root
folder id.
"""
import logging
from dataclasses import dataclass, field

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.models.user_profile import UserProfile
from app.services.errors import DatabaseError, NotFoundError, describe

logger = logging.getLogger(__name__)

ROOT_FOLDER_KEY = "root_folder"


@dataclass
class Principal:
    id: str
    first_name: str = ""
    last_name: str = ""
    public_metadata: dict = field(default_factory=dict)

    @property
    def full_name(self) -> str:
        return f"{self.first_name}{self.last_name}"

    @property
    def root_folder_id(self) -> str | None:
        return self.public_metadata.get(ROOT_FOLDER_KEY)


class IdentityProvider:
    """Interface to the identity backend."""

    async def get_principal(self, user_id: str) -> Principal | None:
        raise NotImplementedError

    async def ensure_principal(self, user_id: str, first_name: str = "",
                               last_name: str = "") -> Principal:
        raise NotImplementedError

    async def update_metadata(self, user_id: str, metadata: dict) -> Principal:
        """Replace the principal's public metadata."""
        raise NotImplementedError


def _to_principal(profile: UserProfile) -> Principal:
    return Principal(
        id=profile.user_id,
        first_name=profile.first_name or "",
        last_name=profile.last_name or "",
        public_metadata=dict(profile.public_metadata or {}),
    )


class DatabaseIdentityProvider(IdentityProvider):
    """Keeps principal profiles in the user_profiles table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def get_principal(self, user_id):
        try:
            async with self.session_factory() as db:
                profile = await db.get(UserProfile, user_id)
                return _to_principal(profile) if profile else None
        except SQLAlchemyError as e:
            raise DatabaseError(describe("load principal", e)) from e

    async def ensure_principal(self, user_id, first_name="", last_name=""):
        try:
            async with self.session_factory() as db:
                profile = await db.get(UserProfile, user_id)
                if profile is None:
                    profile = UserProfile(
                        user_id=user_id,
                        first_name=first_name,
                        last_name=last_name,
                        public_metadata={},
                    )
                    db.add(profile)
                    try:
                        await db.commit()
                        logger.info(f"Registered principal {user_id}")
                    except IntegrityError:
                        # Registered concurrently by another request
                        await db.rollback()
                        profile = await db.get(UserProfile, user_id)
                return _to_principal(profile)
        except SQLAlchemyError as e:
            raise DatabaseError(describe("register principal", e)) from e

    async def update_metadata(self, user_id, metadata):
        try:
            async with self.session_factory() as db:
                profile = await db.get(UserProfile, user_id)
                if profile is None:
                    raise NotFoundError(f"Principal {user_id} not found")
                # Reassign so the JSON column is flagged dirty
                profile.public_metadata = dict(metadata)
                await db.commit()
                return _to_principal(profile)
        except SQLAlchemyError as e:
            raise DatabaseError(describe("update principal metadata", e)) from e
