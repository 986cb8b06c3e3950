"""Folder model - one node of a principal's folder tree.

Each principal owns exactly one root folder (enforced by a partial unique
index). Every other folder hangs off a parent via parent_folder_id.
Sharing state lives on the row: shared, share_token, expires_at.
"""
import uuid
from datetime import datetime
from typing import Optional
from sqlalchemy import String, Boolean, ForeignKey, Index, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column, relationship
from app.models.base import Base, OwnerMixin, TimestampMixin, UtcDateTime


class Folder(Base, TimestampMixin, OwnerMixin):
    __tablename__ = "folders"
    __mapper_args__ = {"eager_defaults": True}

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    folder_name: Mapped[str] = mapped_column(String(255), nullable=False)
    display_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    is_root: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    parent_folder_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("folders.id", ondelete="CASCADE"), nullable=True, index=True
    )

    # Blob store addressing: prefix for the folder and its .folder-info marker key
    blob_path: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    blob_key: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    shared: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    share_token: Mapped[str | None] = mapped_column(String(100), nullable=True, unique=True)
    expires_at: Mapped[datetime | None] = mapped_column(UtcDateTime, nullable=True)

    parent: Mapped[Optional["Folder"]] = relationship(
        back_populates="subfolders", remote_side="Folder.id"
    )
    subfolders: Mapped[list["Folder"]] = relationship(
        back_populates="parent", order_by="Folder.created_at", passive_deletes=True
    )
    files: Mapped[list["FileRecord"]] = relationship(
        back_populates="folder", order_by="FileRecord.created_at", passive_deletes=True
    )

    __table_args__ = (
        Index(
            "uq_folders_one_root_per_owner",
            "owner_id",
            unique=True,
            postgresql_where=text("is_root"),
            sqlite_where=text("is_root = 1"),
        ),
    )

    @property
    def name(self) -> str:
        """Name shown to users: display_name, falling back to folder_name."""
        return self.display_name or self.folder_name
