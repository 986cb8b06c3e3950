"""FileRecord model - file metadata (actual bytes live in the blob store)."""
import uuid
from datetime import datetime
from typing import Optional
from sqlalchemy import String, BigInteger, Boolean, ForeignKey, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship
from app.models.base import Base, OwnerMixin, UtcDateTime


class FileRecord(Base, OwnerMixin):
    __tablename__ = "files"
    __mapper_args__ = {"eager_defaults": True}

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    file_name: Mapped[str] = mapped_column(String(500), nullable=False)
    mime_type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    size: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    parent_folder_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("folders.id", ondelete="CASCADE"), nullable=True, index=True
    )
    blob_key: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    shared: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    expires_at: Mapped[datetime | None] = mapped_column(UtcDateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UtcDateTime, server_default=func.now())

    folder: Mapped[Optional["Folder"]] = relationship(back_populates="files")
