"""UserProfile model - principal details and the mutable public metadata bag."""
from sqlalchemy import String, JSON
from sqlalchemy.orm import Mapped, mapped_column
from app.models.base import Base, TimestampMixin


class UserProfile(Base, TimestampMixin):
    __tablename__ = "user_profiles"
    __mapper_args__ = {"eager_defaults": True}

    user_id: Mapped[str] = mapped_column(String(100), primary_key=True)
    first_name: Mapped[str] = mapped_column(String(255), default="")
    last_name: Mapped[str] = mapped_column(String(255), default="")
    # Caches e.g. {"root_folder": "<uuid>"}
    public_metadata: Mapped[dict] = mapped_column(JSON, default=dict)
