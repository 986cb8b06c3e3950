"""Import all models so SQLAlchemy metadata knows about them."""
from app.models.base import Base
from app.models.folder import Folder
from app.models.file_record import FileRecord
from app.models.user_profile import UserProfile

__all__ = [
    "Base",
    "Folder", "FileRecord", "UserProfile",
]
