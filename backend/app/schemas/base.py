"""Base schema classes.

API JSON is camelCase; Python attributes stay snake_case. Request bodies
derive from CamelModel, anything read off an ORM row from CamelORMModel.
"""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Request body. Accepts camelCase or snake_case keys."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )


class CamelORMModel(BaseModel):
    """Response body built from SQLAlchemy objects or plain dicts."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class ShareStateModel(CamelORMModel):
    """Sharing columns common to folders and files."""
    shared: bool = False
    expires_at: Optional[datetime] = None
