"""Schemas shared across routers."""
from app.schemas.base import CamelORMModel


class MessageResponse(CamelORMModel):
    """Plain acknowledgement, e.g. {"message": "deletion successful!"}."""
    message: str
