"""Share request/response schemas."""
from typing import Optional
from datetime import datetime
from pydantic import Field
from app.schemas.base import CamelModel, CamelORMModel


class ShareRequest(CamelModel):
    # Range checks (> 0, upper bound) happen in SharingService so they map to 400
    hours: Optional[float] = Field(None, allow_inf_nan=False)


class ShareResponse(CamelORMModel):
    message: str = "Successful"
    url: str
    expires_at: Optional[datetime] = None


class SharedFileResponse(ShareResponse):
    file_name: str
