"""Pydantic schemas for request/response validation."""
from pydantic import BaseModel
from typing import Optional


class StorageIn(BaseModel):
    """Storage creation request."""
    id: str


class StorageOut(BaseModel):
    """Storage output schema."""
    id: str
    size: int  # Number of indexed images


class ErrorOut(BaseModel):
    """Error response body."""
    error: str  # Error class name, e.g. "ImageNotFound"
    detail: str
    storage: Optional[str] = None
    image_id: Optional[int] = None
