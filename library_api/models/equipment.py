# library_api/models/equipment.py
from typing import Optional
from datetime import datetime

from beanie import Document
from pydantic import BaseModel, Field
from pymongo import IndexModel, ASCENDING

from library_api.core.utils import utc_now


class Equipment(Document):
    """Stand-alone equipment record. No grouping, no lending."""
    code: str
    description: str = Field(..., max_length=500)
    status: str = "available"
    observations: str = ""

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    class Settings:
        name = "equipment"
        indexes = [
            IndexModel([("code", ASCENDING)], name="equipment_code_unique_index", unique=True),
        ]

    class Create(BaseModel):
        code: Optional[str] = Field(None, min_length=1, description="Generated when omitted")
        description: str = Field(..., min_length=1, max_length=500)
        status: str = "available"
        observations: str = ""

    class Update(BaseModel):
        description: Optional[str] = Field(None, min_length=1, max_length=500)
        status: Optional[str] = None
        observations: Optional[str] = None

    class Response(BaseModel):
        id: str
        code: str
        description: str
        status: str
        observations: str
        created_at: datetime
        updated_at: datetime
