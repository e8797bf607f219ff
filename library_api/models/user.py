# library_api/models/user.py
from typing import Optional
from datetime import datetime

from beanie import Document
from pydantic import BaseModel, Field, EmailStr
from pymongo import IndexModel, ASCENDING

from library_api.core.utils import utc_now


class User(Document):
    """Account issuing the lending principal: every lending query is scoped to `company`."""
    username: str
    email: Optional[EmailStr] = None
    full_name: Optional[str] = None
    hashed_password: str
    company: str
    disabled: bool = Field(default=False)

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    class Settings:
        name = "users"
        indexes = [
            IndexModel([("username", ASCENDING)], name="username_unique_index", unique=True),
            IndexModel(
                [("email", ASCENDING)],
                name="email_unique_index",
                unique=True,
                partialFilterExpression={"email": {"$type": "string"}},
            ),
            IndexModel([("company", ASCENDING)], name="user_company_index"),
        ]

    # --- Pydantic Schemas ---
    class Create(BaseModel):
        username: str = Field(..., min_length=1, max_length=100)
        email: Optional[EmailStr] = None
        full_name: Optional[str] = None
        password: str = Field(..., min_length=6)
        company: str = Field(..., min_length=1)

    class Response(BaseModel):
        id: str
        username: str
        email: Optional[EmailStr] = None
        full_name: Optional[str] = None
        company: str
        disabled: bool
        created_at: datetime


class Token(BaseModel):
    access_token: str
    token_type: str
