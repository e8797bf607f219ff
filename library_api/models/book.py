# library_api/models/book.py
from typing import List, Optional
from datetime import datetime

from beanie import Document
from pydantic import BaseModel, Field, field_validator
from pymongo import IndexModel, ASCENDING

from library_api.core.utils import utc_now, to_naive_utc
from .enum import Condition, CopyStatus, CoverType

# Metadata every copy of a group carries identically.
SHARED_FIELDS = ("title", "author", "editorial", "edition", "categories", "cover_type", "image_url")
# Metadata that belongs to one physical copy only.
COPY_FIELDS = ("location", "cost", "condition", "observations", "invoice_code", "date_acquired")


def normalize_cost(value: Optional[float]) -> Optional[float]:
    if value is None:
        return value
    return round(float(value), 2)


def normalize_categories(value: Optional[List[str]]) -> Optional[List[str]]:
    if value is None:
        return value
    seen: List[str] = []
    for category in value:
        category = category.strip()
        if category and category not in seen:
            seen.append(category)
    return seen


class Book(Document):
    """
    One physical copy. Copies of the same title share `group_id` and duplicate the
    shared metadata; `copies_count` caches the live size of the group.
    """
    code: str
    group_id: str

    title: str
    author: str
    editorial: str = ""
    edition: str = ""
    categories: List[str] = Field(default_factory=list)
    cover_type: CoverType
    image_url: str = ""

    location: str = ""
    cost: float = Field(..., ge=0)
    date_acquired: datetime = Field(default_factory=utc_now)
    condition: Condition
    observations: str = ""
    invoice_code: str = ""
    status: CopyStatus = CopyStatus.AVAILABLE
    company: str

    copies_count: int = Field(default=1, ge=0)

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    class Settings:
        name = "books"
        indexes = [
            IndexModel([("code", ASCENDING)], name="book_code_unique_index", unique=True),
            IndexModel([("group_id", ASCENDING)], name="book_group_index"),
            IndexModel([("company", ASCENDING)], name="book_company_index"),
            IndexModel([("title", ASCENDING)], name="book_title_index"),
            IndexModel([("categories", ASCENDING)], name="book_categories_index"),
        ]

    # --- Pydantic Schemas ---
    class Create(BaseModel):
        """Payload for a brand new group (its first copy)."""
        title: str = Field(..., min_length=1, max_length=300)
        author: str = Field(..., min_length=1, max_length=200)
        editorial: str = ""
        edition: str = ""
        categories: List[str] = Field(default_factory=list)
        cover_type: CoverType
        image_url: str = ""
        location: str = ""
        cost: float = Field(..., ge=0)
        date_acquired: Optional[datetime] = None
        condition: Condition
        observations: str = ""
        invoice_code: str = ""
        company: str = Field(..., min_length=1)

        @field_validator("cost")
        @classmethod
        def round_cost(cls, value):
            return normalize_cost(value)

        @field_validator("categories")
        @classmethod
        def clean_categories(cls, value):
            return normalize_categories(value)

        @field_validator("date_acquired")
        @classmethod
        def naive_date(cls, value):
            return to_naive_utc(value)

    class CopyCreate(BaseModel):
        """Overrides for a new copy; anything left unset is inherited from the source copy."""
        location: Optional[str] = None
        cost: Optional[float] = Field(None, ge=0)
        condition: Optional[Condition] = None
        categories: Optional[List[str]] = None
        cover_type: Optional[CoverType] = None
        observations: Optional[str] = None
        image_url: Optional[str] = None
        invoice_code: Optional[str] = None
        company: Optional[str] = Field(None, min_length=1)

        @field_validator("cost")
        @classmethod
        def round_cost(cls, value):
            return normalize_cost(value)

        @field_validator("categories")
        @classmethod
        def clean_categories(cls, value):
            return normalize_categories(value)

    class GeneralUpdate(BaseModel):
        title: Optional[str] = Field(None, min_length=1, max_length=300)
        author: Optional[str] = Field(None, min_length=1, max_length=200)
        editorial: Optional[str] = None
        edition: Optional[str] = None
        categories: Optional[List[str]] = None
        cover_type: Optional[CoverType] = None
        image_url: Optional[str] = None

        @field_validator("categories")
        @classmethod
        def clean_categories(cls, value):
            return normalize_categories(value)

    class CopyUpdate(BaseModel):
        location: Optional[str] = None
        cost: Optional[float] = Field(None, ge=0)
        condition: Optional[Condition] = None
        observations: Optional[str] = None
        invoice_code: Optional[str] = None
        date_acquired: Optional[datetime] = None

        @field_validator("cost")
        @classmethod
        def round_cost(cls, value):
            return normalize_cost(value)

        @field_validator("date_acquired")
        @classmethod
        def naive_date(cls, value):
            return to_naive_utc(value)

    class Update(GeneralUpdate, CopyUpdate):
        """Mixed patch: shared fields go to the whole group, the rest stays on the copy."""

    class DecreaseCopy(BaseModel):
        copy_id: Optional[str] = None

    # --- Response Schemas ---
    class Response(BaseModel):
        id: str
        code: str
        group_id: str
        title: str
        author: str
        editorial: str
        edition: str
        categories: List[str]
        cover_type: CoverType
        image_url: str
        location: str
        cost: float
        date_acquired: datetime
        condition: Condition
        observations: str
        invoice_code: str
        status: CopyStatus
        company: str
        copies_count: int
        created_at: datetime
        updated_at: datetime

    class GroupResponse(Response):
        copies: List["Book.Response"]

    class AvailableCopy(BaseModel):
        id: str
        code: str
        condition: Condition

    class SearchResult(BaseModel):
        id: str
        group_id: str
        code: str
        title: str
        author: str
        editorial: str
        edition: str
        categories: List[str]
        cover_type: CoverType
        image_url: str
        company: str
        available_copies: List["Book.AvailableCopy"]

    class PageResponse(BaseModel):
        books: List["Book.Response"]
        current_page: int
        total_pages: int
        total_books: int

    class RemovalResponse(BaseModel):
        message: str
        deleted: bool
        group_id: str
        copies_count: int

    def to_response(self, **overrides) -> "Book.Response":
        data = self.model_dump(exclude={"id", "revision_id"})
        data["id"] = str(self.id)
        data.update(overrides)
        return Book.Response.model_validate(data)


Book.GroupResponse.model_rebuild()
Book.SearchResult.model_rebuild()
Book.PageResponse.model_rebuild()
