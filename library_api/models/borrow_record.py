# library_api/models/borrow_record.py
from typing import Optional
from datetime import datetime

from beanie import Document, PydanticObjectId
from pydantic import BaseModel, Field, field_validator
from pymongo import IndexModel, ASCENDING, DESCENDING

from library_api.core.utils import utc_now, to_naive_utc
from .enum import BorrowStatus


# --- Reference schemas used when enriching records for display ---
class BookRefSimple(BaseModel):
    id: Optional[str] = None
    title: str
    author: str = ""


class UserRefSimple(BaseModel):
    id: Optional[str] = None
    username: str


class BorrowRecord(Document):
    """
    One lending event. `book_copy` holds the copy *code*, the durable binding to the physical
    copy; `book` points at the group's representative copy and is only used for display.
    """
    book: PydanticObjectId
    book_copy: str
    borrower_name: str
    borrow_date: datetime
    expected_return_date: datetime
    return_date: Optional[datetime] = None
    status: BorrowStatus = BorrowStatus.BORROWED
    comments: str = ""
    company: str
    borrowed_by: Optional[PydanticObjectId] = None
    returned_by: Optional[PydanticObjectId] = None

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    class Settings:
        name = "borrow_records"
        indexes = [
            IndexModel([("company", ASCENDING), ("borrow_date", DESCENDING)], name="borrow_company_date_index"),
            IndexModel([("book_copy", ASCENDING)], name="borrow_book_copy_index"),
            IndexModel([("status", ASCENDING)], name="borrow_status_index"),
            IndexModel([("borrower_name", ASCENDING)], name="borrow_borrower_name_index"),
        ]

    # --- Pydantic Schemas ---
    class Create(BaseModel):
        copy_id: str = Field(..., description="ObjectId of the physical copy to lend")
        book_id: Optional[str] = Field(None, description="Representative copy of the group, for display")
        borrower_name: str = Field(..., min_length=1, max_length=200)
        expected_return_date: datetime
        comments: str = ""

        @field_validator("borrower_name")
        @classmethod
        def strip_name(cls, value: str) -> str:
            value = value.strip()
            if not value:
                raise ValueError("borrower_name must not be blank")
            return value

        @field_validator("expected_return_date")
        @classmethod
        def naive_date(cls, value: datetime) -> datetime:
            return to_naive_utc(value)

    class Return(BaseModel):
        comments: Optional[str] = None

    # --- Response Schema ---
    class Response(BaseModel):
        id: str
        book: BookRefSimple
        book_copy: str
        borrower_name: str
        borrow_date: datetime
        expected_return_date: datetime
        return_date: Optional[datetime] = None
        status: BorrowStatus
        comments: str
        company: str
        borrowed_by: Optional[UserRefSimple] = None
        returned_by: Optional[UserRefSimple] = None
        created_at: datetime
        updated_at: datetime
