# library_api/core/lending.py
"""
Borrow/return state machine.

A copy moves available -> borrowed -> available. `overdue` only ever appears on the
BorrowRecord: it is derived on read by `derive_status` and written back as a cache
refresh, never by a background job.
"""
import logging
import re
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from beanie import PydanticObjectId
from beanie.operators import In

from library_api.core.errors import ConflictError, NotFoundError, ValidationError
from library_api.core.inventory import get_book_or_404
from library_api.core.utils import parse_object_id, utc_now, to_naive_utc
from library_api.models.book import Book
from library_api.models.borrow_record import BorrowRecord, BookRefSimple, UserRefSimple
from library_api.models.enum import BorrowStatus, CopyStatus, OPEN_BORROW_STATUSES
from library_api.models.user import User

logger = logging.getLogger(__name__)

UNKNOWN_BOOK_TITLE = "Unknown book"
UNKNOWN_USER_NAME = "Unknown user"


def derive_status(record: BorrowRecord, now: datetime) -> BorrowStatus:
    """Status the record should report at `now`: borrowed records past due read as overdue."""
    if record.status == BorrowStatus.BORROWED and to_naive_utc(record.expected_return_date) < to_naive_utc(now):
        return BorrowStatus.OVERDUE
    return record.status


async def refresh_overdue(records: Iterable[BorrowRecord], now: Optional[datetime] = None) -> List[BorrowRecord]:
    """
    Relabel past-due records as overdue. The write-back is a cache refresh: if it fails the
    caller still gets the derived status.
    """
    now = now or utc_now()
    refreshed = []
    for record in records:
        derived = derive_status(record, now)
        if derived != record.status:
            record.status = derived
            record.updated_at = now
            try:
                await BorrowRecord.find_one(BorrowRecord.id == record.id).update(
                    {"$set": {"status": derived.value, "updated_at": now}}
                )
                logger.info(f"Borrow record {record.id} (copy {record.book_copy}) marked {derived.value}.")
            except Exception as e:
                logger.warning(f"Could not persist {derived.value} status for borrow record {record.id}: {e}")
        refreshed.append(record)
    return refreshed


async def get_record_or_404(record_id: str) -> BorrowRecord:
    oid = parse_object_id(record_id, "borrow record ID")
    record = await BorrowRecord.get(oid)
    if not record:
        raise NotFoundError(f"Borrow record with ID '{record_id}' not found.")
    return record


# --- Transitions ---

async def borrow(
    principal: User,
    copy_id: str,
    borrower_name: str,
    expected_return_date: datetime,
    comments: str = "",
    book_id: Optional[str] = None,
) -> BorrowRecord:
    """Lend one available copy. The copy is flipped with a conditional update, then the record is written."""
    copy = await get_book_or_404(copy_id)
    if copy.company != principal.company:
        logger.warning(f"User '{principal.username}' ('{principal.company}') tried to borrow copy {copy.code} of '{copy.company}'.")
        raise NotFoundError(f"Book with ID '{copy_id}' not found.")
    if copy.status != CopyStatus.AVAILABLE:
        raise ConflictError("Book copy is not available.")

    book_ref = copy.id
    if book_id and book_id != copy_id:
        representative = await get_book_or_404(book_id)
        if representative.group_id != copy.group_id:
            raise ValidationError("book_id must reference a copy of the same book as copy_id.")
        book_ref = representative.id

    now = utc_now()
    result = await Book.get_motor_collection().update_one(
        {"_id": copy.id, "status": CopyStatus.AVAILABLE.value},
        {"$set": {"status": CopyStatus.BORROWED.value, "updated_at": now}},
    )
    if result.modified_count == 0:
        logger.warning(f"Copy {copy.code} was borrowed concurrently; rejecting request.")
        raise ConflictError("Book copy is not available.")

    record = BorrowRecord(
        book=book_ref,
        book_copy=copy.code,
        borrower_name=borrower_name,
        borrow_date=now,
        expected_return_date=to_naive_utc(expected_return_date),
        status=BorrowStatus.BORROWED,
        comments=comments or "",
        company=principal.company,
        borrowed_by=principal.id,
        created_at=now,
        updated_at=now,
    )
    await record.insert()
    logger.info(f"Copy {copy.code} borrowed by '{borrower_name}' (record {record.id}, user '{principal.username}').")
    return record


async def return_record(principal: User, record_id: str, comments: Optional[str] = None) -> BorrowRecord:
    """
    Close a borrow record and free its copy. The copy is looked up by code; if it no longer
    exists only the record is updated. Returning an already returned record re-stamps it
    but leaves the copy alone, since a newer record may hold it.
    """
    record = await get_record_or_404(record_id)
    if record.company != principal.company:
        raise NotFoundError(f"Borrow record with ID '{record_id}' not found.")
    now = utc_now()

    if record.status in OPEN_BORROW_STATUSES:
        copy_update = await Book.get_motor_collection().update_one(
            {"code": record.book_copy},
            {"$set": {"status": CopyStatus.AVAILABLE.value, "updated_at": now}},
        )
        if copy_update.matched_count == 0:
            logger.warning(f"Copy {record.book_copy} for borrow record {record.id} no longer exists; record closed anyway.")
    else:
        logger.info(f"Borrow record {record.id} was already returned; re-stamping without touching copy {record.book_copy}.")

    record.return_date = now
    record.status = BorrowStatus.RETURNED
    record.comments = comments or record.comments
    record.returned_by = principal.id
    record.updated_at = now
    await record.save()
    logger.info(f"Borrow record {record.id} returned (copy {record.book_copy}, user '{principal.username}').")
    return record


# --- Queries ---

async def _users_by_id(ids: Iterable[Optional[PydanticObjectId]]) -> Dict[Any, User]:
    wanted = list({oid for oid in ids if oid is not None})
    if not wanted:
        return {}
    return {user.id: user for user in await User.find(In(User.id, wanted)).to_list()}


async def _books_by_id(ids: Iterable[PydanticObjectId]) -> Dict[Any, Book]:
    wanted = list(set(ids))
    if not wanted:
        return {}
    return {book.id: book for book in await Book.find(In(Book.id, wanted)).to_list()}


def _user_ref(user_id: Optional[PydanticObjectId], users: Dict[Any, User]) -> Optional[UserRefSimple]:
    if user_id is None:
        return None
    user = users.get(user_id)
    return UserRefSimple(id=str(user_id), username=user.username if user else UNKNOWN_USER_NAME)


async def enrich(records: List[BorrowRecord]) -> List[BorrowRecord.Response]:
    """Attach book title/author and borrower/returner usernames, with placeholders for dangling references."""
    books = await _books_by_id(record.book for record in records)
    users = await _users_by_id(
        [record.borrowed_by for record in records] + [record.returned_by for record in records]
    )

    responses = []
    for record in records:
        book = books.get(record.book)
        book_ref = (
            BookRefSimple(id=str(book.id), title=book.title, author=book.author)
            if book else BookRefSimple(id=str(record.book), title=UNKNOWN_BOOK_TITLE)
        )
        data = record.model_dump(exclude={"id", "revision_id", "book", "borrowed_by", "returned_by"})
        responses.append(BorrowRecord.Response(
            **data,
            id=str(record.id),
            book=book_ref,
            borrowed_by=_user_ref(record.borrowed_by, users),
            returned_by=_user_ref(record.returned_by, users),
        ))
    return responses


async def history(
    company: str,
    search: Optional[str] = None,
    status: Optional[str] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
) -> List[BorrowRecord.Response]:
    """Tenant's borrow records, newest first, with overdue status derived at read time."""
    query: Dict[str, Any] = {"company": company}
    if search and search.strip():
        pattern = re.escape(search.strip())
        query["$or"] = [
            {"borrower_name": {"$regex": pattern, "$options": "i"}},
            {"book_copy": {"$regex": pattern, "$options": "i"}},
        ]

    wanted_status: Optional[BorrowStatus] = None
    if status and status != "all":
        try:
            wanted_status = BorrowStatus(status)
        except ValueError:
            raise ValidationError(f"Unknown status '{status}'.")
        # Borrowed records may turn overdue on this read, so fetch both and filter after deriving.
        if wanted_status in OPEN_BORROW_STATUSES:
            query["status"] = {"$in": [s.value for s in OPEN_BORROW_STATUSES]}
        else:
            query["status"] = wanted_status.value

    date_range: Dict[str, datetime] = {}
    if start_date:
        date_range["$gte"] = to_naive_utc(start_date)
    if end_date:
        date_range["$lte"] = to_naive_utc(end_date)
    if date_range:
        query["borrow_date"] = date_range

    records = await BorrowRecord.find(query).sort(-BorrowRecord.borrow_date).to_list()
    records = await refresh_overdue(records)
    if wanted_status is not None:
        records = [record for record in records if record.status == wanted_status]
    return await enrich(records)


async def active_borrows(company: str) -> List[BorrowRecord.Response]:
    """Open records (borrowed or overdue) for the tenant, newest first."""
    records = await BorrowRecord.find(
        BorrowRecord.company == company,
        In(BorrowRecord.status, [s.value for s in OPEN_BORROW_STATUSES]),
    ).sort(-BorrowRecord.borrow_date).to_list()
    records = await refresh_overdue(records)
    return await enrich(records)


async def borrower_names(company: str) -> List[str]:
    names = await BorrowRecord.distinct("borrower_name", {"company": company})
    return sorted(name for name in names if name)
