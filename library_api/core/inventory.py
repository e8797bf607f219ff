# library_api/core/inventory.py
"""
Copy-group inventory.

A logical title is a *group*: N `Book` documents (one per physical copy) sharing a
`group_id` and duplicating the shared metadata. Every write that touches more than
one member of a group goes through `propagate_to_group`; the cached `copies_count`
is always rewritten from a live count by `recompute_copies_count`.
"""
import logging
import math
import re
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

from beanie.operators import In
from pydantic import BaseModel

from library_api.core.config import BOOKS_PAGE_SIZE, SEARCH_LIMIT
from library_api.core.errors import NotFoundError, ValidationError
from library_api.core.utils import generate_unique_code, new_group_id, parse_object_id, utc_now
from library_api.models.book import Book, COPY_FIELDS, SHARED_FIELDS
from library_api.models.enum import CopyStatus

logger = logging.getLogger(__name__)

BOOK_CODE_PREFIX = "BOOK"
TEXT_SEARCH_FIELDS = ("title", "author", "code")

# Fields a new copy never inherits from its source copy.
_NOT_INHERITED = {"id", "revision_id", "code", "status", "date_acquired", "copies_count", "created_at", "updated_at"}


def _patch_fields(patch: BaseModel) -> Dict[str, Any]:
    fields = patch.model_dump(exclude_unset=True, exclude_none=True)
    return {key: (value.value if isinstance(value, Enum) else value) for key, value in fields.items()}


def _text_filter(term: str) -> Dict[str, Any]:
    pattern = re.escape(term)
    return {"$or": [{field: {"$regex": pattern, "$options": "i"}} for field in TEXT_SEARCH_FIELDS]}


def _group_pipeline() -> List[Dict[str, Any]]:
    """Collapse matched copies to one row per group: first matched copy is the representative."""
    return [
        {"$group": {
            "_id": "$group_id",
            "book_id": {"$first": "$_id"},
            "title": {"$first": "$title"},
            "copies_count": {"$sum": 1},
        }},
        {"$sort": {"title": 1, "_id": 1}},
    ]


async def _representatives(groups: List[Dict[str, Any]]) -> Dict[Any, Book]:
    ids = [group["book_id"] for group in groups]
    if not ids:
        return {}
    docs = await Book.find(In(Book.id, ids)).to_list()
    return {doc.id: doc for doc in docs}


async def get_book_or_404(book_id: str) -> Book:
    oid = parse_object_id(book_id, "book ID")
    book = await Book.get(oid)
    if not book:
        logger.info(f"Book lookup failed for ID '{book_id}'.")
        raise NotFoundError(f"Book with ID '{book_id}' not found.")
    return book


# --- Group fan-out ---

async def propagate_to_group(group_id: str, fields: Dict[str, Any]) -> None:
    """Write `fields` onto every copy of the group."""
    await Book.find(Book.group_id == group_id).update({"$set": {**fields, "updated_at": utc_now()}})


async def recompute_copies_count(group_id: str) -> int:
    count = await Book.find(Book.group_id == group_id).count()
    if count:
        await propagate_to_group(group_id, {"copies_count": count})
    logger.debug(f"Group {group_id}: copies_count recomputed to {count}")
    return count


def group_view(representative: Book, copies: List[Book]) -> Book.GroupResponse:
    count = len(copies)
    data = representative.to_response(copies_count=count).model_dump()
    data["copies"] = [copy.to_response(copies_count=count) for copy in copies]
    return Book.GroupResponse.model_validate(data)


# --- Create ---

async def create_group(data: Book.Create) -> Book:
    """Create the first copy of a new title under a fresh group id."""
    book = Book(
        **data.model_dump(exclude_none=True),
        code=await generate_unique_code(Book, BOOK_CODE_PREFIX),
        group_id=new_group_id(),
        status=CopyStatus.AVAILABLE,
        copies_count=1,
    )
    await book.insert()
    logger.info(f"Group {book.group_id} created with copy {book.code} ('{book.title}', company '{book.company}').")
    return book


async def add_copy(source_id: str, overrides: Book.CopyCreate) -> Book:
    """Add a copy to the source copy's group, inheriting every field not overridden."""
    source = await get_book_or_404(source_id)

    data = source.model_dump(exclude=_NOT_INHERITED)
    data.update(overrides.model_dump(exclude_unset=True, exclude_none=True))

    new_copy = Book(
        **data,
        code=await generate_unique_code(Book, BOOK_CODE_PREFIX),
        status=CopyStatus.AVAILABLE,
        date_acquired=utc_now(),
    )
    await new_copy.insert()
    new_copy.copies_count = await recompute_copies_count(source.group_id)
    logger.info(f"Copy {new_copy.code} added to group {source.group_id} (now {new_copy.copies_count} copies).")
    return new_copy


# --- Remove ---

async def _remove(target: Book) -> Book.RemovalResponse:
    group_id = target.group_id
    group_size = await Book.find(Book.group_id == group_id).count()

    if group_size <= 1:
        await Book.find(Book.group_id == group_id).delete()
        logger.info(f"Last copy {target.code} removed; group {group_id} deleted.")
        return Book.RemovalResponse(
            message="Last copy removed, book deleted", deleted=True, group_id=group_id, copies_count=0
        )

    await target.delete()
    remaining = await recompute_copies_count(group_id)
    logger.info(f"Copy {target.code} removed from group {group_id} ({remaining} left).")
    return Book.RemovalResponse(
        message="Copy removed", deleted=remaining == 0, group_id=group_id, copies_count=remaining
    )


async def remove_copy(copy_id: str) -> Book.RemovalResponse:
    target = await get_book_or_404(copy_id)
    return await _remove(target)


async def decrease_copy(
    representative_id: str, copy_id: Optional[str] = None
) -> Union[Book.GroupResponse, Book.RemovalResponse]:
    """
    Remove one copy from the representative's group: `copy_id` when given (it must belong
    to the same group), otherwise the representative itself.
    """
    representative = await get_book_or_404(representative_id)
    target = representative
    if copy_id and copy_id != representative_id:
        target = await get_book_or_404(copy_id)
        if target.group_id != representative.group_id:
            raise NotFoundError(f"Copy '{copy_id}' not found in group '{representative.group_id}'.")

    result = await _remove(target)
    if result.deleted:
        return result
    return await get_group_by_group_id(representative.group_id)


# --- Read ---

async def get_group(representative_id: str) -> Book.GroupResponse:
    representative = await get_book_or_404(representative_id)
    copies = await Book.find(Book.group_id == representative.group_id).to_list()
    return group_view(representative, copies)


async def get_group_by_group_id(group_id: str) -> Book.GroupResponse:
    copies = await Book.find(Book.group_id == group_id).to_list()
    if not copies:
        raise NotFoundError(f"Book group '{group_id}' not found.")
    return group_view(copies[0], copies)


async def list_groups(
    company: Optional[str],
    page: int = 1,
    search: Optional[str] = None,
    categories: Optional[List[str]] = None,
    page_size: int = BOOKS_PAGE_SIZE,
) -> Book.PageResponse:
    """One entry per group matching the filters, sorted by title, `page_size` per page."""
    if not company or not company.strip():
        raise ValidationError("Company is required.")
    if page < 1:
        raise ValidationError("Page must be 1 or greater.")

    query: Dict[str, Any] = {"company": company.strip()}
    if search and search.strip():
        query.update(_text_filter(search.strip()))
    if categories:
        query["categories"] = {"$in": categories}

    total_books = len(await Book.distinct("group_id", query))
    pipeline = _group_pipeline() + [{"$skip": (page - 1) * page_size}, {"$limit": page_size}]
    groups = await Book.find(query).aggregate(pipeline).to_list()
    representatives = await _representatives(groups)

    books = [
        representatives[group["book_id"]].to_response(copies_count=group["copies_count"])
        for group in groups
        if group["book_id"] in representatives
    ]
    return Book.PageResponse(
        books=books,
        current_page=page,
        total_pages=math.ceil(total_books / page_size) if total_books else 0,
        total_books=total_books,
    )


async def search(q: Optional[str], company: Optional[str] = None, limit: int = SEARCH_LIMIT) -> List[Book.SearchResult]:
    """Substring search returning up to `limit` groups, each with its currently available copies."""
    if not q or not q.strip():
        return []

    company = company.strip() if company else None
    query = _text_filter(q.strip())
    if company:
        query["company"] = company
    groups = await Book.find(query).aggregate(_group_pipeline() + [{"$limit": limit}]).to_list()
    representatives = await _representatives(groups)

    group_ids = [group["_id"] for group in groups]
    available_filter = [In(Book.group_id, group_ids), Book.status == CopyStatus.AVAILABLE]
    if company:
        available_filter.append(Book.company == company)
    available: Dict[str, List[Book.AvailableCopy]] = {group_id: [] for group_id in group_ids}
    for copy in await Book.find(*available_filter).to_list():
        available[copy.group_id].append(
            Book.AvailableCopy(id=str(copy.id), code=copy.code, condition=copy.condition)
        )

    results = []
    for group in groups:
        representative = representatives.get(group["book_id"])
        if representative is None:
            continue
        results.append(Book.SearchResult(
            **representative.model_dump(include=set(SHARED_FIELDS) | {"group_id", "code", "company"}),
            id=str(representative.id),
            available_copies=available[group["_id"]],
        ))
    logger.debug(f"Search '{q}' matched {len(results)} groups.")
    return results


async def list_categories() -> List[str]:
    return sorted(category for category in await Book.distinct("categories") if category)


async def list_companies() -> List[str]:
    return sorted(company for company in await Book.distinct("company") if company)


# --- Update ---

async def update_general_info(group_id: str, patch: Book.GeneralUpdate) -> Book.GroupResponse:
    """Shared metadata edits apply to every copy of the group."""
    fields = _patch_fields(patch)
    if not fields:
        raise ValidationError("No update data provided.")
    if not await Book.find_one(Book.group_id == group_id):
        raise NotFoundError(f"Book group '{group_id}' not found.")

    await propagate_to_group(group_id, fields)
    logger.info(f"Group {group_id} general info updated. Fields: {list(fields)}")
    return await get_group_by_group_id(group_id)


async def update_copy_info(copy_id: str, patch: Book.CopyUpdate) -> Book:
    """Per-copy edits (condition, location, ...) stay on that copy."""
    book = await get_book_or_404(copy_id)
    fields = _patch_fields(patch)
    if not fields:
        raise ValidationError("No update data provided.")

    await book.update({"$set": {**fields, "updated_at": utc_now()}})
    logger.info(f"Copy {book.code} updated. Fields: {list(fields)}")
    return await get_book_or_404(copy_id)


def split_patch(fields: Dict[str, Any]) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    shared = {key: value for key, value in fields.items() if key in SHARED_FIELDS}
    local = {key: value for key, value in fields.items() if key in COPY_FIELDS}
    return shared, local


async def update_book(copy_id: str, patch: Book.Update) -> Book.GroupResponse:
    """Generic update: shared fields propagate to the group, per-copy fields stay local."""
    book = await get_book_or_404(copy_id)
    shared, local = split_patch(_patch_fields(patch))
    if not shared and not local:
        raise ValidationError("No update data provided.")

    if shared:
        await propagate_to_group(book.group_id, shared)
    if local:
        await book.update({"$set": {**local, "updated_at": utc_now()}})
    logger.info(f"Book {book.code} updated. Shared: {list(shared)}, copy: {list(local)}")
    return await get_group(copy_id)
