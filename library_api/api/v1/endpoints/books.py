# library_api/api/v1/endpoints/books.py
from typing import List, Optional, Union

from fastapi import APIRouter, Body, Path, Query, Request, status
from loguru import logger

from library_api.core import inventory
from library_api.core.rate_limiter import limiter
from library_api.models.book import Book

router = APIRouter(tags=["Books"])


def _split_categories(categories: Optional[List[str]]) -> Optional[List[str]]:
    """Accept both ?categories=a&categories=b and ?categories=a,b."""
    if not categories:
        return None
    values = [value.strip() for raw in categories for value in raw.split(",")]
    return [value for value in values if value] or None


# --- Fixed paths first so they are not captured by /{book_id} ---

@router.get("/search")
async def search_books(
    q: Optional[str] = Query(None, description="Substring matched against title, author and code"),
    company: Optional[str] = Query(None),
):
    """Up to 10 matching groups, each listing only its available copies."""
    results = await inventory.search(q, company)
    return {"books": results}


@router.get("/categories")
async def read_categories():
    return {"categories": await inventory.list_categories()}


@router.get("/companies")
async def read_companies():
    return {"companies": await inventory.list_companies()}


@router.get("/group/{group_id}", response_model=Book.GroupResponse)
async def read_book_group(group_id: str = Path(...)):
    return await inventory.get_group_by_group_id(group_id)


@router.get("/", response_model=Book.PageResponse)
async def read_books(
    company: Optional[str] = Query(None, description="Tenant; required"),
    page: int = Query(1, ge=1),
    search: Optional[str] = Query(None),
    categories: Optional[List[str]] = Query(None),
):
    """Paginated list of groups (one representative per title) for a company."""
    return await inventory.list_groups(company, page=page, search=search, categories=_split_categories(categories))


@router.post("/", response_model=Book.Response, status_code=status.HTTP_201_CREATED)
@limiter.limit("60/minute")
async def create_book(request: Request, book_in: Book.Create = Body(...)):
    """Create a new title with its first copy."""
    book = await inventory.create_group(book_in)
    logger.info(f"Book '{book.title}' created with code {book.code}.")
    return book.to_response()


@router.get("/{book_id}", response_model=Book.GroupResponse)
async def read_book(book_id: str = Path(..., description="Any copy of the group")):
    return await inventory.get_group(book_id)


@router.put("/{book_id}", response_model=Book.GroupResponse)
async def update_book(book_id: str = Path(...), book_in: Book.Update = Body(...)):
    return await inventory.update_book(book_id, book_in)


@router.delete("/{book_id}", response_model=Book.RemovalResponse)
async def delete_book(book_id: str = Path(...)):
    """Delete one copy; deleting the last copy deletes the whole group."""
    return await inventory.remove_copy(book_id)


@router.post("/{book_id}/copy", response_model=Book.Response, status_code=status.HTTP_201_CREATED)
@limiter.limit("60/minute")
async def add_book_copy(
    request: Request,
    book_id: str = Path(..., description="Copy to inherit from"),
    overrides: Optional[Book.CopyCreate] = Body(None),
):
    new_copy = await inventory.add_copy(book_id, overrides or Book.CopyCreate())
    return new_copy.to_response()


@router.post("/{book_id}/decrease-copy", response_model=Union[Book.GroupResponse, Book.RemovalResponse])
async def decrease_book_copy(
    book_id: str = Path(..., description="Representative copy of the group"),
    body: Optional[Book.DecreaseCopy] = Body(None),
):
    """Remove `copy_id` (or the representative itself) from the group."""
    copy_id = body.copy_id if body else None
    return await inventory.decrease_copy(book_id, copy_id)


@router.put("/{group_id}/general", response_model=Book.GroupResponse)
async def update_general_info(group_id: str = Path(...), patch: Book.GeneralUpdate = Body(...)):
    return await inventory.update_general_info(group_id, patch)


@router.put("/{book_id}/copy", response_model=Book.Response)
async def update_copy_info(book_id: str = Path(...), patch: Book.CopyUpdate = Body(...)):
    book = await inventory.update_copy_info(book_id, patch)
    return book.to_response()
