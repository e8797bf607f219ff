# library_api/api/v1/endpoints/lending.py
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Body, Depends, Path, Query, Request, status
from loguru import logger

from library_api.core import lending
from library_api.core.rate_limiter import limiter
from library_api.core.security import get_current_active_user
from library_api.models.borrow_record import BorrowRecord
from library_api.models.user import User

router = APIRouter(tags=["Lending"])


@router.post("/borrow", status_code=status.HTTP_201_CREATED)
@limiter.limit("60/minute")
async def borrow_book(
    request: Request,
    borrow_in: BorrowRecord.Create = Body(...),
    current_user: User = Depends(get_current_active_user),
):
    logger.info(f"User '{current_user.username}' lending copy {borrow_in.copy_id} to '{borrow_in.borrower_name}'.")
    record = await lending.borrow(
        current_user,
        borrow_in.copy_id,
        borrow_in.borrower_name,
        borrow_in.expected_return_date,
        comments=borrow_in.comments,
        book_id=borrow_in.book_id,
    )
    enriched = await lending.enrich([record])
    return {"success": True, "borrow_record": enriched[0]}


@router.post("/return/{record_id}")
@limiter.limit("60/minute")
async def return_book(
    request: Request,
    record_id: str = Path(...),
    return_in: Optional[BorrowRecord.Return] = Body(None),
    current_user: User = Depends(get_current_active_user),
):
    comments = return_in.comments if return_in else None
    record = await lending.return_record(current_user, record_id, comments)
    enriched = await lending.enrich([record])
    return {"success": True, "borrow_record": enriched[0]}


@router.get("/history")
async def borrow_history(
    search: Optional[str] = Query(None, description="Substring of borrower name or copy code"),
    status: Optional[str] = Query(None, description="borrowed | returned | overdue | all"),
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    current_user: User = Depends(get_current_active_user),
):
    records = await lending.history(
        current_user.company, search=search, status=status, start_date=start_date, end_date=end_date
    )
    return {"success": True, "records": records}


@router.get("/active")
async def active_borrows(current_user: User = Depends(get_current_active_user)):
    records = await lending.active_borrows(current_user.company)
    return {"success": True, "records": records}


@router.get("/borrower-names")
async def read_borrower_names(current_user: User = Depends(get_current_active_user)):
    return {"success": True, "borrower_names": await lending.borrower_names(current_user.company)}
