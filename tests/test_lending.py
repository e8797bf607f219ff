from datetime import timedelta
from types import SimpleNamespace

import pytest

from library_api.core import lending
from library_api.core.errors import ConflictError, NotFoundError, ValidationError
from library_api.core.utils import utc_now
from library_api.models.book import Book
from library_api.models.borrow_record import BorrowRecord
from library_api.models.enum import BorrowStatus, CopyStatus

from tests.factories import group_copies, make_group, next_week, yesterday


def test_derive_status_marks_past_due_borrowed_records_overdue():
    now = utc_now()
    record = SimpleNamespace(status=BorrowStatus.BORROWED, expected_return_date=now - timedelta(hours=1))
    assert lending.derive_status(record, now) == BorrowStatus.OVERDUE

    record.expected_return_date = now + timedelta(hours=1)
    assert lending.derive_status(record, now) == BorrowStatus.BORROWED

    returned = SimpleNamespace(status=BorrowStatus.RETURNED, expected_return_date=now - timedelta(days=3))
    assert lending.derive_status(returned, now) == BorrowStatus.RETURNED


async def test_borrow_flips_copy_and_binds_record_to_code(db, user):
    book = await make_group()

    record = await lending.borrow(user, str(book.id), "Ana", next_week(), comments="front desk")

    copy = await Book.get(book.id)
    assert copy.status == CopyStatus.BORROWED
    assert record.book_copy == book.code
    assert record.book == book.id
    assert record.status == BorrowStatus.BORROWED
    assert record.company == user.company
    assert record.borrowed_by == user.id
    assert record.return_date is None


async def test_borrow_unavailable_copy_conflicts(db, user):
    book = await make_group()
    await lending.borrow(user, str(book.id), "Ana", next_week())

    with pytest.raises(ConflictError):
        await lending.borrow(user, str(book.id), "Ben", next_week())
    assert await BorrowRecord.find(BorrowRecord.book_copy == book.code).count() == 1


async def test_borrow_missing_copy_raises_not_found(db, user):
    with pytest.raises(NotFoundError):
        await lending.borrow(user, "64b7f0c2a1b2c3d4e5f60718", "Ana", next_week())


async def test_borrow_records_representative_when_given(db, user):
    first = await make_group(copies=2)
    second = [c for c in await group_copies(first.group_id) if c.id != first.id][0]

    record = await lending.borrow(user, str(second.id), "Ana", next_week(), book_id=str(first.id))

    assert record.book == first.id
    assert record.book_copy == second.code


async def test_return_twice_is_harmless(db, user):
    book = await make_group()
    record = await lending.borrow(user, str(book.id), "Ana", next_week(), comments="first")

    once = await lending.return_record(user, str(record.id))
    twice = await lending.return_record(user, str(record.id), "second")

    assert once.status == BorrowStatus.RETURNED
    assert twice.status == BorrowStatus.RETURNED
    assert twice.return_date >= once.return_date
    assert twice.comments == "second"
    assert twice.returned_by == user.id
    assert (await Book.get(book.id)).status == CopyStatus.AVAILABLE


async def test_return_keeps_previous_comments_when_none_given(db, user):
    book = await make_group()
    record = await lending.borrow(user, str(book.id), "Ana", next_week(), comments="fragile")

    returned = await lending.return_record(user, str(record.id))

    assert returned.comments == "fragile"


async def test_return_when_copy_was_deleted_still_closes_record(db, user):
    book = await make_group()
    record = await lending.borrow(user, str(book.id), "Ana", next_week())
    await Book.find(Book.group_id == book.group_id).delete()

    returned = await lending.return_record(user, str(record.id))

    assert returned.status == BorrowStatus.RETURNED
    assert await Book.find_one(Book.code == book.code) is None


async def test_return_unknown_record_raises_not_found(db, user):
    with pytest.raises(NotFoundError):
        await lending.return_record(user, "64b7f0c2a1b2c3d4e5f60718")


async def test_overdue_is_derived_and_persisted(db, user):
    book = await make_group()
    record = await lending.borrow(user, str(book.id), "Ana", yesterday())

    active = await lending.active_borrows(user.company)

    assert [r.status for r in active] == [BorrowStatus.OVERDUE]
    stored = await BorrowRecord.get(record.id)
    assert stored.status == BorrowStatus.OVERDUE
    # the copy itself stays borrowed
    assert (await Book.get(book.id)).status == CopyStatus.BORROWED


async def test_refresh_overdue_returns_derived_status_when_write_fails(db, user, monkeypatch):
    book = await make_group()
    record = await lending.borrow(user, str(book.id), "Ana", yesterday())

    class BrokenStore:
        id = None

        @staticmethod
        def find_one(*args, **kwargs):
            raise RuntimeError("store unavailable")

    monkeypatch.setattr(lending, "BorrowRecord", BrokenStore)
    refreshed = await lending.refresh_overdue([record])

    assert refreshed[0].status == BorrowStatus.OVERDUE


async def test_history_filters_and_orders_newest_first(db, user):
    dune = await make_group(copies=2)
    emma = await make_group(title="Emma", author="Jane Austen")
    copies = await group_copies(dune.group_id)

    late = await lending.borrow(user, str(copies[0].id), "Ana Lopez", yesterday())
    returned = await lending.borrow(user, str(copies[1].id), "Ben Ortiz", next_week())
    await lending.return_record(user, str(returned.id))
    current = await lending.borrow(user, str(emma.id), "Carla Diaz", next_week())
    for hours_ago, record in ((3, late), (2, returned), (1, current)):
        await BorrowRecord.find_one(BorrowRecord.id == record.id).update(
            {"$set": {"borrow_date": utc_now() - timedelta(hours=hours_ago)}}
        )

    everything = await lending.history(user.company)
    overdue = await lending.history(user.company, status="overdue")
    borrowed = await lending.history(user.company, status="borrowed")
    done = await lending.history(user.company, status="returned")
    by_name = await lending.history(user.company, search="ortiz")
    by_code = await lending.history(user.company, search=emma.code)

    assert [r.id for r in everything] == [str(current.id), str(returned.id), str(late.id)]
    assert [r.id for r in overdue] == [str(late.id)]
    assert [r.id for r in borrowed] == [str(current.id)]
    assert [r.id for r in done] == [str(returned.id)]
    assert [r.borrower_name for r in by_name] == ["Ben Ortiz"]
    assert [r.id for r in by_code] == [str(current.id)]


async def test_history_date_range_and_tenant_scope(db, user):
    book = await make_group()
    record = await lending.borrow(user, str(book.id), "Ana", next_week())
    await BorrowRecord.find_one(BorrowRecord.id == record.id).update(
        {"$set": {"borrow_date": utc_now() - timedelta(days=30)}}
    )

    recent = await lending.history(user.company, start_date=utc_now() - timedelta(days=7))
    older = await lending.history(user.company, end_date=utc_now() - timedelta(days=7))
    other_tenant = await lending.history("globex")

    assert recent == []
    assert [r.id for r in older] == [str(record.id)]
    assert other_tenant == []


async def test_history_rejects_unknown_status(db, user):
    with pytest.raises(ValidationError):
        await lending.history(user.company, status="lost")


async def test_enrichment_uses_placeholders_for_dangling_references(db, user):
    book = await make_group()
    record = await lending.borrow(user, str(book.id), "Ana", next_week())
    await Book.find(Book.group_id == book.group_id).delete()
    await user.delete()

    [enriched] = await lending.history("acme")

    assert enriched.book.title == lending.UNKNOWN_BOOK_TITLE
    assert enriched.book.id == str(record.book)
    assert enriched.borrowed_by.username == lending.UNKNOWN_USER_NAME
    assert enriched.returned_by is None


async def test_enrichment_resolves_book_and_user(db, user):
    book = await make_group()
    await lending.borrow(user, str(book.id), "Ana", next_week())

    [enriched] = await lending.active_borrows("acme")

    assert enriched.book.title == "Dune"
    assert enriched.book.author == "Frank Herbert"
    assert enriched.borrowed_by.username == user.username


async def test_borrower_names_are_distinct_and_sorted(db, user):
    first = await make_group(copies=3)
    copies = await group_copies(first.group_id)
    for copy, name in zip(copies, ["Zoe", "Ana", "Zoe"]):
        await lending.borrow(user, str(copy.id), name, next_week())

    assert await lending.borrower_names("acme") == ["Ana", "Zoe"]
    assert await lending.borrower_names("globex") == []


async def test_borrow_copy_of_another_company_is_not_found(db, user, outsider):
    book = await make_group()

    with pytest.raises(NotFoundError):
        await lending.borrow(outsider, str(book.id), "Mallory", next_week())

    assert (await Book.get(book.id)).status == CopyStatus.AVAILABLE
    assert await BorrowRecord.find_all().count() == 0


async def test_return_record_of_another_company_is_not_found(db, user, outsider):
    book = await make_group()
    record = await lending.borrow(user, str(book.id), "Ana", next_week())

    with pytest.raises(NotFoundError):
        await lending.return_record(outsider, str(record.id))

    assert (await BorrowRecord.get(record.id)).status == BorrowStatus.BORROWED
    assert (await Book.get(book.id)).status == CopyStatus.BORROWED


async def test_stale_return_does_not_free_copy_held_by_newer_record(db, user):
    book = await make_group()
    first = await lending.borrow(user, str(book.id), "Ana", next_week())
    await lending.return_record(user, str(first.id))
    second = await lending.borrow(user, str(book.id), "Ben", next_week())

    restamped = await lending.return_record(user, str(first.id), "duplicate scan")

    assert restamped.status == BorrowStatus.RETURNED
    assert (await Book.get(book.id)).status == CopyStatus.BORROWED
    with pytest.raises(ConflictError):
        await lending.borrow(user, str(book.id), "Carla", next_week())
    open_records = await BorrowRecord.find(
        BorrowRecord.book_copy == book.code, BorrowRecord.status == BorrowStatus.BORROWED
    ).to_list()
    assert [r.id for r in open_records] == [second.id]


async def test_borrow_rejects_representative_from_another_group(db, user):
    dune = await make_group()
    emma = await make_group(title="Emma", author="Jane Austen")

    with pytest.raises(ValidationError):
        await lending.borrow(user, str(dune.id), "Ana", next_week(), book_id=str(emma.id))

    assert (await Book.get(dune.id)).status == CopyStatus.AVAILABLE
    assert await BorrowRecord.find_all().count() == 0


async def test_borrow_loses_race_when_copy_flipped_after_read(db, user, monkeypatch):
    book = await make_group()
    stale = await Book.get(book.id)
    await book.update({"$set": {"status": CopyStatus.BORROWED.value}})

    async def stale_lookup(book_id):
        return stale

    monkeypatch.setattr(lending, "get_book_or_404", stale_lookup)

    with pytest.raises(ConflictError):
        await lending.borrow(user, str(book.id), "Ana", next_week())
    assert await BorrowRecord.find_all().count() == 0
