# library_api/models/enum.py
from enum import Enum


class CopyStatus(str, Enum):
    AVAILABLE = "available"
    BORROWED = "borrowed"


class BorrowStatus(str, Enum):
    BORROWED = "borrowed"
    RETURNED = "returned"
    OVERDUE = "overdue"


# Records still holding a copy.
OPEN_BORROW_STATUSES = (BorrowStatus.BORROWED, BorrowStatus.OVERDUE)


class Condition(str, Enum):
    NEW = "new"
    GOOD = "good"
    REGULAR = "regular"
    BAD = "bad"


class CoverType(str, Enum):
    HARD = "hard"
    SOFT = "soft"
