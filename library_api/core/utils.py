# library_api/core/utils.py
import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Optional, Type

from beanie import Document, PydanticObjectId
from bson import ObjectId

from library_api.core.config import CODE_MAX_ATTEMPTS
from library_api.core.errors import UnexpectedError, ValidationError

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    """Current time as naive UTC, the form MongoDB stores and returns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def parse_object_id(value: str, label: str = "ID") -> PydanticObjectId:
    if not value or not ObjectId.is_valid(value):
        logger.warning(f"Invalid ObjectId format for {label}: {value}")
        raise ValidationError(f"Invalid {label} format.")
    return PydanticObjectId(value)


def new_group_id() -> str:
    return uuid.uuid4().hex


def _candidate_code(prefix: str) -> str:
    return f"{prefix}-{int(time.time() * 1000)}-{uuid.uuid4().hex[:5].upper()}"


async def generate_unique_code(document_cls: Type[Document], prefix: str, max_attempts: int = CODE_MAX_ATTEMPTS) -> str:
    """
    Generates a `<PREFIX>-<epoch ms>-<5 hex>` code that no document of `document_cls` uses yet.
    Gives up after `max_attempts` collisions instead of spinning.
    """
    for attempt in range(1, max_attempts + 1):
        candidate = _candidate_code(prefix)
        if not await document_cls.find_one({"code": candidate}):
            return candidate
        logger.debug(f"Code collision on attempt {attempt} for {document_cls.__name__}: {candidate}")
    logger.error(f"Failed to generate unique {prefix} code after {max_attempts} attempts.")
    raise UnexpectedError(f"Failed to generate a unique code after {max_attempts} attempts.")
