# library_api/db/database.py
import logging
from typing import Optional

import motor.motor_asyncio
from beanie import init_beanie

from library_api.core.config import MONGODB_URL, DATABASE_NAME
from library_api.models.user import User
from library_api.models.book import Book
from library_api.models.borrow_record import BorrowRecord
from library_api.models.equipment import Equipment

logger = logging.getLogger(__name__)

DOCUMENT_MODELS = [User, Book, BorrowRecord, Equipment]

client: Optional[motor.motor_asyncio.AsyncIOMotorClient] = None


async def init_db(database=None):
    """Connect to MongoDB and register the Beanie document models.

    Passing `database` skips client creation (used by tests with an in-memory client).
    """
    global client
    if database is None:
        logger.info("Connecting to MongoDB...")
        client = motor.motor_asyncio.AsyncIOMotorClient(MONGODB_URL, tz_aware=False)
        database = client[DATABASE_NAME]
        logger.info(f"Using database: {DATABASE_NAME}")

    await init_beanie(database=database, document_models=DOCUMENT_MODELS)
    logger.info("Beanie initialization complete for all models.")


def close_db():
    global client
    if client is not None:
        client.close()
        client = None
        logger.info("MongoDB connection closed.")
