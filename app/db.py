"""Mongo client lifecycle. init_beanie also builds the indexes each document declares."""
import logging

from beanie import init_beanie
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from app.config import settings
from app.models import DOCUMENT_MODELS

logger = logging.getLogger(__name__)

_client: AsyncIOMotorClient | None = None


async def connect() -> AsyncIOMotorDatabase:
    global _client
    _client = AsyncIOMotorClient(
        settings.mongodb_url,
        serverSelectionTimeoutMS=settings.mongodb_timeout_ms,
    )
    database = _client[settings.mongodb_db_name]
    await init_beanie(database=database, document_models=DOCUMENT_MODELS)
    logger.info(f"Connected to MongoDB database '{settings.mongodb_db_name}'")
    return database


async def disconnect():
    global _client
    if _client:
        _client.close()
        _client = None
