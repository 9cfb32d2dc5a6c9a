"""
Database initialization for Beanie (MongoDB ODM).
"""

from beanie import init_beanie
from motor.motor_asyncio import AsyncIOMotorClient

from harvester.config import settings
from harvester.models.mongo_models import MONGO_MODELS

client: AsyncIOMotorClient = None


async def init_db(mongo_uri: str = None, db_name: str = None):
    """Initialize Beanie with MongoDB connection"""
    global client
    client = AsyncIOMotorClient(mongo_uri or settings.MONGO_URI)

    await init_beanie(
        database=client[db_name or settings.MONGO_DB_NAME],
        document_models=MONGO_MODELS
    )


async def close_db():
    """Close MongoDB connection"""
    global client
    if client:
        client.close()
        client = None
