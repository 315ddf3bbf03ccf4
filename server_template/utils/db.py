from typing import Optional
import logging

from motor.motor_asyncio import AsyncIOMotorClient

logger = logging.getLogger(__name__)


class DatabaseClient:
    """Thin handle around the Mongo client; the server only connects, pings and disconnects"""

    def __init__(self, url: str, name: str = "app"):
        self.url = url
        self.name = name
        self.client: Optional[AsyncIOMotorClient] = None

    def connect(self) -> AsyncIOMotorClient:
        if self.client is None:
            self.client = AsyncIOMotorClient(self.url, serverSelectionTimeoutMS=5000)
        return self.client

    def get_database(self):
        return self.client[self.name] if self.client else None

    async def ping(self) -> bool:
        """Check the connection; failures are reported, not raised"""
        client = self.connect()
        try:
            await client.admin.command("ping")
            logger.info("Connected to MongoDB successfully")
            return True
        except Exception as e:
            logger.warning(f"Could not connect to MongoDB: {e}")
            logger.warning("API will start but database operations will fail")
            return False

    async def disconnect(self) -> None:
        if self.client is not None:
            self.client.close()
            self.client = None
            logger.info("MongoDB connection closed")
