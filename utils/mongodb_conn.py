import logging
import os
from functools import lru_cache

import dotenv
from motor.motor_asyncio import AsyncIOMotorClient
from pymongo.errors import PyMongoError

dotenv.load_dotenv()

logger = logging.getLogger(__name__)


class MongodbConnection:
    mongo_client = None
    is_connected = False

    def __init__(self):
        self.database_name = os.getenv("MONGODB_DATABASE", "support_chat")
        self.connect_to_database()

    def close_mongo_client(self):
        if self.mongo_client is not None:
            self.mongo_client.close()

    def get_database(self, database_name=None):
        return self.mongo_client[database_name or self.database_name]

    def connect_to_database(self):
        # Motor connects lazily; this only builds the client.
        mongodb_uri = os.getenv("MONGODB_URI")
        if not mongodb_uri:
            host = os.getenv("MONGODB_HOST", "localhost")
            port = int(os.getenv("MONGODB_PORT", 27017))
            username = os.getenv("MONGODB_USERNAME", "")
            password = os.getenv("MONGODB_PASSWORD", "")
            auth_source = os.getenv("MONGODB_AUTH_SOURCE", "admin")

            if username and password:
                mongodb_uri = f"mongodb://{username}:{password}@{host}:{port}/{self.database_name}?authSource={auth_source}"
            else:
                mongodb_uri = f"mongodb://{host}:{port}/{self.database_name}"
        self.mongo_client = AsyncIOMotorClient(
            mongodb_uri,
            tz_aware=True,
            serverSelectionTimeoutMS=int(os.getenv("MONGODB_TIMEOUT_MS", 5000)),
        )
        self.is_connected = True
        return True

    async def check_connection(self) -> bool:
        try:
            await self.mongo_client.admin.command("ping")
            return True
        except PyMongoError as e:
            logger.warning("[MongoDB] ping failed: %s", e)
            return False

    def get_mongo_client(self):
        return self.mongo_client


@lru_cache(maxsize=1)
def get_mongodb_connection() -> MongodbConnection:
    return MongodbConnection()
