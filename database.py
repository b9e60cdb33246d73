from motor.motor_asyncio import AsyncIOMotorClient
from pymongo import ASCENDING
from pymongo.errors import PyMongoError
from logging_config import get_logger
from config import config
import certifi

logger = get_logger("database")

uri = config.MONGO_URI
db_name = config.DB_NAME

if uri:
    logger.info(f"MongoDB connection string found: {uri[:20]}...")
else:
    logger.warning("MONGO_URI not found in configuration, falling back to localhost")

class DatabaseProxy:
    def __init__(self):
        self._client = None
        self._db = None

    def initialize(self):
        if self._client is None:
            if config.ENV == "production":
                self._client = AsyncIOMotorClient(
                    uri,
                    tlsCAFile=certifi.where(),
                    serverSelectionTimeoutMS=config.MONGO_TIMEOUT_MS,
                )
            else:
                self._client = AsyncIOMotorClient(uri, serverSelectionTimeoutMS=config.MONGO_TIMEOUT_MS)
            self._db = self._client[db_name]
            logger.info(f"Database collections initialized on DB: {db_name}")

    def reset(self):
        if self._client is not None:
            self._client.close()
            self._client = None
            self._db = None

    def __getattr__(self, name):
        self.initialize()
        return getattr(self._client, name)

    def __getitem__(self, name):
        self.initialize()
        return self._client[name]


client = DatabaseProxy()

class DBProxy:
    def get_collection(self, name):
        return client[db_name][name]

    def __getattr__(self, attr):
        return client[db_name][attr]

    def __getitem__(self, key):
        return client[db_name][key]

db = DBProxy()

class AsyncCollectionProxy:
    def __init__(self, name):
        self.name = name

    def _get_collection(self):
        # We access the configured db dynamically
        return db.get_collection(self.name)

    def __getattr__(self, attr):
        return getattr(self._get_collection(), attr)

    def __getitem__(self, key):
        return self._get_collection()[key]

sessions_collection = AsyncCollectionProxy("user_sessions")
offline_notifications_collection = AsyncCollectionProxy("offline_notifications")


async def ensure_indexes() -> bool:
    """
    Create the unique per-user indexes and the TTL indexes that expire
    stale presence records and abandoned offline queues.
    Failures are logged only: both stores are optional.
    """
    try:
        for collection in (sessions_collection, offline_notifications_collection):
            await collection.create_index([("user_id", ASCENDING)], unique=True)
            await collection.create_index([("expires_at", ASCENDING)], expireAfterSeconds=0)
    except PyMongoError as e:
        logger.error(f"Could not create MongoDB indexes: {e}")
        return False
    logger.info("MongoDB indexes ensured", extra={"data": {"db": db_name}})
    return True
