import motor.motor_asyncio

from config import MONGO_URL, MONGO_DB_NAME, STORE_BACKEND
from store import MemoryStore, MongoStore, Store

client = motor.motor_asyncio.AsyncIOMotorClient(MONGO_URL)
db = client[MONGO_DB_NAME]


def create_store(backend: str = STORE_BACKEND) -> Store:
    if backend == "memory":
        return MemoryStore()
    if backend == "mongo":
        return MongoStore(client, db)
    raise ValueError(f"Unknown STORE_BACKEND '{backend}', expected 'mongo' or 'memory'")


store = create_store()
