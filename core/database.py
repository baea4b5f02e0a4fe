import os

from pymongo import AsyncMongoClient

client = AsyncMongoClient(
    os.getenv("MONGO_URL", "mongodb://localhost:27017"),
    serverSelectionTimeoutMS=2000,
    tz_aware=True,
)
db = client[os.getenv("DB_NAME", "document_relay")]
