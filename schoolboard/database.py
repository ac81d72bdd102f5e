import os
from datetime import date, datetime, timezone

from pymongo import MongoClient, ReturnDocument
from pymongo.database import Database

MONGO_URL = os.getenv("MONGO_URL", "mongodb://localhost:27017")
MONGO_DB_NAME = os.getenv("MONGO_DB_NAME", "schoolboard")

_client: MongoClient | None = None


def get_mongo_client() -> MongoClient:
    global _client
    if _client is None:
        _client = MongoClient(MONGO_URL)
    return _client


def get_db():
    client = get_mongo_client()
    return client[MONGO_DB_NAME]


def next_id(db: Database, collection: str) -> int:
    """Allocate the next integer id for ``collection`` from the counters collection."""
    counter = db["counters"].find_one_and_update(
        {"_id": collection},
        {"$inc": {"seq": 1}},
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )
    return counter["seq"]


def utcnow() -> datetime:
    """Current time as naive UTC, the form datetimes are stored in."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# BSON has no date type, so calendar dates are stored as midnight datetimes.
def to_datetime(value: date | None) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    return datetime(value.year, value.month, value.day)


def to_date(value: datetime | date | None) -> date | None:
    if isinstance(value, datetime):
        return value.date()
    return value


def date_range_query(start: date | None, end: date | None) -> dict | None:
    query: dict = {}
    if start:
        query["$gte"] = to_datetime(start)
    if end:
        query["$lte"] = to_datetime(end)
    return query or None
