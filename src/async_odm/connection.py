# src/async_odm/connection.py

import logging
import os
from typing import Any, Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

log = logging.getLogger(__name__)

MONGO_URI_ENV = "ASYNC_ODM_MONGO_URI"
MONGO_DB_ENV = "ASYNC_ODM_DB_NAME"
DEFAULT_MONGO_URI = "mongodb://localhost:27017"
DEFAULT_DATABASE_NAME = "async_odm"


def get_database(
    uri: Optional[str] = None,
    database_name: Optional[str] = None,
    **client_kwargs: Any,
) -> AsyncIOMotorDatabase:
    """
    Open a Motor client and return the database handle to pass to
    :func:`async_odm.create_entity_base`.

    Args:
        uri: MongoDB connection string. Defaults to ``$ASYNC_ODM_MONGO_URI``,
             then ``mongodb://localhost:27017``.
        database_name: Database to use. Defaults to ``$ASYNC_ODM_DB_NAME``,
             then ``async_odm``.
        **client_kwargs: Passed through to ``AsyncIOMotorClient`` (timeouts,
             pool sizes ...). ``tz_aware`` defaults to ``True`` so stored
             datetimes come back as aware UTC values.

    The client connects lazily; no network traffic happens here. Close it via
    ``database.client.close()`` when done.
    """
    uri = uri or os.getenv(MONGO_URI_ENV, DEFAULT_MONGO_URI)
    database_name = database_name or os.getenv(MONGO_DB_ENV, DEFAULT_DATABASE_NAME)
    client_kwargs.setdefault("tz_aware", True)
    client = AsyncIOMotorClient(uri, **client_kwargs)
    log.info(f"Created MongoDB client for database '{database_name}'.")
    return client[database_name]
