# src/async_odm/mongodb/batch.py

import logging
from logging import LoggerAdapter
from typing import Any, Iterator, List, Sequence, Union

from motor.motor_asyncio import AsyncIOMotorCollection
from pymongo import DeleteOne

from async_odm.base.exceptions import BatchNotAcknowledgedError

base_logger = logging.getLogger(__name__)

# Upper bound of write operations committed together in one bulk request.
DELETE_BATCH_SIZE = 500


def chunked(items: Sequence[Any], size: int) -> Iterator[Sequence[Any]]:
    """Yields consecutive slices of ``items`` holding at most ``size`` elements."""
    if size <= 0:
        raise ValueError("Batch size must be a positive integer.")
    for start in range(0, len(items), size):
        yield items[start : start + size]


async def delete_in_batches(
    collection: AsyncIOMotorCollection,
    db_ids: Sequence[Any],
    logger: Union[LoggerAdapter, logging.Logger, None] = None,
    batch_size: int = DELETE_BATCH_SIZE,
) -> int:
    """
    Delete the documents with the given ``_id`` values, one batch at a time.

    Each batch is an ordered ``bulk_write`` of at most ``batch_size``
    ``DeleteOne`` operations. A batch is awaited and its acknowledgment checked
    before the next batch is sent.

    Args:
        collection: The collection holding the documents.
        db_ids: Stored ``_id`` values to delete.
        logger: Logger for recording progress. Defaults to the module logger.
        batch_size: Maximum operations per batch.

    Returns:
        The number of documents the database reports as deleted.

    Raises:
        BatchNotAcknowledgedError: If a batch result is not acknowledged.
            Batches after it are not sent.
    """
    logger = logger or base_logger
    if not db_ids:
        logger.debug("No documents to delete; skipping batch deletion.")
        return 0

    deleted = 0
    batches: List[Sequence[Any]] = list(chunked(db_ids, batch_size))
    for number, batch in enumerate(batches, start=1):
        operations = [DeleteOne({"_id": db_id}) for db_id in batch]
        result = await collection.bulk_write(operations, ordered=True)
        if not result.acknowledged:
            raise BatchNotAcknowledgedError(
                f"Delete batch {number}/{len(batches)} on '{collection.name}' "
                "was not acknowledged."
            )
        deleted += result.deleted_count
        logger.debug(
            f"Committed delete batch {number}/{len(batches)} "
            f"({len(operations)} operations) on '{collection.name}'."
        )
    return deleted
