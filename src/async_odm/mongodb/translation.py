# src/async_odm/mongodb/translation.py

import logging
from typing import Any, Dict, List, Optional, Tuple

from bson import ObjectId
from pymongo import ASCENDING, DESCENDING

from async_odm.base.conversion import prepare_for_storage
from async_odm.base.query import QueryOperator, QueryOptions, SortDirection

log = logging.getLogger(__name__)

APP_ID_FIELD = "id"
DB_ID_FIELD = "_id"

_MONGO_OPERATORS = {
    QueryOperator.EQUALS: "$eq",
    QueryOperator.GT: "$gt",
    QueryOperator.GTE: "$gte",
    QueryOperator.LT: "$lt",
    QueryOperator.LTE: "$lte",
}


def to_db_id(identifier: Any) -> Any:
    """Converts an application id to the stored ``_id`` value.

    Strings that are valid ObjectId hex are stored as ObjectId, since that is
    what the database generates on insert. Anything else is used verbatim.
    """
    if isinstance(identifier, str) and ObjectId.is_valid(identifier):
        return ObjectId(identifier)
    return identifier


def to_app_id(db_id: Any) -> Optional[str]:
    """Converts a stored ``_id`` back to the string id exposed on entities."""
    if db_id is None:
        return None
    return str(db_id)


def _map_field(field_name: str) -> str:
    return DB_ID_FIELD if field_name == APP_ID_FIELD else field_name


def translate_filter(options: QueryOptions) -> Dict[str, Any]:
    """
    Builds a MongoDB filter document from ``options.where``.

    Every operator of every field becomes an independent constraint, so
    ``{"age": {gte: 18, lt: 65}}`` translates to
    ``{"age": {"$gte": 18, "$lt": 65}}``.
    """
    query_filter: Dict[str, Any] = {}
    for field_name, condition in options.where.items():
        mongo_field = _map_field(field_name)
        constraints: Dict[str, Any] = {}
        for operator, value in condition.items():
            mongo_op = _MONGO_OPERATORS.get(operator)
            if mongo_op is None:
                raise ValueError(f"Unsupported query operator for MongoDB: {operator!r}")
            value = prepare_for_storage(value)
            if mongo_field == DB_ID_FIELD:
                value = to_db_id(value)
            constraints[mongo_op] = value
        if constraints:
            query_filter[mongo_field] = constraints
    log.debug(f"Translated {options!r} to MongoDB filter: {query_filter}")
    return query_filter


def translate_sort(options: QueryOptions) -> Optional[List[Tuple[str, int]]]:
    """Returns the pymongo sort specification for the single sort field, if any."""
    if not options.order_by:
        return None
    field_name, direction = options.order_by
    mongo_direction = DESCENDING if direction is SortDirection.DESC else ASCENDING
    return [(_map_field(field_name), mongo_direction)]


def translate_limit(options: QueryOptions) -> int:
    """Returns the cursor limit; ``0`` means no limit for pymongo."""
    return options.limit or 0
