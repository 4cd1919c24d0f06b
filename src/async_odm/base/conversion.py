import logging
from dataclasses import asdict, is_dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


def convert_provider_types(value: Any) -> Any:
    """
    Recursively replace provider-native values with standard Python ones.

    A value exposing a callable ``as_datetime`` (``bson.Timestamp``) is
    converted to a ``datetime``; if the conversion raises, the original value
    is kept. Naive datetimes, which the driver returns for stored UTC values
    unless the client is ``tz_aware``, are marked as UTC. Lists, tuples and
    plain dicts are walked. Any other object is
    returned untouched, so models and other rich types are never entered.
    Converting an already converted structure yields the same structure.
    """
    if value is None:
        return None

    if isinstance(value, list):
        return [convert_provider_types(item) for item in value]

    if isinstance(value, tuple):
        return tuple(convert_provider_types(item) for item in value)

    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    as_datetime = getattr(value, "as_datetime", None)
    if callable(as_datetime):
        try:
            return as_datetime()
        except Exception as e:
            logger.debug(
                f"Could not convert {type(value).__name__} to datetime: {e}"
            )
            return value

    if isinstance(value, dict):
        return {key: convert_provider_types(item) for key, item in value.items()}

    return value


def prepare_for_storage(data: Any) -> Any:
    """
    Recursively convert pydantic models, dataclasses and special types to
    BSON-compatible values.

    Handles:
    - Pydantic BaseModel instances (dumped in python mode)
    - Python dataclasses
    - Dictionaries (processing values recursively)
    - Lists, tuples and sets (converted to lists)
    - Enums (replaced by their value)
    - Pydantic URL types (converted to strings)

    Datetimes and other values the driver encodes natively are kept as-is.
    """
    if data is None:
        return None

    if is_dataclass(data) and not isinstance(data, type):
        return prepare_for_storage(asdict(data))

    if hasattr(data, "model_dump") and callable(getattr(data, "model_dump")):
        return prepare_for_storage(data.model_dump(mode="python"))

    if isinstance(data, dict):
        return {k: prepare_for_storage(v) for k, v in data.items()}

    if isinstance(data, (list, tuple, set, frozenset)):
        return [prepare_for_storage(item) for item in data]

    if isinstance(data, Enum):
        return prepare_for_storage(data.value)

    if data.__class__.__module__ in ("pydantic.networks", "pydantic_core._pydantic_core"):
        if data.__class__.__name__.endswith("Url"):
            return str(data)

    return data
