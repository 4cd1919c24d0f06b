# src/async_odm/__init__.py

"""
Async ODM Library Initialization.

This package provides a small asynchronous Object-Document Mapping layer
over MongoDB: pydantic entity types bound to a collection, with save,
delete, find-by-id and query-by-filter operations.

It initializes a logger with a NullHandler and makes the entity base,
query options, conversion helpers and exceptions available at the top level.
"""

import logging

# --------------------------------------------------------------------------
# Logging Setup
# --------------------------------------------------------------------------
# Library logs are discarded unless the consuming application configures
# logging for "async_odm".
logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())
logger.propagate = False

# --------------------------------------------------------------------------
# Core Exports
# --------------------------------------------------------------------------
from .base.entity import Entity, create_entity_base
from .base.exceptions import (
    BatchNotAcknowledgedError,
    ConfigurationError,
    InvalidStateError,
    ValidationError,
)

# --------------------------------------------------------------------------
# Query Exports
# --------------------------------------------------------------------------
from .base.query import QueryBuilder, QueryOperator, QueryOptions, SortDirection

# --------------------------------------------------------------------------
# Helpers
# --------------------------------------------------------------------------
from .base.conversion import convert_provider_types, prepare_for_storage
from .connection import get_database
from .mongodb.batch import DELETE_BATCH_SIZE

__all__ = [
    # Core
    "Entity",
    "create_entity_base",
    # Exceptions
    "ConfigurationError",
    "InvalidStateError",
    "ValidationError",
    "BatchNotAcknowledgedError",
    # Query
    "QueryBuilder",
    "QueryOptions",
    "QueryOperator",
    "SortDirection",
    # Helpers
    "convert_provider_types",
    "prepare_for_storage",
    "get_database",
    "DELETE_BATCH_SIZE",
    # Logging
    "logger",
]

__version__ = "0.1.0"
