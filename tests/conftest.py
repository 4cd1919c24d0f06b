# tests/conftest.py
import logging
import os
from datetime import datetime
from typing import Any, Dict, List, Optional

import pytest
from pydantic import Field, field_validator
from pymongo import MongoClient
from pymongo.errors import PyMongoError

from async_odm import create_entity_base
from tests.fakes import FakeDatabase

# Silence verbose loggers
logging.getLogger("pymongo").setLevel(logging.ERROR)
logging.getLogger("motor").setLevel(logging.ERROR)

# --- Constants ---
TEST_MONGO_DB_NAME = "pytest_async_odm_db"
MONGO_URI = os.getenv("TEST_MONGO_URI", "mongodb://localhost:27017")


# --- Availability Checks ---
def is_mongodb_available() -> bool:
    """Check if a MongoDB server answers at MONGO_URI."""
    client = MongoClient(MONGO_URI, serverSelectionTimeoutMS=1000)
    try:
        client.admin.command("ping")
        logging.info(f"MongoDB found and responsive at {MONGO_URI}")
        return True
    except PyMongoError as e:
        logging.warning(
            f"MongoDB not found or not responsive at {MONGO_URI}: {e}. "
            "Skipping live MongoDB tests."
        )
        return False
    finally:
        client.close()


MONGODB_AVAILABLE = is_mongodb_available()


# --- Logger Fixture ---


@pytest.fixture(scope="session")
def logger():
    """Create a test logger."""
    _logger = logging.getLogger("test_odm_logger")
    if not _logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )
        handler.setFormatter(formatter)
        handler.setLevel(logging.DEBUG)
        _logger.addHandler(handler)
        _logger.setLevel(logging.DEBUG)
        _logger.propagate = False
    return logging.LoggerAdapter(_logger, {})


class RecordingHandler(logging.Handler):
    """Keeps every record it handles in ``records``."""

    def __init__(self):
        super().__init__(logging.DEBUG)
        self.records: List[logging.LogRecord] = []

    def emit(self, record: logging.LogRecord) -> None:
        self.records.append(record)


@pytest.fixture
def odm_log_records():
    """
    Collects records from the async_odm logger. The package logger does not
    propagate, so a handler is attached to it for the duration of the test.
    """
    handler = RecordingHandler()
    package_logger = logging.getLogger("async_odm")
    package_logger.addHandler(handler)
    previous_level = package_logger.level
    package_logger.setLevel(logging.DEBUG)
    yield handler.records
    package_logger.removeHandler(handler)
    package_logger.setLevel(previous_level)


@pytest.fixture
def caller_log():
    """A caller-owned LoggerAdapter and the records it receives."""
    handler = RecordingHandler()
    caller_logger = logging.getLogger("test_odm_caller")
    caller_logger.addHandler(handler)
    caller_logger.setLevel(logging.DEBUG)
    caller_logger.propagate = False
    yield logging.LoggerAdapter(caller_logger, {}), handler.records
    caller_logger.removeHandler(handler)


# --- Fake Database Fixtures ---


@pytest.fixture
def fake_db() -> FakeDatabase:
    return FakeDatabase()


@pytest.fixture
def entity_base(fake_db):
    return create_entity_base(fake_db)


def define_user_model(base):
    """Defines the User entity used throughout the tests on top of ``base``."""

    class User(base):
        __collection__ = "users"

        name: str
        age: int = 0
        email: Optional[str] = None
        tags: List[str] = Field(default_factory=list)
        profile: Dict[str, Any] = Field(default_factory=dict)
        created_at: Optional[datetime] = None

    return User


def define_account_model(base):
    """An entity with a custom validator, bound through bind_collection()."""

    class Account(base):
        owner: str
        balance: float = 0.0
        active: bool = True

        @field_validator("balance")
        @classmethod
        def balance_must_not_be_negative(cls, value):
            if value < 0:
                raise ValueError("balance must not be negative")
            return value

    Account.bind_collection("accounts")
    return Account


@pytest.fixture
def user_model(entity_base):
    return define_user_model(entity_base)


@pytest.fixture
def account_model(entity_base):
    return define_account_model(entity_base)


@pytest.fixture
def users(fake_db):
    """The fake 'users' collection."""
    return fake_db["users"]
