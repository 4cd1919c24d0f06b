# src/async_odm/base/entity.py

import logging
from contextlib import asynccontextmanager
from logging import LoggerAdapter
from typing import (
    Any,
    AsyncIterator,
    ClassVar,
    Dict,
    List,
    Mapping,
    Optional,
    Set,
    Type,
    TypeVar,
    Union,
)

from motor.motor_asyncio import AsyncIOMotorCollection, AsyncIOMotorDatabase
from pydantic import BaseModel, ConfigDict
from pydantic import ValidationError as PydanticValidationError
from pymongo.errors import PyMongoError

from async_odm.base.conversion import convert_provider_types, prepare_for_storage
from async_odm.base.exceptions import (
    ConfigurationError,
    InvalidStateError,
    ValidationError,
)
from async_odm.base.query import QueryOptions
from async_odm.mongodb.batch import delete_in_batches
from async_odm.mongodb.translation import (
    APP_ID_FIELD,
    DB_ID_FIELD,
    to_app_id,
    to_db_id,
    translate_filter,
    translate_limit,
    translate_sort,
)

# --- Type Variables ---
E = TypeVar("E", bound="Entity")
QueryInput = Union[QueryOptions, Mapping[str, Any], None]
OptionalLogger = Union[LoggerAdapter, logging.Logger, None]

base_logger = logging.getLogger(__name__)


class Entity(BaseModel):
    """
    Base type for documents stored in a MongoDB collection.

    Concrete entity types derive from a base produced by
    :func:`create_entity_base`, declare their fields as pydantic fields and
    bind a collection name::

        BaseEntity = create_entity_base(database)

        class User(BaseEntity):
            __collection__ = "users"

            name: str
            age: int = 0

    The collection can also be bound after the class body with
    ``User.bind_collection("users")``. Constructing an entity whose type has
    no collection binding raises :class:`ConfigurationError`.

    ``id`` holds the database identifier as a string. It is ``None`` until the
    entity is saved or loaded.
    """

    model_config = ConfigDict(extra="ignore")

    __collection__: ClassVar[Optional[str]] = None
    __database__: ClassVar[Optional[AsyncIOMotorDatabase]] = None

    id: Optional[str] = None

    def __init__(self, **data: Any):
        if not type(self).__collection__:
            raise ConfigurationError(
                f"no collection binding found for {type(self).__name__}"
            )
        super().__init__(**data)

    @property
    def collection(self) -> str:
        """Name of the collection this entity is stored in."""
        return type(self).__collection__

    # --- Configuration ---

    @classmethod
    def bind_collection(cls, name: str) -> None:
        """Binds this entity type to the collection ``name``."""
        if not isinstance(name, str) or not name:
            raise ConfigurationError(
                f"Collection name for {cls.__name__} must be a non-empty string."
            )
        cls.__collection__ = name
        cls._get_logger().debug(f"Bound {cls.__name__} to collection '{name}'.")

    @classmethod
    def _get_logger(cls) -> logging.Logger:
        return logging.getLogger(f"{__name__}.{cls.__name__}")

    @classmethod
    def _resolve_logger(cls, logger: OptionalLogger) -> Union[LoggerAdapter, logging.Logger]:
        return logger if logger is not None else cls._get_logger()

    @classmethod
    def _get_collection(cls) -> AsyncIOMotorCollection:
        if cls.__database__ is None:
            raise ConfigurationError(
                f"no database bound for {cls.__name__}; derive it from a base "
                "returned by create_entity_base()"
            )
        if not cls.__collection__:
            raise ConfigurationError(f"no collection binding found for {cls.__name__}")
        return cls.__database__[cls.__collection__]

    @classmethod
    @asynccontextmanager
    async def _session(
        cls, logger: Union[LoggerAdapter, logging.Logger], context: str
    ) -> AsyncIterator[AsyncIOMotorCollection]:
        """
        Provides the collection object. Driver errors are logged and
        propagate unchanged to the caller.
        """
        collection = cls._get_collection()
        try:
            yield collection
        except PyMongoError as e:
            logger.error(
                f"MongoDB error during {context} on '{cls.__collection__}': {e}",
                exc_info=True,
            )
            raise

    # --- Serialization Helpers ---

    def _validated_copy(self: E) -> E:
        """Runs the model's validators over the current field values."""
        values = {name: getattr(self, name) for name in type(self).model_fields}
        try:
            return type(self).model_validate(values)
        except PydanticValidationError as e:
            raise ValidationError(
                f"{type(self).__name__} failed validation with "
                f"{e.error_count()} error(s): {e}",
                errors=e.errors(),
            ) from e

    def _merge_fields(self) -> Set[str]:
        """
        Fields written when merging into a stored document: every field given
        a value, plus any field whose value no longer equals its default
        (defaults mutated in place, such as ``user.tags.append(...)``).
        """
        names = set(self.model_fields_set)
        for name, field_info in type(self).model_fields.items():
            if name in names or field_info.is_required():
                continue
            if getattr(self, name) != field_info.get_default(call_default_factory=True):
                names.add(name)
        return names

    @staticmethod
    def _storage_data(entity: "Entity", include: Optional[Set[str]] = None) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        for name in type(entity).model_fields:
            if name == APP_ID_FIELD:
                continue
            if include is not None and name not in include:
                continue
            data[name] = prepare_for_storage(getattr(entity, name))
        return data

    @classmethod
    def _from_record(cls: Type[E], record: Mapping[str, Any]) -> E:
        """Builds an entity from a stored document, converting provider types."""
        data = convert_provider_types(dict(record))
        data[APP_ID_FIELD] = to_app_id(data.pop(DB_ID_FIELD, None))
        try:
            return cls(**data)
        except PydanticValidationError as e:
            cls._get_logger().error(
                f"Failed to instantiate {cls.__name__} from record "
                f"'{data[APP_ID_FIELD]}': {e}"
            )
            raise ValueError(
                f"Failed to deserialize database record into {cls.__name__}"
            ) from e

    # --- Instance Operations ---

    async def save(self, logger: OptionalLogger = None) -> str:
        """
        Persist the entity and return its id.

        With an id set, the fields given a value on this instance, and any
        field changed from its default, are merged into the stored document
        (created if missing); other stored fields are left untouched. Without
        an id, a new document holding every field is inserted and the
        generated id is assigned to ``self.id``.

        Raises:
            ValidationError: If the instance fails validation. Nothing is written.
        """
        cls = type(self)
        logger = cls._resolve_logger(logger)
        validated = self._validated_copy()

        if self.id:
            data = self._storage_data(validated, self._merge_fields())
            update = {"$set": data} if data else {"$setOnInsert": {DB_ID_FIELD: to_db_id(self.id)}}
            logger.debug(f"Merging {sorted(data)} into {cls.__name__} '{self.id}'")
            async with cls._session(logger, f"saving {cls.__name__} '{self.id}'") as collection:
                await collection.update_one(
                    {DB_ID_FIELD: to_db_id(self.id)}, update, upsert=True
                )
            logger.info(f"Saved {cls.__name__} '{self.id}' (merge).")
            return self.id

        data = self._storage_data(validated)
        async with cls._session(logger, f"creating {cls.__name__}") as collection:
            result = await collection.insert_one(data)
        self.id = to_app_id(result.inserted_id)
        logger.info(f"Created {cls.__name__} '{self.id}'.")
        return self.id

    async def delete(self, logger: OptionalLogger = None) -> str:
        """
        Delete the stored document and return its id. ``self.id`` is kept.

        Raises:
            InvalidStateError: If the entity has no id.
        """
        cls = type(self)
        if not self.id:
            raise InvalidStateError(
                f"Cannot delete {cls.__name__} without an id; it was never saved."
            )
        logger = cls._resolve_logger(logger)
        async with cls._session(logger, f"deleting {cls.__name__} '{self.id}'") as collection:
            await collection.delete_one({DB_ID_FIELD: to_db_id(self.id)})
        logger.info(f"Deleted {cls.__name__} '{self.id}'.")
        return self.id

    # --- Collection Operations ---

    @classmethod
    async def find_by_id(
        cls: Type[E], id: str, logger: OptionalLogger = None
    ) -> Optional[E]:
        """Return the entity stored under ``id``, or ``None`` if there is none."""
        logger = cls._resolve_logger(logger)
        async with cls._session(logger, f"finding {cls.__name__} '{id}'") as collection:
            record = await collection.find_one({DB_ID_FIELD: to_db_id(id)})
        if record is None:
            logger.debug(f"{cls.__name__} '{id}' not found.")
            return None
        return cls._from_record(record)

    @classmethod
    async def find_many(
        cls: Type[E], options: QueryInput = None, logger: OptionalLogger = None
    ) -> List[E]:
        """
        Return the entities matching ``options``.

        Args:
            options: ``QueryOptions`` or a mapping such as
                ``{"where": {"age": {"gte": 18}}, "orderBy": {"age": "asc"}, "limit": 2}``.
                Every condition is ANDed; only one sort field is supported.
            logger: Logger for recording the operation.

        Returns:
            Matching entities, ordered by the sort field if one is given.
        """
        logger = cls._resolve_logger(logger)
        query = QueryOptions.coerce(options, logger)
        query_filter = translate_filter(query)
        sort = translate_sort(query)
        limit = translate_limit(query)
        logger.debug(
            f"Finding {cls.__name__}(s): filter={query_filter}, sort={sort}, limit={limit}"
        )

        async with cls._session(logger, f"finding {cls.__name__}(s)") as collection:
            cursor = collection.find(query_filter)
            if sort:
                cursor = cursor.sort(sort)
            if limit:
                cursor = cursor.limit(limit)
            records = [record async for record in cursor]

        return [cls._from_record(record) for record in records]

    @classmethod
    async def delete_by_id(
        cls: Type[E], id: str, logger: OptionalLogger = None
    ) -> Optional[E]:
        """
        Delete the document stored under ``id``.

        Returns:
            The entity as it was before deletion, or ``None`` if no document
            exists (no delete is issued then).
        """
        logger = cls._resolve_logger(logger)
        async with cls._session(logger, f"deleting {cls.__name__} '{id}'") as collection:
            record = await collection.find_one({DB_ID_FIELD: to_db_id(id)})
            if record is None:
                logger.debug(f"{cls.__name__} '{id}' not found; nothing to delete.")
                return None
            snapshot = cls._from_record(record)
            await collection.delete_one({DB_ID_FIELD: record[DB_ID_FIELD]})
        logger.info(f"Deleted {cls.__name__} '{id}'.")
        return snapshot

    @classmethod
    async def delete_many(
        cls: Type[E], options: QueryInput = None, logger: OptionalLogger = None
    ) -> List[E]:
        """
        Delete every document matching the filter of ``options``.

        Sort and limit are not applied; the whole filtered set is deleted in
        batches of at most 500 operations, each committed before the next.

        Returns:
            Snapshots of the deleted entities, taken before deletion.
        """
        logger = cls._resolve_logger(logger)
        query = QueryOptions.coerce(options, logger)
        if query.order_by or query.limit:
            logger.debug("delete_many ignores orderBy and limit; deleting the full filtered set.")
        query_filter = translate_filter(query)

        async with cls._session(logger, f"deleting {cls.__name__}(s)") as collection:
            records = [record async for record in collection.find(query_filter)]
            if not records:
                logger.debug(f"No {cls.__name__} matched {query_filter}; nothing to delete.")
                return []
            snapshots = [cls._from_record(record) for record in records]
            deleted = await delete_in_batches(
                collection, [record[DB_ID_FIELD] for record in records], logger
            )

        logger.info(f"Deleted {deleted} {cls.__name__}(s).")
        return snapshots


def create_entity_base(
    database: AsyncIOMotorDatabase, name: str = "BaseEntity"
) -> Type[Entity]:
    """
    Create an entity base class bound to ``database``.

    Every entity type derived from the returned class reads and writes
    through this database handle. Separate calls produce independent bases,
    so entity types can live in different databases.

    Raises:
        ConfigurationError: If ``database`` is ``None``.
    """
    if database is None:
        raise ConfigurationError("A database handle is required to create an entity base.")

    class BaseEntity(Entity):
        __database__ = database

    BaseEntity.__name__ = name
    BaseEntity.__qualname__ = name
    base_logger.debug(f"Created entity base '{name}' for database '{database.name}'.")
    return BaseEntity
