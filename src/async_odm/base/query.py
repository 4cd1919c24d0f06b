# src/async_odm/base/query.py
import copy
import logging
from dataclasses import dataclass, field
from enum import Enum
from types import SimpleNamespace
from typing import (
    Any,
    Dict,
    Generic,
    List,
    Mapping,
    Optional,
    Tuple,
    Type,
    TypeVar,
    Union,
    get_type_hints,
)

# --- Setup Logging ---
log = logging.getLogger(__name__)

# --- Generic Type Variables ---
T = TypeVar("T")
M = TypeVar("M")


# --- Operator / Direction Enums ---
class QueryOperator(Enum):
    """Comparison operators accepted in a field condition."""

    EQUALS = "equals"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"


class SortDirection(Enum):
    """Direction of the single sort field."""

    ASC = "asc"
    DESC = "desc"


_OPTION_KEYS = {"where", "orderBy", "order_by", "limit"}


def _parse_condition(field_name: str, condition: Any) -> Dict[QueryOperator, Any]:
    """Turns ``{"gte": 18, "lt": 65}`` into ``{QueryOperator.GTE: 18, ...}``."""
    if not isinstance(condition, Mapping):
        raise ValueError(
            f"Condition for field '{field_name}' must be a mapping of operator "
            f"to value, got {type(condition).__name__}"
        )
    parsed: Dict[QueryOperator, Any] = {}
    for op_name, value in condition.items():
        try:
            operator = (
                op_name
                if isinstance(op_name, QueryOperator)
                else QueryOperator(op_name)
            )
        except ValueError:
            valid = ", ".join(op.value for op in QueryOperator)
            raise ValueError(
                f"Unsupported operator '{op_name}' for field '{field_name}'. "
                f"Expected one of: {valid}"
            ) from None
        parsed[operator] = value
    return parsed


def _parse_direction(field_name: str, direction: Any) -> SortDirection:
    if isinstance(direction, SortDirection):
        return direction
    try:
        return SortDirection(direction)
    except ValueError:
        raise ValueError(
            f"Sort direction for field '{field_name}' must be 'asc' or 'desc', "
            f"got {direction!r}"
        ) from None


def _check_limit(limit: Any) -> Optional[int]:
    if limit is None:
        return None
    if isinstance(limit, bool) or not isinstance(limit, int) or limit < 0:
        raise ValueError("Limit must be a non-negative integer.")
    return limit


# --- Query Options ---
@dataclass
class QueryOptions:
    """
    Declarative filter/sort/limit options for ``find_many`` and ``delete_many``.

    ``where`` maps a field name to its operator constraints; every constraint
    of every field is ANDed. ``order_by`` holds at most one (field, direction)
    pair. A ``limit`` of ``None`` or ``0`` means no limit.
    """

    where: Dict[str, Dict[QueryOperator, Any]] = field(default_factory=dict)
    order_by: Optional[Tuple[str, SortDirection]] = None
    limit: Optional[int] = None

    def __repr__(self) -> str:
        parts = []
        if self.where:
            where_repr = {
                name: {op.value: value for op, value in cond.items()}
                for name, cond in self.where.items()
            }
            parts.append(f"where={where_repr!r}")
        if self.order_by:
            parts.append(f"order_by=({self.order_by[0]!r}, {self.order_by[1].value!r})")
        if self.limit is not None:
            parts.append(f"limit={self.limit!r}")
        return f"QueryOptions({', '.join(parts)})"

    def copy(self) -> "QueryOptions":
        """Creates a copy whose ``where`` mapping can be modified independently."""
        duplicate = copy.copy(self)
        duplicate.where = {name: dict(cond) for name, cond in self.where.items()}
        return duplicate

    @classmethod
    def from_mapping(
        cls,
        options: Mapping[str, Any],
        logger: Union[logging.Logger, logging.LoggerAdapter, None] = None,
    ) -> "QueryOptions":
        """
        Parses the mapping form of query options.

        Accepted shape::

            {
                "where": {"age": {"gte": 18}},
                "orderBy": {"age": "asc"},   # "order_by" is accepted too
                "limit": 2,
            }

        Only the first entry of ``orderBy`` is honored; ordering by more than
        one field is not supported. The ignored entries are reported as a
        warning on ``logger`` (the module logger when none is given).

        Raises:
            ValueError: On unknown keys, operators or directions, or an invalid limit.
        """
        unknown = set(options) - _OPTION_KEYS
        if unknown:
            raise ValueError(f"Unknown query option(s): {sorted(unknown)}")

        where_raw = options.get("where") or {}
        if not isinstance(where_raw, Mapping):
            raise ValueError("'where' must be a mapping of field name to condition.")
        where = {
            field_name: _parse_condition(field_name, condition)
            for field_name, condition in where_raw.items()
        }

        order_raw = options.get("orderBy", options.get("order_by"))
        order_by = None
        if order_raw:
            if not isinstance(order_raw, Mapping):
                raise ValueError("'orderBy' must be a mapping of field name to direction.")
            entries = list(order_raw.items())
            if len(entries) > 1:
                (logger or log).warning(
                    f"Only one sort field is supported; ordering by '{entries[0][0]}' "
                    f"and ignoring {[name for name, _ in entries[1:]]}"
                )
            field_name, direction = entries[0]
            order_by = (field_name, _parse_direction(field_name, direction))

        return cls(where=where, order_by=order_by, limit=_check_limit(options.get("limit")))

    @classmethod
    def coerce(
        cls,
        options: Union["QueryOptions", Mapping[str, Any], None],
        logger: Union[logging.Logger, logging.LoggerAdapter, None] = None,
    ) -> "QueryOptions":
        """Accepts ``None``, a mapping or a ``QueryOptions`` and returns ``QueryOptions``."""
        if options is None:
            return cls()
        if isinstance(options, QueryOptions):
            return options
        if isinstance(options, Mapping):
            return cls.from_mapping(options, logger)
        raise TypeError(
            f"Query options must be a QueryOptions or a mapping, got {type(options).__name__}"
        )


# --- Internal Expression Classes (Used by Builder API) ---
class Expression:
    """Base class for builder expressions; conditions combine with ``&``."""

    def __and__(self, other: "Expression") -> "CombinedCondition":
        log.debug(f"Combining expressions with AND: {self!r} & {other!r}")
        return CombinedCondition(self, other)

    def conditions(self) -> List["FilterCondition"]:
        raise NotImplementedError


class FilterCondition(Expression, Generic[T]):
    """Represents a single filter condition (field OP value)."""

    field_path: str
    operator: QueryOperator
    value: Any

    def __init__(self, field_path: str, operator: QueryOperator, value: Any):
        self.field_path = field_path
        self.operator = operator
        self.value = value

    def conditions(self) -> List["FilterCondition"]:
        return [self]

    def __repr__(self) -> str:
        return (
            f"FilterCondition({self.field_path!r}, {self.operator.value!r}, "
            f"{self.value!r})"
        )


class CombinedCondition(Expression):
    """ANDs two expressions together."""

    left: Expression
    right: Expression

    def __init__(self, left: Expression, right: Expression):
        self.left = left
        self.right = right

    def conditions(self) -> List[FilterCondition]:
        return self.left.conditions() + self.right.conditions()

    def __repr__(self) -> str:
        return f"CombinedCondition({self.left!r}, {self.right!r})"


# --- Field Representation ---
class Field(Generic[T]):
    """Represents a queryable top-level field."""

    _path: str

    def __init__(self, path: str):
        object.__setattr__(self, "_path", path)

    @property
    def path(self) -> str:
        return self._path

    def _op(self, operator: QueryOperator, other: Any) -> FilterCondition[T]:
        log.debug(f"Creating filter: Field('{self._path}') {operator.value} {other!r}")
        return FilterCondition(self._path, operator, other)

    def __eq__(self, other: Any) -> FilterCondition[T]:  # type: ignore[override]
        return self._op(QueryOperator.EQUALS, other)

    def __gt__(self, other: Any) -> FilterCondition[T]:
        return self._op(QueryOperator.GT, other)

    def __ge__(self, other: Any) -> FilterCondition[T]:
        return self._op(QueryOperator.GTE, other)

    def __lt__(self, other: Any) -> FilterCondition[T]:
        return self._op(QueryOperator.LT, other)

    def __le__(self, other: Any) -> FilterCondition[T]:
        return self._op(QueryOperator.LTE, other)

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"Field(path={self._path!r})"

    def __setattr__(self, name: str, value: Any):
        raise AttributeError(f"Cannot set attribute '{name}' on Field object.")


# --- Fields Proxy Generation ---
_PROXY_CACHE: Dict[Type, SimpleNamespace] = {}


def _model_field_names(model_cls: Type[Any]) -> List[str]:
    """Field names of a pydantic model or annotated class, plus ``id``."""
    if hasattr(model_cls, "model_fields"):
        names = list(model_cls.model_fields.keys())
    else:
        try:
            names = list(get_type_hints(model_cls).keys())
        except (TypeError, NameError) as e:
            log.warning(
                f"get_type_hints failed for {model_cls.__name__}: {e}. "
                "Falling back to __annotations__."
            )
            names = list(getattr(model_cls, "__annotations__", {}).keys())
    if "id" not in names:
        names.append("id")
    return [name for name in names if not name.startswith("_")]


def _generate_fields_proxy(model_cls: Type[M]) -> SimpleNamespace:
    """Creates a SimpleNamespace holding a Field per model field."""
    if model_cls in _PROXY_CACHE:
        return _PROXY_CACHE[model_cls]

    log.debug(f"Generating fields proxy object for {model_cls.__name__}")
    proxy_obj = SimpleNamespace()
    for name in _model_field_names(model_cls):
        setattr(proxy_obj, name, Field(name))
    _PROXY_CACHE[model_cls] = proxy_obj
    return proxy_obj


class GenericFieldsProxy:
    """Creates Field instances dynamically for any attribute access."""

    __slots__ = ()

    def __getattr__(self, name: str) -> Field[Any]:
        if name.startswith("_"):
            raise AttributeError(f"No attribute '{name}'")
        return Field(name)

    def __dir__(self) -> List[str]:
        return []


# --- Query Builder ---
def _tighter_bound(
    field_path: str, operator: QueryOperator, current: Any, new: Any
) -> Any:
    if operator == QueryOperator.EQUALS:
        if current != new:
            raise ValueError(
                f"Conflicting equality conditions on '{field_path}': "
                f"{current!r} and {new!r}"
            )
        return current
    try:
        if operator in (QueryOperator.GT, QueryOperator.GTE):
            return max(current, new)
        return min(current, new)
    except TypeError as e:
        raise ValueError(
            f"Cannot combine {operator.value} bounds {current!r} and {new!r} "
            f"on '{field_path}'"
        ) from e


class QueryBuilder(Generic[M]):
    """
    Builds ``QueryOptions`` with a fluent API::

        qb = QueryBuilder(User)
        options = (
            qb.filter(qb.fields.age >= 18)
            .sort_by(qb.fields.age)
            .limit(2)
            .build()
        )

    When a model class is given, ``fields`` only exposes that model's fields
    and accessing an unknown one raises ``AttributeError``.
    """

    model_cls: Optional[Type[M]]
    fields: Any  # SimpleNamespace or GenericFieldsProxy

    def __init__(self, model_cls: Optional[Type[M]] = None):
        self.model_cls = model_cls
        self._where: Dict[str, Dict[QueryOperator, Any]] = {}
        self._order_by: Optional[Tuple[str, SortDirection]] = None
        self._limit: Optional[int] = None
        if model_cls is not None:
            self.fields = _generate_fields_proxy(model_cls)
            self._known_fields = set(vars(self.fields))
        else:
            self.fields = GenericFieldsProxy()
            self._known_fields = None

    def _check_path(self, path: str) -> None:
        if self._known_fields is not None and path not in self._known_fields:
            raise AttributeError(
                f"'{path}' is not a field of {self.model_cls.__name__}"
            )

    def filter(self, expr: Expression) -> "QueryBuilder[M]":
        """
        Adds a condition, ANDed with everything added before.

        A second bound on the same field and operator keeps the tighter one
        (``(age > 5) & (age > 10)`` filters on ``age > 10``). Two different
        ``==`` values on one field can never both hold and raise ``ValueError``.
        """
        if not isinstance(expr, Expression):
            raise TypeError(
                f"filter() requires an Expression object, got {type(expr).__name__}"
            )
        for condition in expr.conditions():
            self._check_path(condition.field_path)
            field_where = self._where.setdefault(condition.field_path, {})
            if condition.operator in field_where:
                field_where[condition.operator] = _tighter_bound(
                    condition.field_path,
                    condition.operator,
                    field_where[condition.operator],
                    condition.value,
                )
            else:
                field_where[condition.operator] = condition.value
        log.debug(f"Current where clause is now: {self._where!r}")
        return self

    def sort_by(self, field: Field[Any], descending: bool = False) -> "QueryBuilder[M]":
        """Sets the single sort field, replacing any previous one."""
        if not isinstance(field, Field):
            raise TypeError("sort_by requires a Field object")
        self._check_path(field.path)
        direction = SortDirection.DESC if descending else SortDirection.ASC
        self._order_by = (field.path, direction)
        return self

    def limit(self, num: int) -> "QueryBuilder[M]":
        """Sets the query limit."""
        self._limit = _check_limit(num)
        return self

    def build(self) -> QueryOptions:
        options = QueryOptions(
            where={name: dict(cond) for name, cond in self._where.items()},
            order_by=self._order_by,
            limit=self._limit,
        )
        model_name = self.model_cls.__name__ if self.model_cls else "Generic"
        log.debug(f"Built query options for {model_name} model: {options!r}")
        return options
