# tests/base/test_conversion.py

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum

from bson import Timestamp
from pydantic import BaseModel

from async_odm.base.conversion import convert_provider_types, prepare_for_storage

INSTANT = datetime(2024, 5, 17, 12, 30, 0, tzinfo=timezone.utc)


def ts(moment: datetime = INSTANT) -> Timestamp:
    return Timestamp(int(moment.timestamp()), 1)


class BrokenTimestamp:
    def as_datetime(self):
        raise OverflowError("out of range")


class Holder:
    """A non-plain object that happens to hold a timestamp."""

    def __init__(self):
        self.when = ts()


# =============================================================================
# convert_provider_types
# =============================================================================


def test_none_is_returned_unchanged():
    assert convert_provider_types(None) is None


def test_timestamp_becomes_datetime_for_same_instant():
    converted = convert_provider_types(ts())
    assert isinstance(converted, datetime)
    assert converted == INSTANT


def test_nested_mappings_and_sequences_are_converted():
    record = {
        "name": "x",
        "profile": {"joined": ts(), "history": [ts(), {"at": ts()}]},
        "pair": (ts(), 3),
    }
    converted = convert_provider_types(record)
    assert converted["name"] == "x"
    assert converted["profile"]["joined"] == INSTANT
    assert converted["profile"]["history"] == [INSTANT, {"at": INSTANT}]
    assert converted["pair"] == (INSTANT, 3)


def test_failed_conversion_keeps_original_value():
    broken = BrokenTimestamp()
    assert convert_provider_types({"v": broken})["v"] is broken


def test_non_plain_objects_are_not_entered():
    holder = Holder()
    result = convert_provider_types({"holder": holder})
    assert result["holder"] is holder
    assert isinstance(holder.when, Timestamp)


def test_pydantic_models_are_not_entered():
    class Wrapper(BaseModel):
        value: int = 1

    wrapper = Wrapper()
    assert convert_provider_types([wrapper])[0] is wrapper


def test_conversion_is_idempotent():
    record = {"a": ts(), "b": [ts(), {"c": ts()}], "d": "text", "e": 5}
    once = convert_provider_types(record)
    twice = convert_provider_types(once)
    assert once == twice


def test_plain_values_are_untouched():
    for value in ("s", 1, 2.5, True, b"bytes", INSTANT):
        assert convert_provider_types(value) == value


def test_naive_datetimes_are_marked_utc():
    naive = INSTANT.replace(tzinfo=None)
    converted = convert_provider_types({"at": naive, "history": [naive]})
    assert converted == {"at": INSTANT, "history": [INSTANT]}
    assert converted["at"].tzinfo is timezone.utc
    assert convert_provider_types(converted) == converted


def test_aware_datetimes_keep_their_offset():
    oslo = timezone(timedelta(hours=2))
    moment = datetime(2024, 5, 17, 14, 30, tzinfo=oslo)
    assert convert_provider_types(moment).tzinfo is oslo


# =============================================================================
# prepare_for_storage
# =============================================================================


class Color(Enum):
    RED = "red"


class Address(BaseModel):
    city: str
    tags: set = set()


@dataclass
class Point:
    x: int
    y: int


def test_prepare_for_storage_handles_nested_types():
    prepared = prepare_for_storage(
        {
            "address": Address(city="Oslo", tags={"a"}),
            "point": Point(1, 2),
            "color": Color.RED,
            "items": ("a", "b"),
            "when": INSTANT,
        }
    )
    assert prepared == {
        "address": {"city": "Oslo", "tags": ["a"]},
        "point": {"x": 1, "y": 2},
        "color": "red",
        "items": ["a", "b"],
        "when": INSTANT,
    }


def test_prepare_for_storage_keeps_none_and_timestamps():
    stamp = ts()
    assert prepare_for_storage(None) is None
    assert prepare_for_storage(stamp) is stamp
