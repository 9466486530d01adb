from __future__ import annotations

from datetime import date, datetime
from typing import Any

TYPE_TAG = "__crossflow_type__"


class DataSerializer:
    """
    Encode step data into JSON-safe values that can be restored exactly.

    JSON has no datetime, tuple or set, so those values are wrapped in a
    tagged dict. Everything else is passed through unchanged.
    """

    @staticmethod
    def encode(value: Any) -> Any:
        if isinstance(value, datetime):
            return {TYPE_TAG: "datetime", "value": value.isoformat()}
        if isinstance(value, date):
            return {TYPE_TAG: "date", "value": value.isoformat()}
        if isinstance(value, tuple):
            return {TYPE_TAG: "tuple", "items": [DataSerializer.encode(v) for v in value]}
        if isinstance(value, (set, frozenset)):
            return {
                TYPE_TAG: type(value).__name__,
                "items": [DataSerializer.encode(v) for v in value],
            }
        if isinstance(value, dict):
            return {k: DataSerializer.encode(v) for k, v in value.items()}
        if isinstance(value, list):
            return [DataSerializer.encode(v) for v in value]
        return value


class DataDeserializer:
    """Reverse of ``DataSerializer.encode``."""

    _RESTORERS = {
        "datetime": lambda doc: datetime.fromisoformat(doc["value"]),
        "date": lambda doc: date.fromisoformat(doc["value"]),
        "tuple": lambda doc: tuple(DataDeserializer.decode(v) for v in doc["items"]),
        "set": lambda doc: {DataDeserializer.decode(v) for v in doc["items"]},
        "frozenset": lambda doc: frozenset(DataDeserializer.decode(v) for v in doc["items"]),
    }

    @staticmethod
    def decode(value: Any) -> Any:
        if isinstance(value, dict):
            tag = value.get(TYPE_TAG)
            if tag is not None:
                try:
                    restore = DataDeserializer._RESTORERS[tag]
                except KeyError:
                    raise ValueError(f"Unknown encoded data type '{tag}'") from None
                return restore(value)
            return {k: DataDeserializer.decode(v) for k, v in value.items()}
        if isinstance(value, list):
            return [DataDeserializer.decode(v) for v in value]
        return value
