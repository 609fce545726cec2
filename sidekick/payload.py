"""The Falco event payload and its JSON and time formatting."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import IntEnum
from typing import Any, Mapping

ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)

_RFC3339 = re.compile(
    r"(\d{4})-(\d{2})-(\d{2})[Tt](\d{2}):(\d{2}):(\d{2})(?:\.(\d+))?([Zz]|[+-]\d{2}:\d{2})$"
)


class Priority(IntEnum):
    """Severity of an event, ordered from least to most severe."""

    DEFAULT = 0
    DEBUG = 1
    INFORMATIONAL = 2
    NOTICE = 3
    WARNING = 4
    ERROR = 5
    CRITICAL = 6
    ALERT = 7
    EMERGENCY = 8

    @classmethod
    def parse(cls, value: str) -> "Priority":
        """Return the priority named by ``value`` (any case), or DEFAULT."""
        if not isinstance(value, str):
            return cls.DEFAULT
        return cls.__members__.get(value.upper(), cls.DEFAULT)

    def __str__(self) -> str:
        return "" if self is Priority.DEFAULT else self.name.capitalize()

    def __format__(self, spec: str) -> str:
        return format(str(self), spec)


def _parse_time(text: str) -> datetime:
    match = _RFC3339.match(text)
    if match is None:
        raise ValueError(f"invalid RFC 3339 time: {text!r}")
    year, month, day, hour, minute, second = (int(match.group(i)) for i in range(1, 7))
    fraction = (match.group(7) or "")[:6].ljust(6, "0")
    zone = match.group(8)
    if zone in ("Z", "z"):
        tzinfo = timezone.utc
    else:
        sign = -1 if zone[0] == "-" else 1
        offset = timedelta(hours=int(zone[1:3]), minutes=int(zone[4:6]))
        tzinfo = timezone(sign * offset)
    return datetime(year, month, day, hour, minute, second, int(fraction), tzinfo=tzinfo)


def _offset(value: datetime) -> timedelta:
    return value.utcoffset() or timedelta(0)


def _offset_digits(offset: timedelta, separator: str) -> str:
    sign = "-" if offset < timedelta(0) else "+"
    minutes = abs(int(offset.total_seconds())) // 60
    return f"{sign}{minutes // 60:02d}{separator}{minutes % 60:02d}"


def _clock(value: datetime, separator: str) -> str:
    text = (
        f"{value.year:04d}-{value.month:02d}-{value.day:02d}{separator}"
        f"{value.hour:02d}:{value.minute:02d}:{value.second:02d}"
    )
    if value.microsecond:
        text += "." + f"{value.microsecond:06d}".rstrip("0")
    return text


def format_go_time(value: datetime) -> str:
    """Format a datetime as ``2006-01-02 15:04:05.999999999 -0700 MST``."""
    offset = _offset(value)
    digits = _offset_digits(offset, "")
    zone = "UTC" if offset == timedelta(0) else digits
    return f"{_clock(value, ' ')} {digits} {zone}"


def _format_rfc3339(value: datetime) -> str:
    offset = _offset(value)
    zone = "Z" if offset == timedelta(0) else _offset_digits(offset, ":")
    return _clock(value, "T") + zone


@dataclass
class FalcoPayload:
    """An event as sent by Falco."""

    output: str = ""
    priority: Priority = Priority.DEFAULT
    rule: str = ""
    time: datetime = ZERO_TIME
    output_fields: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "FalcoPayload":
        """Build a payload from decoded JSON; keys match case-insensitively."""
        if not isinstance(data, Mapping):
            raise ValueError("payload must be a JSON object")
        payload = cls()
        for key, value in data.items():
            name = str(key).lower()
            if value is None:
                continue
            if name in ("output", "rule"):
                if not isinstance(value, str):
                    raise ValueError(f"field {key!r} must be a string")
                setattr(payload, name, value)
            elif name == "priority":
                if not isinstance(value, str):
                    raise ValueError("field 'priority' must be a string")
                payload.priority = Priority.parse(value)
            elif name == "time":
                if not isinstance(value, str):
                    raise ValueError("field 'time' must be a string")
                payload.time = _parse_time(value)
            elif name == "output_fields":
                if not isinstance(value, Mapping):
                    raise ValueError("field 'output_fields' must be an object")
                payload.output_fields = dict(value)
        return payload

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON-ready form of the payload."""
        return {
            "output": self.output,
            "priority": str(self.priority),
            "rule": self.rule,
            "time": _format_rfc3339(self.time),
            "output_fields": dict(self.output_fields),
        }

    def to_json(self) -> str:
        """Serialise the payload as compact JSON."""
        return json.dumps(self.to_dict(), separators=(",", ":"), ensure_ascii=False)

    def time_string(self) -> str:
        """Return the event time in the daemon's display format."""
        return format_go_time(self.time)


def parse_payload(data: str | bytes, custom_fields: Mapping[str, str] | None = None) -> FalcoPayload:
    """Decode the first JSON value of ``data`` and merge in custom fields.

    Raises ValueError when the body is not a valid payload.
    """
    if isinstance(data, (bytes, bytearray)):
        data = bytes(data).decode("utf-8")
    value, _ = json.JSONDecoder().raw_decode(data.lstrip())
    payload = FalcoPayload() if value is None else FalcoPayload.from_dict(value)
    if custom_fields:
        payload.output_fields.update(custom_fields)
    return payload