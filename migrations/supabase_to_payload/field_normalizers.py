"""
Normalizers for loosely-typed source fields.

Supabase hands back JSON columns either as decoded values or, for rows that
were written through older clients, as JSON-encoded strings. Each such field
is classified into a tagged union (``RawJson`` | ``Structured``) and resolved
by a single function, so the transformer never type-checks field shapes ad hoc.

All normalizers return the normalized value together with an optional issue
message; they never raise on bad input.
"""

import json
import math
import re
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any, Callable, NamedTuple

from db.enums import SOURCE_ENUM_ALIASES

_NON_ALPHANUMERIC = re.compile(r"[^a-zA-Z0-9]")
# Postgres renders UTC offsets as "+00"; fromisoformat wants "+00:00"
_SHORT_UTC_OFFSET = re.compile(r"(\d{2}:\d{2}(?::\d{2}(?:\.\d+)?)?)([+-]\d{2})$")


@dataclass(frozen=True)
class RawJson:
    """A JSON document still encoded as a string"""

    text: str


@dataclass(frozen=True)
class Structured:
    """An already-decoded JSON value"""

    value: Any


JsonField = RawJson | Structured


class Normalized(NamedTuple):
    value: Any
    issue: str | None = None
    defaulted: bool = False


def classify_json_field(value: Any) -> JsonField | None:
    if value is None:
        return None
    if isinstance(value, str):
        return RawJson(value)
    return Structured(value)


def resolve_json_field(value: Any, expected: type, default: Callable[[], Any]) -> Normalized:
    """Resolve a raw-or-structured JSON field to a value of the expected type.

    Missing values and empty strings resolve to ``default()`` silently; values
    that cannot be decoded or decode to the wrong type resolve to
    ``default()`` with an issue describing the problem.
    """
    match classify_json_field(value):
        case None:
            return Normalized(default())
        case RawJson(text=text):
            if not text.strip():
                return Normalized(default())
            try:
                decoded = json.loads(text)
            except json.JSONDecodeError as e:
                return Normalized(default(), f"malformed JSON string ({e.msg})")
            if decoded is None:
                return Normalized(default())
            if not isinstance(decoded, expected):
                return Normalized(
                    default(), f"expected {expected.__name__}, decoded {type(decoded).__name__}"
                )
            return Normalized(decoded)
        case Structured(value=structured):
            if not isinstance(structured, expected):
                return Normalized(default(), f"expected {expected.__name__}, found {type(structured).__name__}")
            return Normalized(structured)


def normalize_destinations(value: Any) -> Normalized:
    return resolve_json_field(value, list, list)


def normalize_notifications(value: Any) -> Normalized:
    return resolve_json_field(value, dict, dict)


def as_reference(value: Any) -> str | None:
    """Reduce a relationship value to the referenced identifier string"""
    if value is None or value == "":
        return None
    if isinstance(value, dict):
        ref = value.get("id")
        return str(ref) if ref not in (None, "") else None
    return str(value)


def normalize_travelers(value: Any) -> Normalized:
    """Travelers arrive as identifiers, traveler objects, or a JSON string of either"""
    resolved = resolve_json_field(value, list, list)
    references = []
    issues = [resolved.issue] if resolved.issue else []
    for traveler in resolved.value:
        ref = as_reference(traveler)
        if ref is None:
            issues.append(f"traveler entry without identifier dropped: {traveler!r}")
            continue
        references.append(ref)
    return Normalized(references, "; ".join(issues) or None)


def normalize_number(value: Any, default: int | float = 0) -> Normalized:
    """Numeric columns may come back as numbers or, for Postgres numerics, as strings"""
    if value is None or value == "":
        return Normalized(default)
    if isinstance(value, bool):
        return Normalized(default, f"expected number, found {value!r}")
    if isinstance(value, (int, float)):
        return Normalized(value)
    try:
        number = float(str(value).strip())
    except ValueError:
        return Normalized(default, f"unparseable number {value!r}")
    if not math.isfinite(number):
        return Normalized(default, f"unparseable number {value!r}")
    return Normalized(int(number) if number.is_integer() else number)


def parse_timestamp(value: Any) -> datetime | None:
    """Parse a source timestamp, returning None when it is missing or unreadable"""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        # Numeric timestamps are milliseconds since the epoch
        try:
            return datetime.fromtimestamp(value / 1000, tz=UTC)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(value, str):
        text = _SHORT_UTC_OFFSET.sub(r"\1\2:00", value.strip())
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def format_timestamp(moment: datetime) -> str:
    return moment.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def normalize_date(value: Any, fallback: str) -> Normalized:
    """Normalize to an ISO-8601 UTC timestamp; missing or unreadable values become ``fallback``"""
    parsed = parse_timestamp(value)
    if parsed is None:
        issue = None if value in (None, "") else f"unparseable date {value!r}"
        return Normalized(fallback, issue, defaulted=True)
    return Normalized(format_timestamp(parsed))


def normalize_optional_date(value: Any) -> str | None:
    parsed = parse_timestamp(value)
    return format_timestamp(parsed) if parsed else None


def resolve_enum(value: Any, enum_cls: type[StrEnum], default: StrEnum) -> Normalized:
    """Map a source enum value onto the destination enum"""
    if value is None or value == "":
        return Normalized(str(default))
    key = str(value).strip().lower()
    if key in {member.value for member in enum_cls}:
        return Normalized(key)
    alias = SOURCE_ENUM_ALIASES.get(enum_cls, {}).get(key)
    if alias is not None:
        return Normalized(str(alias))
    return Normalized(str(default), f"unknown {enum_cls.__name__} {value!r}, using {default.value!r}")


def storage_media_id(bucket: str, name: str) -> str:
    """Deterministic media identifier for a Storage object"""
    return f"storage-{bucket}-{_NON_ALPHANUMERIC.sub('-', name)}"
