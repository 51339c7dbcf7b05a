"""
JSON artifact files exchanged between pipeline stages.

Every collection is one UTF-8 JSON array, pretty-printed with an indent of
two; every stage also writes one summary object.
"""

import json
import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from migrations.supabase_to_payload.field_normalizers import format_timestamp

logger = logging.getLogger(__name__)

JSON_INDENT = 2


def ensure_directory(directory: Path) -> Path:
    if not directory.exists():
        directory.mkdir(parents=True, exist_ok=True)
        logger.info(f"📁 Created directory: {directory}")
    return directory


def collection_path(directory: Path, name: str) -> Path:
    return directory / f"{name}.json"


def dumps(data: Any) -> str:
    return json.dumps(data, indent=JSON_INDENT, ensure_ascii=False)


def save_json(path: Path, data: Any) -> Path:
    path.write_text(dumps(data) + "\n", encoding="utf-8")
    return path


def load_json_array(path: Path) -> list[dict[str, Any]]:
    """Load a collection file.

    Raises FileNotFoundError when the file is missing and ValueError when it
    does not hold a JSON array.
    """
    data = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(data, list):
        raise ValueError(f"{path.name} must contain a JSON array, found {type(data).__name__}")
    return data


def load_json_array_or_empty(path: Path) -> list[dict[str, Any]]:
    """Load a collection file, treating a missing file as an empty collection"""
    if not path.exists():
        logger.warning(f"⚠️  File not found: {path}")
        return []
    return load_json_array(path)


def utc_timestamp(moment: datetime | None = None) -> str:
    """ISO-8601 UTC timestamp with millisecond precision and a Z suffix"""
    moment = moment or datetime.now(UTC)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    return format_timestamp(moment)
