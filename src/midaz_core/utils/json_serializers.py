"""Shared JSON serialization utilities for structured logs."""

from dataclasses import asdict, is_dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel


def json_serializer(obj: Any) -> Any:
    """
    Type-safe fallback serializer for json.dumps.

    - datetime/date → ISO 8601 string
    - Decimal → string (ledger amounts must not lose precision)
    - Enum → value
    - pydantic models → model_dump(by_alias=True)
    - dataclasses → dict
    - sets/frozensets → sorted list
    - Everything else → str()
    """
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, Decimal):
        return str(obj)
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, BaseModel):
        return obj.model_dump(by_alias=True)
    if is_dataclass(obj) and not isinstance(obj, type):
        return asdict(obj)
    if isinstance(obj, (set, frozenset)):
        return sorted(obj, key=str)
    return str(obj)


__all__ = ["json_serializer"]
