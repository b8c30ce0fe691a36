"""
Data models for storage layer.

Defines the usage ledger entry and its JSON line encoding.
"""

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict


def format_timestamp(moment: datetime) -> str:
    """Render an instant as ISO-8601 UTC with millisecond precision and a Z suffix."""
    if moment.tzinfo is None:
        moment = moment.astimezone()
    utc = moment.astimezone(timezone.utc)
    return utc.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp into an aware datetime.

    Naive timestamps are interpreted as local time.

    Raises:
        ValueError: If the value is not a valid timestamp
    """
    if not isinstance(value, str):
        raise ValueError(f"timestamp must be a string, got {type(value).__name__}")
    if value.endswith(("Z", "z")):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.astimezone()
    return parsed


@dataclass(frozen=True)
class UsageEntry:
    """Immutable record of one API call and its estimated cost.

    Entries form an append-only ledger; once written they are never
    modified or removed individually.
    """
    timestamp: datetime
    endpoint: str
    method: str
    estimated_cost: float

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UsageEntry":
        """Decode one ledger line.

        Raises:
            ValueError: If required fields are missing or malformed
        """
        if not isinstance(data, dict):
            raise ValueError("usage entry must be an object")
        try:
            cost = data["estimatedCost"]
            timestamp = parse_timestamp(data["timestamp"])
        except KeyError as e:
            raise ValueError(f"usage entry missing {e}")
        if isinstance(cost, bool) or not isinstance(cost, (int, float)):
            raise ValueError("estimatedCost must be a number")
        if not math.isfinite(cost):
            raise ValueError("estimatedCost must be finite")
        return cls(
            timestamp=timestamp,
            endpoint=str(data.get("endpoint", "")),
            method=str(data.get("method", "GET")),
            estimated_cost=float(cost),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": format_timestamp(self.timestamp),
            "endpoint": self.endpoint,
            "method": self.method,
            "estimatedCost": self.estimated_cost,
        }
