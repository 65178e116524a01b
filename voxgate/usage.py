"""Usage history for synthesis requests.

Provides:
- UsageRecord appended after every completed synthesis call
- UsageHistory persisted as JSON under the usage_history store key,
  capped at the most recent records
- UsageStatistics with totals and per-provider breakdowns
"""

import json
import logging
import threading
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Optional

from .security.storage import KeyValueStore

logger = logging.getLogger(__name__)

USAGE_HISTORY_KEY = "usage_history"
DEFAULT_HISTORY_LIMIT = 1000


@dataclass
class UsageRecord:
    """One completed synthesis call."""

    provider_id: str
    characters: int
    cost: float
    duration: float  # seconds
    success: bool
    error_kind: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict:
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "UsageRecord":
        timestamp = datetime.fromisoformat(data["timestamp"])
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=timezone.utc)
        return cls(
            provider_id=data["provider_id"],
            characters=int(data.get("characters", 0)),
            cost=float(data.get("cost", 0.0)),
            duration=float(data.get("duration", 0.0)),
            success=bool(data.get("success", False)),
            error_kind=data.get("error_kind"),
            timestamp=timestamp,
        )


@dataclass
class ProviderUsage:
    """Per-provider totals."""

    requests: int = 0
    successful: int = 0
    characters: int = 0
    cost: float = 0.0


@dataclass
class UsageStatistics:
    """Aggregates over a set of usage records."""

    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    total_characters: int = 0
    total_cost: float = 0.0
    average_duration: float = 0.0
    by_provider: dict[str, ProviderUsage] = field(default_factory=dict)
    most_used_provider: Optional[str] = None


class UsageHistory:
    """Capped, persistent log of synthesis calls.

    Usage:
        history = UsageHistory(store)
        history.add(UsageRecord("elevenlabs", 120, 0.0036, 1.2, True))
        stats = history.statistics()
    """

    def __init__(self, store: KeyValueStore, limit: int = DEFAULT_HISTORY_LIMIT):
        """Initialize history.

        Args:
            store: Persistent key/value store
            limit: Maximum number of records kept (oldest dropped first)
        """
        if limit < 1:
            raise ValueError("limit must be at least 1")
        self.store = store
        self.limit = limit
        self._lock = threading.Lock()

    def _load(self) -> list[UsageRecord]:
        raw = self.store.get(USAGE_HISTORY_KEY)
        if not raw:
            return []
        try:
            return [UsageRecord.from_dict(item) for item in json.loads(raw)]
        except (ValueError, KeyError, TypeError) as e:
            # A corrupted history must not block synthesis; start over
            logger.error(f"Discarding unreadable usage history: {e}")
            return []

    def _save(self, records: list[UsageRecord]) -> None:
        self.store.set(USAGE_HISTORY_KEY, json.dumps([r.to_dict() for r in records]))

    def add(self, record: UsageRecord) -> None:
        """Append a record, dropping the oldest beyond the limit."""
        with self._lock:
            records = self._load()
            records.append(record)
            self._save(records[-self.limit:])

    def records(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[UsageRecord]:
        """Records with start <= timestamp <= end, newest first."""
        with self._lock:
            records = self._load()
        selected = [
            r for r in records
            if (start is None or r.timestamp >= start) and (end is None or r.timestamp <= end)
        ]
        return sorted(selected, key=lambda r: r.timestamp, reverse=True)

    def statistics(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> UsageStatistics:
        """Aggregate the records in a time range.

        Characters and cost count successful requests only; failures are
        never billed.
        """
        records = self.records(start, end)
        stats = UsageStatistics(total_requests=len(records))
        if not records:
            return stats

        for record in records:
            usage = stats.by_provider.setdefault(record.provider_id, ProviderUsage())
            usage.requests += 1
            if record.success:
                usage.successful += 1
                usage.characters += record.characters
                usage.cost += record.cost

        stats.successful_requests = sum(u.successful for u in stats.by_provider.values())
        stats.failed_requests = stats.total_requests - stats.successful_requests
        stats.total_characters = sum(u.characters for u in stats.by_provider.values())
        stats.total_cost = sum(u.cost for u in stats.by_provider.values())
        stats.average_duration = sum(r.duration for r in records) / len(records)
        stats.most_used_provider = max(stats.by_provider.items(), key=lambda item: item[1].requests)[0]
        return stats

    def clear(self) -> None:
        """Delete all records."""
        with self._lock:
            self.store.delete(USAGE_HISTORY_KEY)
        logger.info("Usage history cleared")
