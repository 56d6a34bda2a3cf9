"""
Event Log Aggregator - compacted, display-ready log of realtime events.

Consecutive events with the same (source, type) collapse into one entry
whose repeat_count is bumped in place, so a burst of per-frame audio
deltas costs a single line. Only the last entry is ever mutated.
"""

import time
from dataclasses import dataclass, field
from typing import Iterator, Optional

SOURCES = ("client", "server")


@dataclass(slots=True)
class RealtimeEventLogEntry:
    """One line of the event log"""
    timestamp: float = field(default_factory=time.time)
    source: str = "server"  # "client" or "server"
    type_name: str = ""
    repeat_count: int = 1
    raw_payload: dict = field(default_factory=dict)


class EventLogAggregator:
    """Append-only event log with run-length aggregation of the last entry"""

    def __init__(self, start_time: Optional[float] = None):
        self.reset(start_time)

    def reset(self, start_time: Optional[float] = None) -> None:
        """Empty the log; timestamps are displayed relative to start_time"""
        self.start_time = start_time if start_time is not None else time.time()
        self._entries: list[RealtimeEventLogEntry] = []
        self._last: Optional[RealtimeEventLogEntry] = None

    def record(self, source: str, event: dict, timestamp: Optional[float] = None) -> RealtimeEventLogEntry:
        """
        Add an event, aggregating with the previous entry when it matches.

        Args:
            source: "client" or "server"
            event: Raw event payload (its "type" is the aggregation key)
            timestamp: Event time (default: now)

        Returns:
            The entry that now represents this event
        """
        if source not in SOURCES:
            raise ValueError(f"Unknown event source '{source}'")
        type_name = event.get("type", "unknown") if isinstance(event, dict) else "unknown"

        last = self._last
        if last is not None and last.type_name == type_name and last.source == source:
            last.repeat_count += 1
            return last

        entry = RealtimeEventLogEntry(
            timestamp=timestamp if timestamp is not None else time.time(),
            source=source,
            type_name=type_name,
            raw_payload=event if isinstance(event, dict) else {"raw": event},
        )
        self._entries.append(entry)
        self._last = entry
        return entry

    def format_time(self, timestamp: float) -> str:
        """Render a timestamp as MM:SS.hh since the session started"""
        delta_ms = max(0, int((timestamp - self.start_time) * 1000))
        hundredths = (delta_ms // 10) % 100
        seconds = (delta_ms // 1000) % 60
        minutes = (delta_ms // 60_000) % 60
        return f"{minutes:02d}:{seconds:02d}.{hundredths:02d}"

    def render(self) -> list[str]:
        """Display lines: time, source, type and repeat count"""
        lines = []
        for entry in self._entries:
            count = f" ({entry.repeat_count})" if entry.repeat_count > 1 else ""
            lines.append(f"{self.format_time(entry.timestamp)} {entry.source:<6} {entry.type_name}{count}")
        return lines

    @property
    def entries(self) -> list[RealtimeEventLogEntry]:
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[RealtimeEventLogEntry]:
        return iter(list(self._entries))
