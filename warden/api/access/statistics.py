"""
WARDEN - Audit Statistics

Time-windowed statistics recomputed from a bounded scan of the audit
trail on every request. Nothing is cached or counted incrementally.
"""

import calendar
import logging
from collections import Counter
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Dict, Iterable, Optional, Tuple, Union

from pydantic import BaseModel, Field

from warden.api.access.audit import AuditEvent, AuditSeverity, is_security_event_type
from warden.api.access.query import AuditLogFilter, AuditQueryEngine
from warden.api.config import settings

logger = logging.getLogger(__name__)


class StatisticsWindow(str, Enum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"


def _minus_one_month(moment: datetime) -> datetime:
    year, month = (moment.year - 1, 12) if moment.month == 1 else (moment.year, moment.month - 1)
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def window_bounds(
    window: Union[StatisticsWindow, str],
    now: Optional[datetime] = None,
) -> Tuple[datetime, datetime]:
    """Resolve ``[now - window, now]``."""
    window = StatisticsWindow(window)
    end = now or datetime.now(timezone.utc)
    if end.tzinfo is None:
        end = end.replace(tzinfo=timezone.utc)

    if window is StatisticsWindow.DAY:
        start = end - timedelta(days=1)
    elif window is StatisticsWindow.WEEK:
        start = end - timedelta(days=7)
    else:
        start = _minus_one_month(end)

    return start, end


class AuditStatistics(BaseModel):
    """Aggregate view of one statistics window."""

    total_events: int = 0
    events_by_type: Dict[str, int] = Field(default_factory=dict)
    events_by_severity: Dict[str, int] = Field(default_factory=dict)
    events_by_actor: Dict[str, int] = Field(default_factory=dict)
    events_by_day: Dict[str, int] = Field(default_factory=dict)
    critical_events: int = 0
    security_events: int = 0


def summarize(events: Iterable[AuditEvent]) -> AuditStatistics:
    """Single pass over the events."""
    by_type: Counter = Counter()
    by_severity: Counter = Counter()
    by_actor: Counter = Counter()
    by_day: Counter = Counter()
    total = critical = security = 0

    for event in events:
        total += 1
        by_type[event.event_type] += 1
        by_severity[event.severity.value] += 1
        by_actor[event.actor] += 1
        by_day[event.timestamp.astimezone(timezone.utc).date().isoformat()] += 1

        if event.severity is AuditSeverity.CRITICAL:
            critical += 1
        if is_security_event_type(event.event_type):
            security += 1

    return AuditStatistics(
        total_events=total,
        events_by_type=dict(by_type),
        events_by_severity=dict(by_severity),
        events_by_actor=dict(by_actor),
        events_by_day=dict(by_day),
        critical_events=critical,
        security_events=security,
    )


class AuditStatisticsAggregator:
    def __init__(
        self,
        engine: AuditQueryEngine,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.engine = engine
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def get_statistics(
        self,
        window: Union[StatisticsWindow, str] = StatisticsWindow.WEEK,
        now: Optional[datetime] = None,
    ) -> AuditStatistics:
        """Statistics for the window ending now; zero-valued on failure."""
        try:
            start, end = window_bounds(window, now or self._clock())
            events = await self.engine.get_audit_logs(AuditLogFilter(
                start_date=start,
                end_date=end,
                limit=settings.AUDIT_STATISTICS_SCAN_LIMIT,
            ))
            return summarize(events)
        except Exception as e:
            logger.error(f"Error getting audit statistics: {e}", exc_info=True)
            return AuditStatistics()
