"""
Availability resolution for one provider on one date.

Three sources feed the result: the weekly schedule (working windows), the
appointment store and the provider's external calendar. Appointments and
external events are quantized onto the same grid and merged into one busy map
keyed by minute of day. The external calendar is best effort: if it fails or
times out the result is still returned, flagged as partial.
"""
from __future__ import annotations

import logging
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from dataclasses import dataclass, field, replace
from datetime import date
from enum import Enum
from typing import Dict, List, Optional, Tuple

from sqlmodel import Session

from ..config import Settings, get_settings
from ..errors import CalendarGatewayError, RecordNormalizationError
from .appointments import linked_event_ids, load_appointments, normalize_rows
from .calendar_base import CalendarGateway, ExternalEvent
from .schedules import Window, get_schedules_for_provider, is_within_working_hours, working_windows
from .timegrid import (
    day_of_week,
    event_range,
    format_minute,
    grid_points_within,
    moment_date,
    parse_clock,
    parse_moment,
    quantize,
)

logger = logging.getLogger(__name__)

EXTERNAL_BUSY_LABEL = "Busy (external calendar)"


class BusySource(str, Enum):
    external_event = "external_event"
    appointment = "appointment"


# When two sources cover the same slot the higher priority supplies the reason.
# On equal priority the later entry wins: events are marked before appointments,
# and appointments in start-time order.
LABEL_PRIORITY = {
    BusySource.external_event: 1,
    BusySource.appointment: 2,
}

_gateway_pool = ThreadPoolExecutor(max_workers=8, thread_name_prefix="calendar-gateway")


@dataclass(frozen=True)
class BusyInterval:
    start_minute: int
    reason: str
    source: BusySource
    # Busy time is never filtered by working hours; this only flags it.
    within_working_hours: bool = True

    @property
    def time(self) -> str:
        return format_minute(self.start_minute)


@dataclass
class AvailabilityResult:
    provider_id: str
    date: date
    interval: int
    busy: List[BusyInterval] = field(default_factory=list)
    free_minutes: List[int] = field(default_factory=list)
    # None when the provider has no schedule and is bookable all day.
    working_windows: Optional[List[Window]] = None
    works_on_day: bool = True
    partial: bool = False

    @property
    def free(self) -> List[str]:
        return [format_minute(m) for m in self.free_minutes]

    def busy_times(self) -> List[str]:
        return [b.time for b in self.busy]


class AvailabilityResolver:
    def __init__(
        self,
        session: Session,
        gateway: CalendarGateway,
        settings: Optional[Settings] = None,
        executor: Optional[Executor] = None,
    ):
        self.session = session
        self.gateway = gateway
        self.settings = settings or get_settings()
        self._executor = executor or _gateway_pool

    def resolve(
        self,
        provider_id: str,
        on_date: date,
        interval: Optional[int] = None,
        exclude_appointment_id: Optional[str] = None,
        elevated: bool = False,
    ) -> AvailabilityResult:
        if interval is None:
            interval = self.settings.default_interval_minutes
        if interval <= 0:
            raise ValueError("interval must be positive")

        # The calendar call is the only slow read; start it before the store reads.
        external = self._executor.submit(self._fetch_external, provider_id, on_date, elevated)
        try:
            schedules = get_schedules_for_provider(self.session, provider_id)
            rows = load_appointments(self.session, provider_id, on_date)
        except Exception:
            external.cancel()
            raise

        events, partial = self._collect_external(external, provider_id)

        dow = day_of_week(on_date)
        windows = working_windows(schedules, dow)

        busy: Dict[int, BusyInterval] = {}
        suppressed = linked_event_ids(rows)

        for event in events:
            if not self._event_applies(event, provider_id, on_date) or event.id in suppressed:
                continue
            try:
                rng = event_range(event.start, event.end, on_date)
            except RecordNormalizationError as exc:
                logger.warning("Skipping external event %s: %s", event.id, exc)
                continue
            label = (event.summary or "").strip() or EXTERNAL_BUSY_LABEL
            for minute in quantize(*rng.bounds(), interval):
                self._mark(busy, BusyInterval(minute, label, BusySource.external_event))

        for appt in normalize_rows(rows, interval, exclude_appointment_id):
            if appt.provider_id != provider_id:
                continue
            for minute in quantize(*appt.range.bounds(), interval):
                self._mark(busy, BusyInterval(minute, appt.label, BusySource.appointment))

        return AvailabilityResult(
            provider_id=provider_id,
            date=on_date,
            interval=interval,
            busy=[
                replace(busy[m], within_working_hours=is_within_working_hours(schedules, dow, m))
                for m in sorted(busy)
            ],
            free_minutes=self._free_minutes(windows, busy, interval),
            working_windows=windows,
            works_on_day=windows is None or bool(windows),
            partial=partial,
        )

    def _fetch_external(self, provider_id: str, on_date: date, elevated: bool) -> Tuple[List[ExternalEvent], bool]:
        if not elevated:
            return self.gateway.fetch_events(provider_id, on_date, on_date), False

        batch = self.gateway.fetch_all_providers_events(on_date, on_date)
        events = [
            event.owned_by(pid)
            for pid, provider_events in batch.events_by_provider.items()
            for event in provider_events
        ]
        return events, provider_id in batch.failed_providers

    def _collect_external(self, future: Future, provider_id: str) -> Tuple[List[ExternalEvent], bool]:
        try:
            return future.result(timeout=self.settings.gateway_timeout_seconds)
        except FuturesTimeoutError:
            future.cancel()
            logger.warning(
                "External calendar timed out after %.1fs for provider %s",
                self.settings.gateway_timeout_seconds,
                provider_id,
            )
        except CalendarGatewayError as exc:
            logger.warning("External calendar unavailable for provider %s: %s", provider_id, exc)
        except Exception:
            logger.exception("External calendar fetch failed for provider %s", provider_id)
        return [], True

    @staticmethod
    def _event_applies(event: ExternalEvent, provider_id: str, on_date: date) -> bool:
        if event.cancelled or not event.start:
            return False
        # Untagged events come from the provider's own calendar.
        if event.owning_provider_id and event.owning_provider_id != provider_id:
            return False
        try:
            return moment_date(parse_moment(event.start)) == on_date
        except RecordNormalizationError as exc:
            logger.warning("Skipping external event %s: %s", event.id, exc)
            return False

    @staticmethod
    def _mark(busy: Dict[int, BusyInterval], entry: BusyInterval) -> None:
        current = busy.get(entry.start_minute)
        if current is None or LABEL_PRIORITY[entry.source] >= LABEL_PRIORITY[current.source]:
            busy[entry.start_minute] = entry

    def _free_minutes(self, windows: Optional[List[Window]], busy: Dict[int, BusyInterval], interval: int) -> List[int]:
        if windows is None:
            windows = [(parse_clock(self.settings.default_day_start), parse_clock(self.settings.default_day_end))]
        points = set()
        for start, end in windows:
            points.update(grid_points_within(start, end, interval))
        return [m for m in sorted(points) if m not in busy]
