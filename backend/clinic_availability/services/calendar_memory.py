from __future__ import annotations

from datetime import date
from typing import Dict, Iterable, List, Optional

from .calendar_base import CalendarConnection, CalendarGateway, ExternalEvent, ProviderEventsBatch
from .timegrid import moment_date, parse_moment
from ..errors import CalendarGatewayError, RecordNormalizationError


class InMemoryCalendarGateway(CalendarGateway):
    """
    Deterministic in-process calendar.
    - Providers are "linked" once they have been given an event list (possibly empty)
    - `failing` providers raise CalendarGatewayError, as an expired token would
    """

    def __init__(
        self,
        events_by_provider: Optional[Dict[str, Iterable[ExternalEvent]]] = None,
        failing: Iterable[str] = (),
        emails: Optional[Dict[str, str]] = None,
    ):
        self._events: Dict[str, List[ExternalEvent]] = {
            pid: list(events) for pid, events in (events_by_provider or {}).items()
        }
        self._failing = set(failing)
        self._emails = dict(emails or {})
        self.calls: List[tuple] = []

    def link(self, provider_id: str, events: Iterable[ExternalEvent] = (), email: Optional[str] = None) -> None:
        self._events[provider_id] = list(events)
        if email:
            self._emails[provider_id] = email

    def fail(self, provider_id: str) -> None:
        self._failing.add(provider_id)

    def _in_range(self, events: List[ExternalEvent], start_date: date, end_date: date) -> List[ExternalEvent]:
        out = []
        for e in events:
            try:
                day = moment_date(parse_moment(e.start))
            except RecordNormalizationError:
                # Malformed rows are passed through for the caller to reject.
                out.append(e)
                continue
            if start_date <= day <= end_date:
                out.append(e)
        return out

    def fetch_events(self, provider_id: str, start_date: date, end_date: date) -> List[ExternalEvent]:
        self.calls.append(("fetch_events", provider_id, start_date, end_date))
        if provider_id in self._failing:
            raise CalendarGatewayError("calendar unavailable", provider_id=provider_id)
        return self._in_range(self._events.get(provider_id, []), start_date, end_date)

    def fetch_all_providers_events(self, start_date: date, end_date: date) -> ProviderEventsBatch:
        self.calls.append(("fetch_all_providers_events", start_date, end_date))
        batch = ProviderEventsBatch()
        for pid, events in self._events.items():
            if pid in self._failing:
                batch.failed_providers.add(pid)
                continue
            batch.events_by_provider[pid] = self._in_range(events, start_date, end_date)
        for pid in self._failing - set(self._events):
            batch.failed_providers.add(pid)
        return batch

    def connection_status(self, provider_id: str) -> CalendarConnection:
        if provider_id not in self._events and provider_id not in self._failing:
            return CalendarConnection(connected=False)
        return CalendarConnection(connected=True, account_email=self._emails.get(provider_id))
