from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date
from typing import Dict, List, Optional, Protocol, Set


@dataclass(frozen=True)
class ExternalEvent:
    id: str
    summary: str
    start: str
    end: str
    status: str = "confirmed"
    owning_provider_id: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self.status == "cancelled"

    def owned_by(self, provider_id: str) -> "ExternalEvent":
        return replace(self, owning_provider_id=provider_id)


@dataclass(frozen=True)
class ProviderEventsBatch:
    events_by_provider: Dict[str, List[ExternalEvent]] = field(default_factory=dict)
    failed_providers: Set[str] = field(default_factory=set)


@dataclass(frozen=True)
class CalendarConnection:
    connected: bool
    account_email: Optional[str] = None


class CalendarGateway(Protocol):
    def fetch_events(self, provider_id: str, start_date: date, end_date: date) -> List[ExternalEvent]:
        """Events on the provider's linked calendar. No link means an empty list."""
        ...

    def fetch_all_providers_events(self, start_date: date, end_date: date) -> ProviderEventsBatch:
        ...

    def connection_status(self, provider_id: str) -> CalendarConnection:
        ...
