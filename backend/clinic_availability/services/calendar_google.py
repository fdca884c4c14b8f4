from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import date
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import quote

import httpx
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from ..config import Settings, get_settings
from ..errors import CalendarGatewayError
from ..models import CalendarLink
from .calendar_base import CalendarConnection, CalendarGateway, ExternalEvent, ProviderEventsBatch

logger = logging.getLogger(__name__)


class GoogleCalendarGateway(CalendarGateway):
    """
    Reads busy events from Google Calendar for providers with a CalendarLink.

    Token exchange and refresh happen elsewhere; this gateway only uses the
    stored access token. A rejected or unreachable call raises
    CalendarGatewayError so the caller can degrade instead of failing.
    """

    def __init__(
        self,
        engine,
        settings: Optional[Settings] = None,
        client: Optional[httpx.Client] = None,
        max_workers: int = 4,
    ):
        self._engine = engine
        self._settings = settings or get_settings()
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=self._settings.gateway_timeout_seconds)
        self._max_workers = max_workers

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def _get_link(self, provider_id: str) -> Optional[CalendarLink]:
        try:
            with Session(self._engine) as s:
                return s.get(CalendarLink, provider_id)
        except SQLAlchemyError as exc:
            raise CalendarGatewayError("calendar link lookup failed", provider_id=provider_id) from exc

    def _get_links(self) -> List[CalendarLink]:
        try:
            with Session(self._engine) as s:
                return list(s.exec(select(CalendarLink)).all())
        except SQLAlchemyError as exc:
            raise CalendarGatewayError("calendar link lookup failed") from exc

    def _time_bounds(self, start_date: date, end_date: date) -> Tuple[str, str]:
        offset = self._settings.clinic_utc_offset
        return f"{start_date.isoformat()}T00:00:00{offset}", f"{end_date.isoformat()}T23:59:59{offset}"

    def _get_json(self, url: str, params: Dict[str, str], token: str, provider_id: str) -> Dict[str, Any]:
        try:
            r = self._client.get(url, params=params, headers={"Authorization": f"Bearer {token}"})
            r.raise_for_status()
            data = r.json()
        except httpx.HTTPStatusError as exc:
            raise CalendarGatewayError(
                f"calendar API returned {exc.response.status_code}", provider_id=provider_id
            ) from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise CalendarGatewayError(f"calendar API request failed: {exc}", provider_id=provider_id) from exc
        if not isinstance(data, dict):
            raise CalendarGatewayError(
                f"calendar API returned {type(data).__name__}, expected an object", provider_id=provider_id
            )
        return data

    def _fetch_for_link(self, link: CalendarLink, start_date: date, end_date: date) -> List[ExternalEvent]:
        time_min, time_max = self._time_bounds(start_date, end_date)
        url = f"{self._settings.google_calendar_base_url}/calendars/{quote(link.calendar_id, safe='')}/events"
        params = {
            "timeMin": time_min,
            "timeMax": time_max,
            "singleEvents": "true",
            "orderBy": "startTime",
        }

        events: List[ExternalEvent] = []
        while True:
            data = self._get_json(url, params, link.access_token, link.provider_id)
            items = data.get("items") or []
            if not isinstance(items, list):
                raise CalendarGatewayError("calendar API items is not a list", provider_id=link.provider_id)
            for item in items:
                event = _to_event(item, link.provider_id)
                if event is not None:
                    events.append(event)
            page_token = data.get("nextPageToken")
            if not page_token:
                break
            params = {**params, "pageToken": page_token}
        return events

    def fetch_events(self, provider_id: str, start_date: date, end_date: date) -> List[ExternalEvent]:
        link = self._get_link(provider_id)
        if link is None:
            return []
        return self._fetch_for_link(link, start_date, end_date)

    def fetch_all_providers_events(self, start_date: date, end_date: date) -> ProviderEventsBatch:
        links = self._get_links()
        batch = ProviderEventsBatch()
        if not links:
            return batch

        with ThreadPoolExecutor(max_workers=self._max_workers, thread_name_prefix="gcal") as pool:
            futures = {
                pool.submit(self._fetch_for_link, link, start_date, end_date): link.provider_id
                for link in links
            }
            for fut in as_completed(futures):
                pid = futures[fut]
                try:
                    batch.events_by_provider[pid] = fut.result()
                except CalendarGatewayError as exc:
                    logger.warning("Calendar fetch failed for provider %s: %s", pid, exc)
                    batch.failed_providers.add(pid)
        return batch

    def connection_status(self, provider_id: str) -> CalendarConnection:
        link = self._get_link(provider_id)
        if link is None:
            return CalendarConnection(connected=False)
        return CalendarConnection(connected=True, account_email=link.account_email)


def _to_event(item: Any, provider_id: str) -> Optional[ExternalEvent]:
    if not isinstance(item, dict):
        return None
    start = item.get("start")
    end = item.get("end")
    if not isinstance(start, dict):
        return None
    if not isinstance(end, dict):
        end = {}
    start_value = start.get("dateTime") or start.get("date")
    end_value = end.get("dateTime") or end.get("date")
    if not item.get("id") or not isinstance(start_value, str):
        return None
    summary = item.get("summary")
    status = item.get("status")
    return ExternalEvent(
        id=str(item["id"]),
        summary=summary if isinstance(summary, str) else "",
        start=start_value,
        end=end_value if isinstance(end_value, str) else "",
        status=status if isinstance(status, str) else "confirmed",
        owning_provider_id=provider_id,
    )
