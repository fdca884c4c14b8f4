from datetime import date

import httpx
import pytest

from clinic_availability.config import get_settings
from clinic_availability.db import engine
from clinic_availability.errors import CalendarGatewayError
from clinic_availability.models import CalendarLink
from clinic_availability.services.calendar_google import GoogleCalendarGateway

from conftest import MONDAY


def make_gateway(handler):
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return GoogleCalendarGateway(engine, get_settings(), client=client)


@pytest.fixture
def linked(session, provider):
    session.add(CalendarLink(provider_id="prov_1", access_token="tok-1", account_email="maya@example.com"))
    session.add(CalendarLink(provider_id="prov_2", calendar_id="lee@example.com", access_token="tok-2"))
    session.commit()


def test_no_link_returns_empty_without_calling_api(session, provider):
    def handler(request):
        raise AssertionError("unexpected request")

    gateway = make_gateway(handler)
    assert gateway.fetch_events("prov_1", MONDAY, MONDAY) == []
    assert gateway.connection_status("prov_1").connected is False


def test_fetch_events_maps_timed_and_all_day_items(linked):
    seen = {}

    def handler(request):
        seen["auth"] = request.headers["Authorization"]
        seen["params"] = dict(request.url.params)
        seen["path"] = request.url.path
        return httpx.Response(200, json={"items": [
            {"id": "g1", "summary": "Lunch", "status": "confirmed",
             "start": {"dateTime": "2024-09-02T12:00:00+07:00"}, "end": {"dateTime": "2024-09-02T13:00:00+07:00"}},
            {"id": "g2", "start": {"date": "2024-09-02"}, "end": {"date": "2024-09-03"}},
            {"summary": "no id", "start": {"date": "2024-09-02"}},
        ]})

    events = make_gateway(handler).fetch_events("prov_1", MONDAY, MONDAY)

    assert seen["auth"] == "Bearer tok-1"
    assert seen["path"].endswith("/calendars/primary/events")
    assert seen["params"]["timeMin"] == "2024-09-02T00:00:00+07:00"
    assert seen["params"]["timeMax"] == "2024-09-02T23:59:59+07:00"
    assert seen["params"]["singleEvents"] == "true"

    assert [e.id for e in events] == ["g1", "g2"]
    assert events[0].start == "2024-09-02T12:00:00+07:00"
    assert events[1].start == "2024-09-02" and events[1].summary == ""
    assert all(e.owning_provider_id == "prov_1" for e in events)


def test_fetch_events_follows_pages(linked):
    def handler(request):
        if request.url.params.get("pageToken") == "p2":
            return httpx.Response(200, json={"items": [{"id": "b", "start": {"date": "2024-09-02"}}]})
        return httpx.Response(200, json={"items": [{"id": "a", "start": {"date": "2024-09-02"}}], "nextPageToken": "p2"})

    events = make_gateway(handler).fetch_events("prov_1", MONDAY, MONDAY)
    assert [e.id for e in events] == ["a", "b"]


@pytest.mark.parametrize("status", [401, 500])
def test_http_errors_raise_gateway_error(linked, status):
    gateway = make_gateway(lambda request: httpx.Response(status, json={"error": "nope"}))
    with pytest.raises(CalendarGatewayError) as exc_info:
        gateway.fetch_events("prov_1", MONDAY, MONDAY)
    assert exc_info.value.provider_id == "prov_1"


def test_network_error_raises_gateway_error(linked):
    def handler(request):
        raise httpx.ConnectError("down", request=request)

    with pytest.raises(CalendarGatewayError):
        make_gateway(handler).fetch_events("prov_1", date(2024, 9, 2), date(2024, 9, 2))


def test_batch_isolates_failing_provider(linked):
    def handler(request):
        if request.headers["Authorization"] == "Bearer tok-2":
            return httpx.Response(401)
        return httpx.Response(200, json={"items": [{"id": "g1", "start": {"date": "2024-09-02"}}]})

    batch = make_gateway(handler).fetch_all_providers_events(MONDAY, MONDAY)

    assert set(batch.events_by_provider) == {"prov_1"}
    assert batch.failed_providers == {"prov_2"}


def test_connection_status_reports_account(linked):
    status = make_gateway(lambda request: httpx.Response(200, json={})).connection_status("prov_1")
    assert status.connected is True
    assert status.account_email == "maya@example.com"


def test_non_object_reply_raises_gateway_error(linked):
    gateway = make_gateway(lambda request: httpx.Response(200, json=["unexpected"]))
    with pytest.raises(CalendarGatewayError):
        gateway.fetch_events("prov_1", MONDAY, MONDAY)


def test_malformed_items_are_rejected_or_skipped(linked):
    gateway = make_gateway(lambda request: httpx.Response(200, json={"items": "nope"}))
    with pytest.raises(CalendarGatewayError):
        gateway.fetch_events("prov_1", MONDAY, MONDAY)

    gateway = make_gateway(lambda request: httpx.Response(200, json={"items": [
        "stray",
        {"id": "bad-start", "start": "2024-09-02"},
        {"id": "bad-end", "start": {"date": "2024-09-02"}, "end": ["x"]},
    ]}))
    events = gateway.fetch_events("prov_1", MONDAY, MONDAY)
    assert [e.id for e in events] == ["bad-end"]
