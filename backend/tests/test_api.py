from fastapi.testclient import TestClient
import pytest
from sqlmodel import SQLModel

from clinic_availability.db import engine
from clinic_availability.main import app, get_calendar_gateway
from clinic_availability.services.calendar_base import ExternalEvent
from clinic_availability.services.calendar_memory import InMemoryCalendarGateway


@pytest.fixture
def gateway():
    return InMemoryCalendarGateway()


@pytest.fixture
def client(session, gateway):
    app.dependency_overrides[get_calendar_gateway] = lambda: gateway
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def test_unknown_provider_is_404(client):
    assert client.get("/api/providers/nope/schedule").status_code == 404
    assert client.get("/api/providers/nope/availability", params={"date": "2024-09-02"}).status_code == 404


def test_list_providers(client, provider):
    data = client.get("/api/providers").json()
    assert [p["provider_id"] for p in data["providers"]] == ["prov_2", "prov_1"]


def test_schedule_round_trip_and_works_on_day(client, provider):
    assert client.get("/api/providers/prov_1/works-on-day", params={"day_of_week": 0}).json()["works_on_day"] is True

    slots = [
        {"day_of_week": 1, "start_time": "09:00:00", "end_time": "17:00:00"},
        {"day_of_week": 3, "start_time": "13:00:00", "end_time": "16:00:00", "is_active": True},
    ]
    r = client.put("/api/providers/prov_1/schedule", json={"slots": slots})
    assert r.status_code == 200

    got = client.get("/api/providers/prov_1/schedule").json()["slots"]
    assert [(s["day_of_week"], s["start_time"], s["end_time"]) for s in got] == [
        (1, "09:00:00", "17:00:00"),
        (3, "13:00:00", "16:00:00"),
    ]

    assert client.get("/api/providers/prov_1/works-on-day", params={"day_of_week": 0}).json()["works_on_day"] is False
    assert client.get("/api/providers/prov_1/works-on-day", params={"day_of_week": 3}).json()["works_on_day"] is True


def test_invalid_slot_is_422_and_nothing_saved(client, provider):
    client.put("/api/providers/prov_1/schedule", json={"slots": [
        {"day_of_week": 1, "start_time": "09:00:00", "end_time": "17:00:00"},
    ]})

    r = client.put("/api/providers/prov_1/schedule", json={"slots": [
        {"day_of_week": 2, "start_time": "09:00:00", "end_time": "12:00:00"},
        {"day_of_week": 2, "start_time": "12:00:00", "end_time": "12:00:00"},
    ]})
    assert r.status_code == 422
    assert "invalid slot range" in r.json()["detail"]

    got = client.get("/api/providers/prov_1/schedule").json()["slots"]
    assert [s["day_of_week"] for s in got] == [1]


def test_availability_response(client, provider, patient, add_schedule, add_appointment, gateway):
    add_schedule(1, "09:00", "12:00")
    add_appointment("10:00", "10:30", patient_id="pat_1", external_event_id="E1")
    gateway.link("prov_1", [
        ExternalEvent(id="E1", summary="Synced", start="2024-09-02T10:00:00", end="2024-09-02T10:30:00"),
        ExternalEvent(id="E2", summary="Dentist", start="2024-09-02T11:00:00", end="2024-09-02T11:30:00"),
    ])

    r = client.get("/api/providers/prov_1/availability", params={"date": "2024-09-02", "interval": 30})
    assert r.status_code == 200
    data = r.json()

    assert data["busy"] == [
        {"time": "10:00", "reason": "Somchai Jaidee", "within_working_hours": True},
        {"time": "11:00", "reason": "Dentist", "within_working_hours": True},
    ]
    assert data["free"] == ["09:00", "09:30", "10:30", "11:30"]
    assert data["working_windows"] == [["09:00", "12:00"]]
    assert data["works_on_day"] is True
    assert data["partial"] is False


def test_availability_partial_when_calendar_down(client, provider, add_appointment, gateway):
    add_appointment("10:00", "10:30")
    gateway.fail("prov_1")

    data = client.get("/api/providers/prov_1/availability", params={"date": "2024-09-02"}).json()

    assert data["partial"] is True
    assert [b["time"] for b in data["busy"]] == ["10:00"]


def test_calendar_status(client, provider, gateway):
    assert client.get("/api/providers/prov_1/calendar").json()["connected"] is False
    gateway.link("prov_1", email="maya@example.com")
    data = client.get("/api/providers/prov_1/calendar").json()
    assert data == {"provider_id": "prov_1", "connected": True, "account_email": "maya@example.com"}


def test_all_active_schedules(client, provider, add_schedule):
    add_schedule(1, "09:00", "12:00")
    add_schedule(2, "13:00", "17:00", is_active=False)
    add_schedule(0, "10:00", "14:00", provider_id="prov_2")

    slots = client.get("/api/schedules").json()["slots"]

    assert [(s["provider_id"], s["day_of_week"], s["start_time"]) for s in slots] == [
        ("prov_1", 1, "09:00:00"),
        ("prov_2", 0, "10:00:00"),
    ]


def test_provider_store_down_is_503(client, provider):
    SQLModel.metadata.drop_all(engine)

    assert client.get("/api/providers").status_code == 503
    assert client.get("/api/providers/prov_1/schedule").status_code == 503
