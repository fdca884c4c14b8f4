import os

# Settings are read once per process; point them at a throwaway database first.
os.environ.setdefault("CLINIC_DATABASE_URL", "sqlite://")
os.environ.setdefault("CLINIC_SEED_DEMO_DATA", "false")
os.environ.setdefault("CLINIC_GATEWAY_TIMEOUT_SECONDS", "2")

from datetime import date, time
import uuid

import pytest
from sqlmodel import SQLModel, Session

from clinic_availability.db import engine
from clinic_availability.models import Appointment, Patient, Provider, ProviderSchedule

MONDAY = date(2024, 9, 2)


@pytest.fixture
def session():
    SQLModel.metadata.create_all(engine)
    with Session(engine) as s:
        yield s
    SQLModel.metadata.drop_all(engine)


@pytest.fixture
def provider(session):
    p = Provider(id="prov_1", name="Dr. Maya Patel")
    session.add(p)
    session.add(Provider(id="prov_2", name="Dr. James Lee"))
    session.commit()
    return p


@pytest.fixture
def patient(session):
    p = Patient(id="pat_1", first_name="Somchai", last_name="Jaidee")
    session.add(p)
    session.commit()
    return p


@pytest.fixture
def add_appointment(session):
    def _add(start_time, end_time=None, provider_id="prov_1", on_date=MONDAY, **kwargs):
        appt_id = kwargs.pop("id", "appt_" + uuid.uuid4().hex[:8])
        appt = Appointment(
            id=appt_id,
            provider_id=provider_id,
            appointment_date=on_date,
            start_time=start_time,
            end_time=end_time,
            **kwargs,
        )
        session.add(appt)
        session.commit()
        return appt

    return _add


@pytest.fixture
def add_schedule(session):
    def _add(day_of_week, start, end, provider_id="prov_1", is_active=True):
        row = ProviderSchedule(
            provider_id=provider_id,
            day_of_week=day_of_week,
            start_time=time.fromisoformat(start),
            end_time=time.fromisoformat(end),
            is_active=is_active,
        )
        session.add(row)
        session.commit()
        return row

    return _add
