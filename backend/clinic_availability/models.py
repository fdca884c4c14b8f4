from __future__ import annotations

from datetime import datetime, date, time
from enum import Enum
from typing import Optional
from sqlmodel import SQLModel, Field, Index


class AppointmentStatus(str, Enum):
    scheduled = "scheduled"
    confirmed = "confirmed"
    completed = "completed"
    cancelled = "cancelled"


class Provider(SQLModel, table=True):
    id: str = Field(primary_key=True)
    name: str


class Patient(SQLModel, table=True):
    id: str = Field(primary_key=True)
    first_name: str = ""
    last_name: str = ""


class ProviderSchedule(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    provider_id: str = Field(foreign_key="provider.id")
    # 0=Sunday ... 6=Saturday
    day_of_week: int
    start_time: time
    end_time: time
    is_active: bool = True

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


Index("idx_schedule_provider_day", ProviderSchedule.provider_id, ProviderSchedule.day_of_week)


class Appointment(SQLModel, table=True):
    id: str = Field(primary_key=True)
    provider_id: str = Field(foreign_key="provider.id")
    patient_id: Optional[str] = Field(default=None, foreign_key="patient.id")
    appointment_date: date
    # Wall-clock text as written by the booking workflow ("HH:MM" or "HH:MM:SS").
    start_time: str
    end_time: Optional[str] = None
    status: str = AppointmentStatus.scheduled.value
    external_event_id: Optional[str] = None

    created_at: datetime = Field(default_factory=datetime.utcnow)


Index("idx_appt_provider_date", Appointment.provider_id, Appointment.appointment_date)


class CalendarLink(SQLModel, table=True):
    """Linked external calendar account, written by the OAuth callback."""

    provider_id: str = Field(primary_key=True, foreign_key="provider.id")
    calendar_id: str = "primary"
    account_email: Optional[str] = None
    access_token: str

    created_at: datetime = Field(default_factory=datetime.utcnow)
