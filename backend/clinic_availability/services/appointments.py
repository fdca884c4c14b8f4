from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import List, Optional, Sequence, Set, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from ..errors import RecordNormalizationError, StoreFailure
from ..models import Appointment, AppointmentStatus, Patient
from .timegrid import TimedRange, appointment_range

logger = logging.getLogger(__name__)

BOOKED_LABEL = "Booked"

AppointmentRow = Tuple[Appointment, Optional[Patient]]


@dataclass(frozen=True)
class AppointmentBusy:
    appointment_id: str
    provider_id: str
    range: TimedRange
    label: str
    external_event_id: Optional[str] = None


def patient_display_name(patient: Optional[Patient]) -> str:
    if patient is None:
        return BOOKED_LABEL
    name = f"{patient.first_name or ''} {patient.last_name or ''}".strip()
    return name or BOOKED_LABEL


def load_appointments(session: Session, provider_id: str, on_date: date) -> List[AppointmentRow]:
    """Non-cancelled appointments for the provider/date with the patient joined."""
    stmt = (
        select(Appointment, Patient)
        .join(Patient, Appointment.patient_id == Patient.id, isouter=True)
        .where(
            Appointment.provider_id == provider_id,
            Appointment.appointment_date == on_date,
            Appointment.status != AppointmentStatus.cancelled.value,
        )
        .order_by(Appointment.start_time)
    )
    try:
        return list(session.exec(stmt).all())
    except SQLAlchemyError as exc:
        logger.exception("Failed to load appointments for provider %s on %s", provider_id, on_date)
        raise StoreFailure("appointment store unavailable") from exc


def linked_event_ids(rows: Sequence[AppointmentRow]) -> Set[str]:
    return {appt.external_event_id for appt, _ in rows if appt.external_event_id}


def normalize_appointment(appt: Appointment, patient: Optional[Patient], default_minutes: int) -> AppointmentBusy:
    try:
        rng = appointment_range(appt.start_time, appt.end_time, default_minutes)
    except RecordNormalizationError as exc:
        raise RecordNormalizationError(f"appointment {appt.id}: {exc}") from exc
    return AppointmentBusy(
        appointment_id=appt.id,
        provider_id=appt.provider_id,
        range=rng,
        label=patient_display_name(patient),
        external_event_id=appt.external_event_id,
    )


def normalize_rows(
    rows: Sequence[AppointmentRow],
    default_minutes: int,
    exclude_appointment_id: Optional[str] = None,
) -> List[AppointmentBusy]:
    out: List[AppointmentBusy] = []
    for appt, patient in rows:
        if appt.status == AppointmentStatus.cancelled.value:
            continue
        if exclude_appointment_id and appt.id == exclude_appointment_id:
            continue
        try:
            out.append(normalize_appointment(appt, patient, default_minutes))
        except RecordNormalizationError as exc:
            # One bad row must not blank the whole day.
            logger.warning("Skipping appointment row: %s", exc)
    return out

