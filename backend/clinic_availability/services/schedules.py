from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, time
from typing import Iterable, List, Optional, Sequence, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from ..errors import ScheduleValidationError, StoreFailure
from ..models import ProviderSchedule
from .timegrid import minute_of

logger = logging.getLogger(__name__)

Window = Tuple[int, int]


@dataclass(frozen=True)
class ScheduleSlotInput:
    day_of_week: int
    start_time: time
    end_time: time
    is_active: bool = True


def validate_slots(slots: Sequence[ScheduleSlotInput]) -> None:
    for idx, slot in enumerate(slots):
        if not 0 <= slot.day_of_week <= 6:
            raise ScheduleValidationError(f"slot {idx}: day_of_week must be 0..6, got {slot.day_of_week}")
        if slot.end_time <= slot.start_time:
            raise ScheduleValidationError(
                f"slot {idx}: invalid slot range {slot.start_time.isoformat('minutes')}"
                f"-{slot.end_time.isoformat('minutes')}"
            )


def get_schedules_for_provider(session: Session, provider_id: str) -> List[ProviderSchedule]:
    stmt = (
        select(ProviderSchedule)
        .where(ProviderSchedule.provider_id == provider_id)
        .order_by(ProviderSchedule.day_of_week, ProviderSchedule.start_time)
    )
    try:
        return list(session.exec(stmt).all())
    except SQLAlchemyError as exc:
        logger.exception("Failed to load schedules for provider %s", provider_id)
        raise StoreFailure("schedule store unavailable") from exc


def get_all_active_schedules(session: Session) -> List[ProviderSchedule]:
    stmt = (
        select(ProviderSchedule)
        .where(ProviderSchedule.is_active == True)  # noqa: E712
        .order_by(ProviderSchedule.provider_id, ProviderSchedule.day_of_week, ProviderSchedule.start_time)
    )
    try:
        return list(session.exec(stmt).all())
    except SQLAlchemyError as exc:
        logger.exception("Failed to load active schedules")
        raise StoreFailure("schedule store unavailable") from exc


def replace_schedules_for_provider(
    session: Session,
    provider_id: str,
    slots: Iterable[ScheduleSlotInput],
) -> List[ProviderSchedule]:
    """
    Swap the provider's whole week in one transaction.
    Readers see either the previous set or the new one, never a mix.
    """
    slots = list(slots)
    validate_slots(slots)

    now = datetime.utcnow()
    try:
        existing = session.exec(
            select(ProviderSchedule).where(ProviderSchedule.provider_id == provider_id)
        ).all()
        for row in existing:
            session.delete(row)
        for slot in slots:
            session.add(ProviderSchedule(
                provider_id=provider_id,
                day_of_week=slot.day_of_week,
                start_time=slot.start_time,
                end_time=slot.end_time,
                is_active=slot.is_active,
                created_at=now,
                updated_at=now,
            ))
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        logger.exception("Failed to replace schedules for provider %s", provider_id)
        raise StoreFailure("schedule store unavailable") from exc

    logger.info("Replaced weekly schedule for provider %s (%d slots)", provider_id, len(slots))
    return get_schedules_for_provider(session, provider_id)


def has_active_schedule(schedules: Sequence[ProviderSchedule]) -> bool:
    return any(s.is_active for s in schedules)


def working_windows(schedules: Sequence[ProviderSchedule], day_of_week: int) -> Optional[List[Window]]:
    """
    Active [start, end) minute windows for the day.
    None means the provider has no schedule configured and is unrestricted.
    """
    if not has_active_schedule(schedules):
        return None
    return sorted(
        (minute_of(s.start_time), minute_of(s.end_time))
        for s in schedules
        if s.is_active and s.day_of_week == day_of_week
    )


def works_on_day(schedules: Sequence[ProviderSchedule], day_of_week: int) -> bool:
    windows = working_windows(schedules, day_of_week)
    return windows is None or bool(windows)


def is_within_working_hours(schedules: Sequence[ProviderSchedule], day_of_week: int, minute: int) -> bool:
    windows = working_windows(schedules, day_of_week)
    if windows is None:
        return True
    return any(start <= minute < end for start, end in windows)


def provider_works_on_day(session: Session, provider_id: str, day_of_week: int) -> bool:
    return works_on_day(get_schedules_for_provider(session, provider_id), day_of_week)
