from __future__ import annotations

from datetime import date, time
import logging
from typing import Optional

from fastapi import FastAPI, Depends, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from .config import get_settings
from .db import create_db_and_tables, get_session, engine, verify_connection
from .errors import CalendarGatewayError, ScheduleValidationError, StoreFailure
from .models import Provider, ProviderSchedule
from .schemas import (
    ProviderSummary, ProvidersResponse,
    ScheduleSlotOut, SaveScheduleRequest, ScheduleResponse,
    ProviderScheduleOut, AllSchedulesResponse,
    BusySlot, AvailabilityResponse,
    WorksOnDayResponse, CalendarStatusResponse,
)
from .services.calendar_base import CalendarGateway
from .services.calendar_google import GoogleCalendarGateway
from .services.resolver import AvailabilityResolver
from .services.schedules import (
    get_all_active_schedules,
    get_schedules_for_provider,
    provider_works_on_day,
    replace_schedules_for_provider,
)
from .services.timegrid import format_minute

logger = logging.getLogger(__name__)

settings = get_settings()

app = FastAPI(title="Provider Availability API", version="1.0.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.cors_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

calendar_gateway = GoogleCalendarGateway(engine, settings)


def get_calendar_gateway() -> CalendarGateway:
    return calendar_gateway


@app.on_event("startup")
def on_startup():
    logging.basicConfig(level=settings.log_level)
    verify_connection()
    create_db_and_tables()
    if not settings.seed_demo_data:
        return

    with Session(engine) as s:
        if s.exec(select(Provider)).first():
            return
        s.add(Provider(id="prov_1", name="Dr. Maya Patel"))
        s.add(Provider(id="prov_2", name="Dr. James Lee"))
        s.add(Provider(id="prov_3", name="Dr. Sofia Kim"))
        s.commit()

        # prov_1 works weekdays; prov_2 and prov_3 have no schedule and are unrestricted.
        for day in range(1, 6):
            s.add(ProviderSchedule(provider_id="prov_1", day_of_week=day, start_time=time(9, 0), end_time=time(12, 0)))
            s.add(ProviderSchedule(provider_id="prov_1", day_of_week=day, start_time=time(13, 0), end_time=time(17, 0)))
        s.commit()


@app.on_event("shutdown")
def on_shutdown():
    calendar_gateway.close()


@app.exception_handler(StoreFailure)
def store_failure_handler(request, exc: StoreFailure):
    return JSONResponse(status_code=503, content={"detail": str(exc)})


def require_provider(provider_id: str, session: Session) -> Provider:
    try:
        provider = session.get(Provider, provider_id)
    except SQLAlchemyError as exc:
        logger.exception("Failed to look up provider %s", provider_id)
        raise StoreFailure("provider store unavailable") from exc
    if not provider:
        raise HTTPException(status_code=404, detail="Provider not found")
    return provider


def to_slot_out(row: ProviderSchedule) -> ScheduleSlotOut:
    return ScheduleSlotOut(
        id=row.id,
        day_of_week=row.day_of_week,
        start_time=row.start_time,
        end_time=row.end_time,
        is_active=row.is_active,
    )


@app.get("/api/providers", response_model=ProvidersResponse)
def list_providers(session: Session = Depends(get_session)):
    try:
        providers = session.exec(select(Provider).order_by(Provider.name)).all()
    except SQLAlchemyError as exc:
        logger.exception("Failed to list providers")
        raise StoreFailure("provider store unavailable") from exc
    return ProvidersResponse(providers=[ProviderSummary(provider_id=p.id, name=p.name) for p in providers])


@app.get("/api/schedules", response_model=AllSchedulesResponse)
def all_active_schedules(session: Session = Depends(get_session)):
    rows = get_all_active_schedules(session)
    return AllSchedulesResponse(slots=[
        ProviderScheduleOut(provider_id=r.provider_id, **to_slot_out(r).model_dump())
        for r in rows
    ])


@app.get("/api/providers/{provider_id}/schedule", response_model=ScheduleResponse)
def get_weekly_schedule(provider_id: str, session: Session = Depends(get_session)):
    require_provider(provider_id, session)
    rows = get_schedules_for_provider(session, provider_id)
    return ScheduleResponse(provider_id=provider_id, slots=[to_slot_out(r) for r in rows])


@app.put("/api/providers/{provider_id}/schedule", response_model=ScheduleResponse)
def save_weekly_schedule(
    provider_id: str,
    req: SaveScheduleRequest,
    session: Session = Depends(get_session),
):
    require_provider(provider_id, session)
    try:
        rows = replace_schedules_for_provider(session, provider_id, req.slots)
    except ScheduleValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return ScheduleResponse(provider_id=provider_id, slots=[to_slot_out(r) for r in rows])


@app.get("/api/providers/{provider_id}/works-on-day", response_model=WorksOnDayResponse)
def works_on_day(
    provider_id: str,
    day_of_week: int = Query(..., ge=0, le=6),
    session: Session = Depends(get_session),
):
    require_provider(provider_id, session)
    return WorksOnDayResponse(
        provider_id=provider_id,
        day_of_week=day_of_week,
        works_on_day=provider_works_on_day(session, provider_id, day_of_week),
    )


@app.get("/api/providers/{provider_id}/availability", response_model=AvailabilityResponse)
def availability(
    provider_id: str,
    on_date: Optional[date] = Query(None, alias="date"),
    interval: Optional[int] = Query(None, ge=5, le=720),
    exclude_appointment_id: Optional[str] = None,
    elevated: bool = False,
    session: Session = Depends(get_session),
    gateway: CalendarGateway = Depends(get_calendar_gateway),
):
    require_provider(provider_id, session)

    result = AvailabilityResolver(session, gateway, settings).resolve(
        provider_id,
        on_date or date.today(),
        interval=interval,
        exclude_appointment_id=exclude_appointment_id,
        elevated=elevated,
    )
    if result.partial:
        logger.info("Availability for %s on %s is partial (external calendar unknown)", provider_id, result.date)

    windows = None
    if result.working_windows is not None:
        windows = [(format_minute(s), format_minute(e)) for s, e in result.working_windows]

    return AvailabilityResponse(
        provider_id=provider_id,
        date=result.date,
        interval=result.interval,
        busy=[
            BusySlot(time=b.time, reason=b.reason, within_working_hours=b.within_working_hours)
            for b in result.busy
        ],
        free=result.free,
        working_windows=windows,
        works_on_day=result.works_on_day,
        partial=result.partial,
    )


@app.get("/api/providers/{provider_id}/calendar", response_model=CalendarStatusResponse)
def calendar_status(
    provider_id: str,
    session: Session = Depends(get_session),
    gateway: CalendarGateway = Depends(get_calendar_gateway),
):
    require_provider(provider_id, session)
    try:
        status = gateway.connection_status(provider_id)
    except CalendarGatewayError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return CalendarStatusResponse(
        provider_id=provider_id,
        connected=status.connected,
        account_email=status.account_email,
    )
