from datetime import date, time
from typing import Optional, List, Tuple
from pydantic import BaseModel, Field


class ProviderSummary(BaseModel):
    provider_id: str
    name: str


class ProvidersResponse(BaseModel):
    providers: List[ProviderSummary]


class ScheduleSlotIn(BaseModel):
    day_of_week: int = Field(..., ge=0, le=6, description="0=Sunday ... 6=Saturday")
    start_time: time
    end_time: time
    is_active: bool = True


class ScheduleSlotOut(BaseModel):
    id: int
    day_of_week: int
    start_time: time
    end_time: time
    is_active: bool


class SaveScheduleRequest(BaseModel):
    slots: List[ScheduleSlotIn] = []


class ScheduleResponse(BaseModel):
    provider_id: str
    slots: List[ScheduleSlotOut]


class ProviderScheduleOut(ScheduleSlotOut):
    provider_id: str


class AllSchedulesResponse(BaseModel):
    slots: List[ProviderScheduleOut]


class BusySlot(BaseModel):
    time: str
    reason: str
    within_working_hours: bool = True


class AvailabilityResponse(BaseModel):
    provider_id: str
    date: date
    interval: int
    busy: List[BusySlot]
    free: List[str]
    working_windows: Optional[List[Tuple[str, str]]] = None
    works_on_day: bool
    partial: bool


class WorksOnDayResponse(BaseModel):
    provider_id: str
    day_of_week: int
    works_on_day: bool


class CalendarStatusResponse(BaseModel):
    provider_id: str
    connected: bool
    account_email: Optional[str] = None
