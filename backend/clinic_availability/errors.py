from __future__ import annotations


class ScheduleValidationError(ValueError):
    """A weekly schedule write was rejected; nothing was persisted."""


class RecordNormalizationError(ValueError):
    """A single appointment or event row could not be turned into a time range."""


class CalendarGatewayError(Exception):
    """The external calendar could not be reached or refused the request."""

    def __init__(self, message: str, provider_id: str | None = None):
        super().__init__(message)
        self.provider_id = provider_id


class StoreFailure(Exception):
    """Schedule or appointment persistence is unreachable."""
