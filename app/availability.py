"""Slot availability for services.

Candidate start times are generated every ``SLOT_GRANULARITY_MINUTES`` inside
the service's hour window. A candidate survives when the service fits before
closing and its ``[start, start + duration)`` span touches no live booking.
"""
from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import date, time

from .errors import ServiceNotFound, require_tenant
from .models import Appointment, Service
from .repository import SqlAlchemyRepository
from .values import (HourWindow, Interval, from_minutes, parse_duration,
                     parse_weekday, to_minutes)

logger = logging.getLogger(__name__)

# Fixed for every service; booking start times must land on this grid.
SLOT_GRANULARITY_MINUTES = 30


def booking_interval(appointment: Appointment) -> Interval:
    return Interval.from_start(to_minutes(appointment.start_time), appointment.duration_minutes)


def compute_available_slots(
    window: HourWindow,
    duration_minutes: int,
    bookings: Iterable[Interval],
    granularity: int = SLOT_GRANULARITY_MINUTES,
) -> list[time]:
    """Return the bookable start times inside ``window`` in ascending order.

    Raises ``InvalidDuration`` for a non-positive duration. A booking that runs
    past closing still blocks every candidate it overlaps.
    """
    duration_minutes = parse_duration(duration_minutes)
    if window.is_empty:
        return []

    busy = sorted(bookings, key=lambda interval: interval.start)
    slots: list[time] = []
    start = window.start_minute
    while start < window.end_minute:
        candidate = Interval.from_start(start, duration_minutes)
        if candidate.end > window.end_minute:
            break
        # Partial overlap counts: [09:30, 10:30) collides with [09:00, 10:00).
        if not any(candidate.overlaps(booked) for booked in busy):
            slots.append(from_minutes(start))
        start += granularity
    return slots


class AvailabilityService:
    def __init__(self, repository: SqlAlchemyRepository | None = None) -> None:
        self.repository = repository if repository is not None else SqlAlchemyRepository()

    def require_service(self, company_id: int, service_id: int) -> Service:
        service = self.repository.find_service(company_id, service_id)
        if service is None:
            raise ServiceNotFound()
        return service

    def slots_for_service(
        self, company_id: int, service: Service, day: date, duration_minutes: int | None = None
    ) -> list[time]:
        window = service.hour_window
        if not service.available_days or window is None:
            logger.info("Service %s has no opening hours configured", service.service_id)
            return []
        if day.isoweekday() not in {parse_weekday(d) for d in service.available_days}:
            return []

        duration = service.duration_minutes if duration_minutes is None else duration_minutes
        bookings = [
            booking_interval(appointment)
            for appointment in self.repository.list_appointments(company_id, day, exclude_cancelled=True)
        ]
        return compute_available_slots(window, duration, bookings)

    def available_slots(
        self, company_id: int, service_id: int, day: date, duration_minutes: int | None = None
    ) -> list[time]:
        """Bookable start times for ``service_id`` on ``day``."""
        require_tenant(company_id)
        service = self.require_service(company_id, service_id)
        return self.slots_for_service(company_id, service, day, duration_minutes)
