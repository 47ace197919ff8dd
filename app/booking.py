"""Appointment booking and the appointment status workflow."""
from __future__ import annotations

import logging
from datetime import date, time

from .availability import AvailabilityService
from .errors import (AppointmentNotFound, ConflictingSlot, InvalidPayload,
                     InvalidStatusTransition, require_tenant)
from .ledger import LedgerService
from .locks import slot_locks
from .models import APPOINTMENT_STATUSES, Appointment
from .repository import SqlAlchemyRepository

logger = logging.getLogger(__name__)

STATUS_TRANSITIONS: dict[str, frozenset[str]] = {
    "scheduled": frozenset({"confirmed", "in_progress", "cancelled", "no_show"}),
    "confirmed": frozenset({"in_progress", "completed", "cancelled", "no_show"}),
    "in_progress": frozenset({"completed", "cancelled"}),
    "completed": frozenset(),
    "cancelled": frozenset(),
    "no_show": frozenset(),
}


class AppointmentService:
    def __init__(self, repository: SqlAlchemyRepository | None = None) -> None:
        self.repository = repository if repository is not None else SqlAlchemyRepository()
        self.availability = AvailabilityService(self.repository)
        self.ledger = LedgerService(self.repository)

    def get_appointment(self, company_id: int, appointment_id: int) -> Appointment:
        require_tenant(company_id)
        appointment = self.repository.find_appointment(company_id, appointment_id)
        if appointment is None:
            raise AppointmentNotFound()
        return appointment

    def list_for_day(self, company_id: int, day: date, include_cancelled: bool = False) -> list[Appointment]:
        require_tenant(company_id)
        return self.repository.list_appointments(company_id, day, exclude_cancelled=not include_cancelled)

    def book(
        self,
        company_id: int,
        service_id: int,
        day: date,
        start_time: time,
        *,
        client_name: str | None = None,
        pet_name: str | None = None,
        notes: str | None = None,
    ) -> Appointment:
        """Book ``start_time`` if it is still one of the service's free slots.

        The slot check and the insert share one lock per (company, day) and
        one database transaction, so two requests for overlapping times can't
        both pass the check.
        """
        require_tenant(company_id)
        repo = self.repository
        with slot_locks.hold(("slots", company_id, day)):
            with repo.atomic():
                service = self.availability.require_service(company_id, service_id)
                free = self.availability.slots_for_service(company_id, service, day)
                if start_time not in free:
                    logger.info(
                        "Slot %s on %s for service %s is not available", start_time, day, service_id
                    )
                    raise ConflictingSlot()

                appointment = repo.insert_appointment(
                    Appointment(
                        company_id=company_id,
                        service_id=service.service_id,
                        appointment_date=day,
                        start_time=start_time,
                        duration_minutes=service.duration_minutes,
                        status="scheduled",
                        client_name=client_name,
                        pet_name=pet_name,
                        notes=notes,
                    )
                )
        logger.info("Appointment %s booked for %s %s", appointment.appointment_id, day, start_time)
        return appointment

    def change_status(
        self,
        company_id: int,
        appointment_id: int,
        new_status: str,
        *,
        account_id: int | None = None,
        category_id: int | None = None,
    ) -> Appointment:
        """Move an appointment along its workflow.

        Completing an appointment with an ``account_id`` records the service
        price as income on that account, linked back to the appointment.
        """
        if new_status not in APPOINTMENT_STATUSES:
            raise InvalidPayload(f"status must be one of: {', '.join(APPOINTMENT_STATUSES)}")

        repo = self.repository
        with repo.atomic():
            appointment = self.get_appointment(company_id, appointment_id)
            if new_status not in STATUS_TRANSITIONS[appointment.status]:
                raise InvalidStatusTransition(
                    f"cannot move appointment from {appointment.status} to {new_status}"
                )
            appointment.status = new_status

            price = appointment.service.price_cents if appointment.service else 0
            if new_status == "completed" and account_id is not None and price > 0:
                self.ledger.record_transaction(
                    company_id,
                    account_id,
                    "income",
                    price,
                    appointment.appointment_date,
                    category_id=category_id,
                    description=f"Appointment #{appointment.appointment_id} - {appointment.service.name}",
                    appointment_id=appointment.appointment_id,
                )
        return appointment
