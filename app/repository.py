"""SQLAlchemy-backed persistence used by the availability and ledger services.

Every query is scoped by ``company_id``; callers pass the tenant explicitly.
Writes only ``flush``: the surrounding ``atomic()`` block decides whether the
whole unit is committed or rolled back.
"""
from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from datetime import date

from sqlalchemy import case, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .errors import PersistenceFailure
from .extensions import db
from .models import (NON_BLOCKING_STATUSES, Appointment, FinancialAccount,
                     FinancialCategory, FinancialTransaction,
                     FinancialTransfer, Service)

logger = logging.getLogger(__name__)

# Role of each transaction generated by a transfer.
OUTGOING = "outgoing"
INCOMING = "incoming"


class SqlAlchemyRepository:
    def __init__(self, session: Session | None = None) -> None:
        self.session = session if session is not None else db.session

    @contextmanager
    def atomic(self) -> Iterator[None]:
        """Run the block as one database transaction.

        Storage errors are rolled back and re-raised as ``PersistenceFailure``;
        business errors are rolled back and re-raised unchanged. Nested blocks
        join the outermost one, which alone commits or rolls back.
        """
        info = self.session.info
        depth = info.get("atomic_depth", 0)
        info["atomic_depth"] = depth + 1
        try:
            yield
            if depth == 0:
                self.session.commit()
        except PersistenceFailure:
            if depth == 0:
                self.session.rollback()
                logger.exception("Rolled back unit of work after storage error")
            raise
        except SQLAlchemyError as exc:
            if depth == 0:
                self.session.rollback()
                logger.exception("Rolled back unit of work after storage error")
            raise PersistenceFailure() from exc
        except Exception:
            if depth == 0:
                self.session.rollback()
            raise
        finally:
            info["atomic_depth"] = depth

    # -- accounts -----------------------------------------------------------

    def find_account_by_id(self, company_id: int, account_id: int) -> FinancialAccount | None:
        return (
            self.session.query(FinancialAccount)
            .filter_by(company_id=company_id, account_id=account_id)
            .first()
        )

    def lock_accounts(self, company_id: int, account_ids: Iterable[int]) -> dict[int, FinancialAccount]:
        """Load and row-lock accounts in id order so two writers never deadlock."""
        ids = sorted(set(account_ids))
        rows = (
            self.session.query(FinancialAccount)
            .filter(
                FinancialAccount.company_id == company_id,
                FinancialAccount.account_id.in_(ids),
            )
            .order_by(FinancialAccount.account_id)
            .with_for_update()
            .all()
        )
        return {row.account_id: row for row in rows}

    def compute_account_balance(self, company_id: int, account_id: int) -> int | None:
        """Initial balance plus the signed sum of the account's transactions."""
        account = self.find_account_by_id(company_id, account_id)
        if account is None:
            return None
        signed = case(
            (FinancialTransaction.type == "income", FinancialTransaction.amount_cents),
            else_=-FinancialTransaction.amount_cents,
        )
        movement = (
            self.session.query(func.coalesce(func.sum(signed), 0))
            .filter(
                FinancialTransaction.company_id == company_id,
                FinancialTransaction.account_id == account_id,
            )
            .scalar()
        )
        return (account.initial_balance_cents or 0) + int(movement)

    def find_category(self, company_id: int, category_id: int) -> FinancialCategory | None:
        return (
            self.session.query(FinancialCategory)
            .filter_by(company_id=company_id, category_id=category_id)
            .first()
        )

    # -- transfers and transactions ----------------------------------------

    def find_transfer(self, company_id: int, transfer_id: int) -> FinancialTransfer | None:
        return (
            self.session.query(FinancialTransfer)
            .filter_by(company_id=company_id, transfer_id=transfer_id)
            .first()
        )

    def list_transfers(
        self,
        company_id: int,
        *,
        account_id: int | None = None,
        date_from: date | None = None,
        date_to: date | None = None,
        search: str | None = None,
    ):
        query = self.session.query(FinancialTransfer).filter(
            FinancialTransfer.company_id == company_id
        )
        if account_id:
            query = query.filter(
                (FinancialTransfer.from_account_id == account_id)
                | (FinancialTransfer.to_account_id == account_id)
            )
        if date_from:
            query = query.filter(FinancialTransfer.transfer_date >= date_from)
        if date_to:
            query = query.filter(FinancialTransfer.transfer_date <= date_to)
        if search:
            query = query.filter(FinancialTransfer.description.ilike(f"%{search}%"))
        return query.order_by(
            FinancialTransfer.transfer_date.desc(), FinancialTransfer.created_at.desc()
        )

    def find_transaction(self, company_id: int, transaction_id: int) -> FinancialTransaction | None:
        return (
            self.session.query(FinancialTransaction)
            .filter_by(company_id=company_id, transaction_id=transaction_id)
            .first()
        )

    def insert_transfer(self, transfer: FinancialTransfer) -> FinancialTransfer:
        self.session.add(transfer)
        self.session.flush()
        return transfer

    def insert_transaction(self, transaction: FinancialTransaction) -> FinancialTransaction:
        self.session.add(transaction)
        self.session.flush()
        return transaction

    def find_transfer_transaction(
        self, company_id: int, transfer: FinancialTransfer, role: str
    ) -> FinancialTransaction | None:
        """The expense on the source account (outgoing) or the income on the
        destination account (incoming)."""
        if role == OUTGOING:
            account_id, kind = transfer.from_account_id, "expense"
        else:
            account_id, kind = transfer.to_account_id, "income"
        return (
            self.session.query(FinancialTransaction)
            .filter_by(
                company_id=company_id,
                transfer_id=transfer.transfer_id,
                account_id=account_id,
                type=kind,
            )
            .first()
        )

    def update_transfer_transaction(
        self, company_id: int, transfer: FinancialTransfer, role: str, **values: object
    ) -> FinancialTransaction | None:
        transaction = self.find_transfer_transaction(company_id, transfer, role)
        if transaction is None:
            return None
        for field, value in values.items():
            setattr(transaction, field, value)
        self.session.flush()
        return transaction

    def delete_transaction(self, transaction: FinancialTransaction) -> None:
        self.session.delete(transaction)
        self.session.flush()

    def delete_transfer(self, company_id: int, transfer: FinancialTransfer) -> int:
        """Delete a transfer and its linked transactions; returns how many
        transactions were removed."""
        linked = (
            self.session.query(FinancialTransaction)
            .filter_by(company_id=company_id, transfer_id=transfer.transfer_id)
            .all()
        )
        for transaction in linked:
            self.session.delete(transaction)
        # Same flush: the unit of work removes the children before the parent.
        self.session.delete(transfer)
        self.session.flush()
        return len(linked)

    # -- services and appointments -----------------------------------------

    def find_service(self, company_id: int, service_id: int) -> Service | None:
        return (
            self.session.query(Service)
            .filter_by(company_id=company_id, service_id=service_id)
            .first()
        )

    def find_appointment(self, company_id: int, appointment_id: int) -> Appointment | None:
        return (
            self.session.query(Appointment)
            .filter_by(company_id=company_id, appointment_id=appointment_id)
            .first()
        )

    def list_appointments(
        self, company_id: int, day: date, exclude_cancelled: bool = True
    ) -> list[Appointment]:
        query = self.session.query(Appointment).filter(
            Appointment.company_id == company_id,
            Appointment.appointment_date == day,
        )
        if exclude_cancelled:
            query = query.filter(Appointment.status.notin_(NON_BLOCKING_STATUSES))
        return query.order_by(Appointment.start_time).all()

    def insert_appointment(self, appointment: Appointment) -> Appointment:
        self.session.add(appointment)
        self.session.flush()
        return appointment
