"""Ledger operations: transfers between accounts and protected transactions.

A transfer is one ``FinancialTransfer`` row plus two ``FinancialTransaction``
rows (an expense on the source account, an income on the destination). The
three rows are always written, changed and removed in a single database
transaction, while the accounts involved are locked, so the balance check and
the writes cannot interleave with another writer.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date

from .errors import (AccountNotFound, AppointmentNotFound, CategoryNotFound,
                     InsufficientFunds, InvalidPayload, PersistenceFailure,
                     ProtectedTransaction, SameAccount, TransactionNotFound,
                     TransferNotFound, require_tenant)
from .locks import account_locks
from .models import FinancialAccount, FinancialTransaction, FinancialTransfer
from .repository import INCOMING, OUTGOING, SqlAlchemyRepository
from .values import parse_amount_cents

logger = logging.getLogger(__name__)

TRANSACTION_TYPES = ("income", "expense")
TRANSFER_FIELDS = frozenset(
    {"from_account_id", "to_account_id", "amount_cents", "transfer_date", "description"}
)
TRANSACTION_FIELDS = frozenset(
    {"account_id", "category_id", "type", "amount_cents", "transaction_date", "description"}
)


def _lock_keys(*account_ids: int) -> list[tuple[str, int]]:
    return [("account", account_id) for account_id in account_ids]


def describe_transfer_leg(prefix: str, account_name: str, description: str | None) -> str:
    text = f"{prefix} {account_name}"
    if description:
        text = f"{text} - {description}"
    return text


@dataclass
class TransferResult:
    transfer: FinancialTransfer
    outgoing: FinancialTransaction
    incoming: FinancialTransaction

    def to_dict(self) -> dict[str, object]:
        payload = self.transfer.to_dict()
        payload["transactions"] = [self.outgoing.to_dict(), self.incoming.to_dict()]
        return payload


class LedgerService:
    def __init__(self, repository: SqlAlchemyRepository | None = None) -> None:
        self.repository = repository if repository is not None else SqlAlchemyRepository()

    # -- balances -----------------------------------------------------------

    def account_balance(self, company_id: int, account_id: int) -> int:
        require_tenant(company_id)
        balance = self.repository.compute_account_balance(company_id, account_id)
        if balance is None:
            raise AccountNotFound()
        return balance

    def _ensure_funds(
        self, company_id: int, account: FinancialAccount, amount_cents: int, credit_back: int = 0
    ) -> None:
        available = self.repository.compute_account_balance(company_id, account.account_id) + credit_back
        if available < amount_cents:
            logger.info(
                "Rejected debit of %s cents on account %s: %s cents available",
                amount_cents,
                account.account_id,
                available,
            )
            raise InsufficientFunds()

    def _locked_pair(
        self, company_id: int, source_id: int, destination_id: int
    ) -> tuple[FinancialAccount, FinancialAccount]:
        accounts = self.repository.lock_accounts(company_id, [source_id, destination_id])
        source = accounts.get(source_id)
        destination = accounts.get(destination_id)
        if source is None or destination is None:
            raise AccountNotFound("one or both accounts were not found")
        return source, destination

    # -- transfers ----------------------------------------------------------

    def create_transfer(
        self,
        company_id: int,
        from_account_id: int,
        to_account_id: int,
        amount_cents: int,
        transfer_date: date,
        description: str | None = None,
    ) -> TransferResult:
        require_tenant(company_id)
        if from_account_id == to_account_id:
            raise SameAccount()
        amount_cents = parse_amount_cents(amount_cents)

        repo = self.repository
        with account_locks.hold(*_lock_keys(from_account_id, to_account_id)):
            with repo.atomic():
                source, destination = self._locked_pair(company_id, from_account_id, to_account_id)
                self._ensure_funds(company_id, source, amount_cents)

                transfer = repo.insert_transfer(
                    FinancialTransfer(
                        company_id=company_id,
                        from_account_id=source.account_id,
                        to_account_id=destination.account_id,
                        amount_cents=amount_cents,
                        description=description,
                        transfer_date=transfer_date,
                    )
                )
                outgoing = repo.insert_transaction(
                    FinancialTransaction(
                        company_id=company_id,
                        account_id=source.account_id,
                        category_id=None,
                        type="expense",
                        amount_cents=amount_cents,
                        description=describe_transfer_leg("Transfer to", destination.name, description),
                        transaction_date=transfer_date,
                        transfer_id=transfer.transfer_id,
                    )
                )
                incoming = repo.insert_transaction(
                    FinancialTransaction(
                        company_id=company_id,
                        account_id=destination.account_id,
                        category_id=None,
                        type="income",
                        amount_cents=amount_cents,
                        description=describe_transfer_leg("Transfer from", source.name, description),
                        transaction_date=transfer_date,
                        transfer_id=transfer.transfer_id,
                    )
                )

        logger.info(
            "Transfer %s: %s cents from account %s to account %s",
            transfer.transfer_id,
            amount_cents,
            from_account_id,
            to_account_id,
        )
        return TransferResult(transfer, outgoing, incoming)

    def get_transfer(self, company_id: int, transfer_id: int) -> FinancialTransfer:
        require_tenant(company_id)
        transfer = self.repository.find_transfer(company_id, transfer_id)
        if transfer is None:
            raise TransferNotFound()
        return transfer

    def update_transfer(self, company_id: int, transfer_id: int, /, **changes: object) -> TransferResult:
        """Apply a partial update and carry it to both linked transactions.

        When the amount or the source account changes, funds are checked again
        against the source balance without the superseded transfer: its amount
        is credited back when the source stays the same, and taken out again
        when the old destination becomes the new source.
        """
        unknown = set(changes) - TRANSFER_FIELDS
        if unknown:
            raise InvalidPayload(f"cannot update fields: {', '.join(sorted(unknown))}")

        current = self.get_transfer(company_id, transfer_id)
        new_from = int(changes.get("from_account_id") or current.from_account_id)
        new_to = int(changes.get("to_account_id") or current.to_account_id)
        if new_from == new_to:
            raise SameAccount()
        if "amount_cents" in changes:
            new_amount = parse_amount_cents(changes["amount_cents"])
        else:
            new_amount = current.amount_cents

        repo = self.repository
        keys = _lock_keys(current.from_account_id, current.to_account_id, new_from, new_to)
        with account_locks.hold(*keys):
            with repo.atomic():
                transfer = self.get_transfer(company_id, transfer_id)
                source, destination = self._locked_pair(company_id, new_from, new_to)

                if new_amount != transfer.amount_cents or new_from != transfer.from_account_id:
                    # Remove the superseded transfer's effect on the new source.
                    credit_back = 0
                    if new_from == transfer.from_account_id:
                        credit_back = transfer.amount_cents
                    elif new_from == transfer.to_account_id:
                        credit_back = -transfer.amount_cents
                    self._ensure_funds(company_id, source, new_amount, credit_back)

                description = changes.get("description", transfer.description)
                transfer_date = changes.get("transfer_date") or transfer.transfer_date

                # Look the legs up by role before the transfer's accounts move.
                outgoing = repo.update_transfer_transaction(
                    company_id,
                    transfer,
                    OUTGOING,
                    account_id=source.account_id,
                    amount_cents=new_amount,
                    transaction_date=transfer_date,
                    description=describe_transfer_leg("Transfer to", destination.name, description),
                )
                incoming = repo.update_transfer_transaction(
                    company_id,
                    transfer,
                    INCOMING,
                    account_id=destination.account_id,
                    amount_cents=new_amount,
                    transaction_date=transfer_date,
                    description=describe_transfer_leg("Transfer from", source.name, description),
                )
                if outgoing is None or incoming is None:
                    raise PersistenceFailure(f"transfer {transfer_id} is missing a linked transaction")

                transfer.from_account_id = source.account_id
                transfer.to_account_id = destination.account_id
                transfer.amount_cents = new_amount
                transfer.transfer_date = transfer_date
                transfer.description = description

        logger.info("Transfer %s updated", transfer_id)
        return TransferResult(transfer, outgoing, incoming)

    def delete_transfer(self, company_id: int, transfer_id: int) -> None:
        """Remove a transfer together with both of its transactions."""
        current = self.get_transfer(company_id, transfer_id)
        repo = self.repository
        with account_locks.hold(*_lock_keys(current.from_account_id, current.to_account_id)):
            with repo.atomic():
                transfer = self.get_transfer(company_id, transfer_id)
                removed = repo.delete_transfer(company_id, transfer)
        logger.info("Transfer %s deleted with %s linked transactions", transfer_id, removed)

    # -- transactions ------------------------------------------------------

    def get_transaction(self, company_id: int, transaction_id: int) -> FinancialTransaction:
        require_tenant(company_id)
        transaction = self.repository.find_transaction(company_id, transaction_id)
        if transaction is None:
            raise TransactionNotFound()
        return transaction

    def _check_category(self, company_id: int, category_id: int | None, kind: str) -> None:
        if category_id is None:
            return
        category = self.repository.find_category(company_id, category_id)
        if category is None:
            raise CategoryNotFound()
        if category.type != kind:
            raise InvalidPayload("transaction type must match the category type")

    def record_transaction(
        self,
        company_id: int,
        account_id: int,
        kind: str,
        amount_cents: int,
        transaction_date: date,
        *,
        category_id: int | None = None,
        description: str | None = None,
        appointment_id: int | None = None,
    ) -> FinancialTransaction:
        """Write a single income or expense. Expenses may not overdraw."""
        require_tenant(company_id)
        if kind not in TRANSACTION_TYPES:
            raise InvalidPayload("type must be income or expense")
        amount_cents = parse_amount_cents(amount_cents)

        repo = self.repository
        with account_locks.hold(*_lock_keys(account_id)):
            with repo.atomic():
                accounts = repo.lock_accounts(company_id, [account_id])
                account = accounts.get(account_id)
                if account is None:
                    raise AccountNotFound()
                self._check_category(company_id, category_id, kind)
                if appointment_id is not None and repo.find_appointment(company_id, appointment_id) is None:
                    raise AppointmentNotFound()
                if kind == "expense":
                    self._ensure_funds(company_id, account, amount_cents)

                transaction = repo.insert_transaction(
                    FinancialTransaction(
                        company_id=company_id,
                        account_id=account_id,
                        category_id=category_id,
                        type=kind,
                        amount_cents=amount_cents,
                        description=description,
                        transaction_date=transaction_date,
                        appointment_id=appointment_id,
                    )
                )
        return transaction

    def update_transaction(
        self, company_id: int, transaction_id: int, /, **changes: object
    ) -> FinancialTransaction:
        """Edit a user-entered transaction.

        Rows owned by a transfer or an appointment only accept a new
        description; their amount, account and type follow the owner.
        """
        unknown = set(changes) - TRANSACTION_FIELDS
        if unknown:
            raise InvalidPayload(f"cannot update fields: {', '.join(sorted(unknown))}")

        current = self.get_transaction(company_id, transaction_id)
        if current.is_protected and set(changes) - {"description"}:
            raise ProtectedTransaction()

        new_account_id = int(changes.get("account_id") or current.account_id)
        repo = self.repository
        with account_locks.hold(*_lock_keys(current.account_id, new_account_id)):
            with repo.atomic():
                transaction = self.get_transaction(company_id, transaction_id)
                accounts = repo.lock_accounts(company_id, [new_account_id])
                account = accounts.get(new_account_id)
                if account is None:
                    raise AccountNotFound()

                kind = changes.get("type", transaction.type)
                if kind not in TRANSACTION_TYPES:
                    raise InvalidPayload("type must be income or expense")
                category_id = changes.get("category_id", transaction.category_id)
                if "category_id" in changes or "type" in changes:
                    self._check_category(company_id, category_id, kind)
                amount = (
                    parse_amount_cents(changes["amount_cents"])
                    if "amount_cents" in changes
                    else transaction.amount_cents
                )

                if kind == "expense" and not transaction.is_protected:
                    # Take the row's current effect out of the balance before
                    # checking the edited version.
                    credit_back = 0
                    if transaction.account_id == new_account_id:
                        credit_back = -transaction.signed_amount_cents
                    self._ensure_funds(company_id, account, amount, credit_back)

                transaction.account_id = new_account_id
                transaction.type = kind
                transaction.category_id = category_id
                transaction.amount_cents = amount
                if "transaction_date" in changes:
                    transaction.transaction_date = changes["transaction_date"]
                if "description" in changes:
                    transaction.description = changes["description"]
        return transaction

    def delete_transaction(self, company_id: int, transaction_id: int) -> None:
        repo = self.repository
        with repo.atomic():
            transaction = self.get_transaction(company_id, transaction_id)
            if transaction.appointment_id is not None:
                raise ProtectedTransaction(
                    "transaction was generated by an appointment and cannot be deleted"
                )
            if transaction.transfer_id is not None:
                raise ProtectedTransaction(
                    "transaction belongs to a transfer; delete the transfer instead"
                )
            repo.delete_transaction(transaction)
        logger.info("Transaction %s deleted", transaction_id)
