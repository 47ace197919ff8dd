"""Database models for the pet shop backend."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone

from .extensions import db
from .values import HourWindow, cents_to_units


def utc_now() -> datetime:
    """Return a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


APPOINTMENT_STATUSES = (
    "scheduled",
    "confirmed",
    "in_progress",
    "completed",
    "cancelled",
    "no_show",
)

# Statuses that no longer hold a place on the calendar.
NON_BLOCKING_STATUSES = ("cancelled", "no_show")


class Company(db.Model):
    """A pet shop; every other row belongs to exactly one company."""

    __tablename__ = "companies"

    company_id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(150), nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(
        db.DateTime,
        nullable=False,
        default=utc_now,
        onupdate=utc_now,
    )

    def to_dict(self) -> dict[str, object]:
        return {"id": self.company_id, "name": self.name}


class User(db.Model):
    __tablename__ = "users"

    user_id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.company_id"), nullable=True)
    name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    last_login_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(
        db.DateTime,
        nullable=False,
        default=utc_now,
        onupdate=utc_now,
    )

    company = db.relationship("Company")

    def to_dict_basic(self) -> dict[str, object]:
        return {
            "id": self.user_id,
            "name": self.name,
            "email": self.email,
            "company_id": self.company_id,
        }


class Service(db.Model):
    """Services offered by a pet shop (grooming, bath, vet visit...)."""

    __tablename__ = "services"

    service_id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.company_id"), nullable=False)
    name = db.Column(db.String(150), nullable=False)
    description = db.Column(db.Text)
    price_cents = db.Column(db.Integer, nullable=False, default=0)
    duration_minutes = db.Column(db.Integer, nullable=False)
    # ISO weekdays, 1=Monday ... 7=Sunday
    available_days = db.Column(db.JSON, nullable=False, default=list)
    # {"start": "08:00", "end": "18:00"}
    available_hours = db.Column(db.JSON, nullable=True, default=dict)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(
        db.DateTime,
        nullable=False,
        default=utc_now,
        onupdate=utc_now,
    )

    @property
    def hour_window(self) -> HourWindow | None:
        return HourWindow.from_mapping(self.available_hours)

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.service_id,
            "company_id": self.company_id,
            "name": self.name,
            "description": self.description,
            "price_cents": self.price_cents,
            "price": cents_to_units(self.price_cents or 0),
            "duration_minutes": self.duration_minutes,
            "available_days": list(self.available_days or []),
            "available_hours": self.available_hours or {},
            "is_active": bool(self.is_active),
        }


class Appointment(db.Model):
    """A booked service for a client's pet."""

    __tablename__ = "appointments"

    appointment_id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.company_id"), nullable=False)
    service_id = db.Column(db.Integer, db.ForeignKey("services.service_id"), nullable=False)
    client_name = db.Column(db.String(150))
    pet_name = db.Column(db.String(100))
    appointment_date = db.Column(db.Date, nullable=False, index=True)
    start_time = db.Column(db.Time, nullable=False)
    # Copied from the service when booked so later catalog edits don't move it.
    duration_minutes = db.Column(db.Integer, nullable=False)
    status = db.Column(
        db.Enum(
            *APPOINTMENT_STATUSES,
            name="appointment_status",
            native_enum=False,
            validate_strings=True,
        ),
        nullable=False,
        default="scheduled",
        server_default="scheduled",
    )
    notes = db.Column(db.Text)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(
        db.DateTime,
        nullable=False,
        default=utc_now,
        onupdate=utc_now,
    )

    service = db.relationship("Service")

    @property
    def starts_at(self) -> datetime:
        return datetime.combine(self.appointment_date, self.start_time)

    @property
    def ends_at(self) -> datetime:
        return self.starts_at + timedelta(minutes=self.duration_minutes)

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.appointment_id,
            "company_id": self.company_id,
            "service_id": self.service_id,
            "service": {
                "id": self.service.service_id,
                "name": self.service.name,
                "price_cents": self.service.price_cents,
            } if self.service else None,
            "client_name": self.client_name,
            "pet_name": self.pet_name,
            "date": self.appointment_date.isoformat(),
            "start_time": self.start_time.strftime("%H:%M"),
            "duration_minutes": self.duration_minutes,
            "starts_at": self.starts_at.isoformat(),
            "ends_at": self.ends_at.isoformat(),
            "status": self.status,
            "notes": self.notes,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class FinancialAccount(db.Model):
    """A cash drawer, bank or card account.

    The balance is never stored; see ``SqlAlchemyRepository.compute_account_balance``.
    """

    __tablename__ = "financial_accounts"

    account_id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.company_id"), nullable=False)
    name = db.Column(db.String(100), nullable=False)
    type = db.Column(
        db.Enum(
            "bank",
            "cash",
            "credit",
            "savings",
            name="financial_account_type",
            native_enum=False,
            validate_strings=True,
        ),
        nullable=False,
        default="cash",
    )
    initial_balance_cents = db.Column(db.Integer, nullable=False, default=0)
    bank_name = db.Column(db.String(100))
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(
        db.DateTime,
        nullable=False,
        default=utc_now,
        onupdate=utc_now,
    )

    def to_dict_basic(self) -> dict[str, object]:
        return {"id": self.account_id, "name": self.name, "type": self.type}


class FinancialCategory(db.Model):
    __tablename__ = "financial_categories"

    category_id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.company_id"), nullable=False)
    name = db.Column(db.String(100), nullable=False)
    type = db.Column(
        db.Enum(
            "income",
            "expense",
            name="financial_category_type",
            native_enum=False,
            validate_strings=True,
        ),
        nullable=False,
    )
    color = db.Column(db.String(20))
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)


class FinancialTransfer(db.Model):
    """Money moved between two accounts of the same company."""

    __tablename__ = "financial_transfers"

    transfer_id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.company_id"), nullable=False)
    from_account_id = db.Column(
        db.Integer, db.ForeignKey("financial_accounts.account_id"), nullable=False
    )
    to_account_id = db.Column(
        db.Integer, db.ForeignKey("financial_accounts.account_id"), nullable=False
    )
    amount_cents = db.Column(db.Integer, nullable=False)
    description = db.Column(db.String(200))
    transfer_date = db.Column(db.Date, nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(
        db.DateTime,
        nullable=False,
        default=utc_now,
        onupdate=utc_now,
    )

    __table_args__ = (
        db.CheckConstraint("from_account_id <> to_account_id", name="ck_transfer_distinct_accounts"),
        db.CheckConstraint("amount_cents > 0", name="ck_transfer_positive_amount"),
    )

    from_account = db.relationship("FinancialAccount", foreign_keys=[from_account_id])
    to_account = db.relationship("FinancialAccount", foreign_keys=[to_account_id])
    transactions = db.relationship(
        "FinancialTransaction", back_populates="transfer", passive_deletes=True
    )

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.transfer_id,
            "from_account_id": self.from_account_id,
            "to_account_id": self.to_account_id,
            "from_account": self.from_account.to_dict_basic() if self.from_account else None,
            "to_account": self.to_account.to_dict_basic() if self.to_account else None,
            "amount_cents": self.amount_cents,
            "amount": cents_to_units(self.amount_cents),
            "description": self.description,
            "date": self.transfer_date.isoformat(),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class FinancialTransaction(db.Model):
    """One income or expense line on an account.

    ``amount_cents`` is always positive; ``type`` carries the sign.
    """

    __tablename__ = "financial_transactions"

    transaction_id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.company_id"), nullable=False)
    account_id = db.Column(
        db.Integer, db.ForeignKey("financial_accounts.account_id"), nullable=False, index=True
    )
    # Null for rows generated by a transfer.
    category_id = db.Column(
        db.Integer, db.ForeignKey("financial_categories.category_id"), nullable=True
    )
    type = db.Column(
        db.Enum(
            "income",
            "expense",
            name="financial_transaction_type",
            native_enum=False,
            validate_strings=True,
        ),
        nullable=False,
    )
    amount_cents = db.Column(db.Integer, nullable=False)
    description = db.Column(db.String(255))
    transaction_date = db.Column(db.Date, nullable=False)
    transfer_id = db.Column(
        db.Integer, db.ForeignKey("financial_transfers.transfer_id"), nullable=True, index=True
    )
    appointment_id = db.Column(
        db.Integer, db.ForeignKey("appointments.appointment_id"), nullable=True
    )
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(
        db.DateTime,
        nullable=False,
        default=utc_now,
        onupdate=utc_now,
    )

    __table_args__ = (
        db.CheckConstraint("amount_cents > 0", name="ck_transaction_positive_amount"),
    )

    account = db.relationship("FinancialAccount")
    category = db.relationship("FinancialCategory")
    transfer = db.relationship("FinancialTransfer", back_populates="transactions")

    @property
    def signed_amount_cents(self) -> int:
        return self.amount_cents if self.type == "income" else -self.amount_cents

    @property
    def is_protected(self) -> bool:
        """System generated rows belong to a transfer or an appointment."""
        return self.transfer_id is not None or self.appointment_id is not None

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.transaction_id,
            "account_id": self.account_id,
            "category_id": self.category_id,
            "type": self.type,
            "amount_cents": self.amount_cents,
            "signed_amount_cents": self.signed_amount_cents,
            "amount": cents_to_units(self.amount_cents),
            "description": self.description,
            "date": self.transaction_date.isoformat(),
            "transfer_id": self.transfer_id,
            "appointment_id": self.appointment_id,
            "is_protected": self.is_protected,
        }
