"""pytest configuration: path management and shared fixtures."""
from __future__ import annotations

import sys
from pathlib import Path

import pytest
from werkzeug.security import generate_password_hash

# Ensure the project root is available on sys.path so tests can import the app package.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from app import create_app  # noqa: E402
from app.auth import build_token  # noqa: E402
from app.config import TestConfig  # noqa: E402
from app.extensions import db  # noqa: E402
from app.models import (Company, FinancialAccount, FinancialCategory,  # noqa: E402
                        Service, User)

ALL_WEEK = [1, 2, 3, 4, 5, 6, 7]


@pytest.fixture
def app():
    flask_app = create_app(TestConfig)
    with flask_app.app_context():
        db.create_all()
    yield flask_app
    with flask_app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


def seed_shop(app) -> dict[str, int]:
    """One company with two accounts, categories and a 60 minute service,
    plus a second company that owns an account of its own."""
    with app.app_context():
        company = Company(name="Happy Paws")
        other = Company(name="Other Shop")
        db.session.add_all([company, other])
        db.session.flush()

        user = User(
            company_id=company.company_id,
            name="Olivia Owner",
            email="owner@happypaws.test",
            password_hash=generate_password_hash("Secret123!"),
        )
        checking = FinancialAccount(
            company_id=company.company_id, name="Checking", type="bank", initial_balance_cents=10000
        )
        cash = FinancialAccount(
            company_id=company.company_id, name="Cash", type="cash", initial_balance_cents=0
        )
        foreign = FinancialAccount(
            company_id=other.company_id, name="Foreign", type="bank", initial_balance_cents=50000
        )
        income = FinancialCategory(company_id=company.company_id, name="Services", type="income")
        expense = FinancialCategory(company_id=company.company_id, name="Supplies", type="expense")
        bath = Service(
            company_id=company.company_id,
            name="Bath",
            price_cents=4000,
            duration_minutes=60,
            available_days=ALL_WEEK,
            available_hours={"start": "08:00", "end": "12:00"},
        )
        db.session.add_all([user, checking, cash, foreign, income, expense, bath])
        db.session.commit()

        return {
            "company_id": company.company_id,
            "other_company_id": other.company_id,
            "user_id": user.user_id,
            "checking_id": checking.account_id,
            "cash_id": cash.account_id,
            "foreign_id": foreign.account_id,
            "income_category_id": income.category_id,
            "expense_category_id": expense.category_id,
            "service_id": bath.service_id,
        }


@pytest.fixture
def auth_headers(app, shop) -> dict[str, str]:
    with app.app_context():
        token = build_token(shop["user_id"], shop["company_id"])
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def shop(app) -> dict[str, int]:
    return seed_shop(app)


@pytest.fixture
def threaded_app(tmp_path):
    """App on a file database that several threads can share."""

    class ThreadedConfig(TestConfig):
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{tmp_path / 'petshop.db'}"
        SQLALCHEMY_ENGINE_OPTIONS = {"connect_args": {"check_same_thread": False, "timeout": 30}}

    flask_app = create_app(ThreadedConfig)
    with flask_app.app_context():
        db.create_all()
    yield flask_app
    with flask_app.app_context():
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


@pytest.fixture
def threaded_shop(threaded_app) -> dict[str, int]:
    return seed_shop(threaded_app)
