#!/usr/bin/env python3
"""
Seed a demo pet shop: two accounts, a couple of categories, services and a
first transfer, so the availability and ledger endpoints have data to show.
"""

import sys
from datetime import date, timedelta
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from app import create_app
from app.errors import PetShopError
from app.extensions import db
from app.ledger import LedgerService
from app.models import Company, FinancialAccount, FinancialCategory, Service

def seed_demo(company_name="Demo Pet Shop"):
    """Create demo catalog and ledger rows for ``company_name``."""
    app = create_app()

    with app.app_context():
        print("Seeding demo data...")

        company = Company.query.filter_by(name=company_name).first()
        if company is None:
            company = Company(name=company_name)
            db.session.add(company)
            db.session.flush()

        if Service.query.filter_by(company_id=company.company_id).count():
            print(f"Company '{company_name}' already has services, skipping")
            return

        db.session.add_all([
            Service(
                company_id=company.company_id,
                name="Bath",
                price_cents=4000,
                duration_minutes=60,
                available_days=[1, 2, 3, 4, 5, 6],
                available_hours={"start": "08:00", "end": "18:00"},
            ),
            Service(
                company_id=company.company_id,
                name="Full grooming",
                price_cents=9000,
                duration_minutes=90,
                available_days=[2, 3, 4, 5],
                available_hours={"start": "09:00", "end": "17:00"},
            ),
        ])
        cash = FinancialAccount(company_id=company.company_id, name="Cash drawer", type="cash",
                                initial_balance_cents=50000)
        bank = FinancialAccount(company_id=company.company_id, name="Bank", type="bank",
                                initial_balance_cents=250000)
        db.session.add_all([
            cash,
            bank,
            FinancialCategory(company_id=company.company_id, name="Services", type="income"),
            FinancialCategory(company_id=company.company_id, name="Supplies", type="expense"),
        ])
        db.session.commit()
        print(f"Created services, accounts and categories for '{company_name}'")

        try:
            result = LedgerService().create_transfer(
                company.company_id,
                cash.account_id,
                bank.account_id,
                20000,
                date.today() - timedelta(days=1),
                "End of day deposit",
            )
        except PetShopError as exc:
            print(f"Could not create demo transfer: {exc.message}")
            return

        print(f"Created transfer {result.transfer.transfer_id} (${result.transfer.amount_cents/100:.2f})")
        ledger = LedgerService()
        for account in (cash, bank):
            balance = ledger.account_balance(company.company_id, account.account_id)
            print(f"  {account.name}: ${balance/100:.2f}")

if __name__ == "__main__":
    seed_demo()
