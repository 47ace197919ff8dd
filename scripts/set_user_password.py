"""Create a shop user (and its company) or reset its password for local development."""
from __future__ import annotations

import argparse
import sys
from pathlib import Path

from werkzeug.security import generate_password_hash

# Ensure the project root is on sys.path so ``app`` can be imported when the script is executed directly.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from app import create_app
from app.extensions import db
from app.models import Company, User


def set_password(email: str, password: str, company_name: str) -> None:
    app = create_app()

    with app.app_context():
        company = Company.query.filter_by(name=company_name).first()
        if company is None:
            company = Company(name=company_name)
            db.session.add(company)
            db.session.flush()
            print(f"Created company: {company_name}")

        user = User.query.filter_by(email=email).first()
        if user is None:
            user = User(name=email.split("@")[0], email=email, password_hash="")
            db.session.add(user)
            print(f"Created new user: {email}")
        elif user.company_id != company.company_id:
            print(f"Moving user from company {user.company_id} to {company.company_id}")

        user.company_id = company.company_id
        user.password_hash = generate_password_hash(password)
        db.session.commit()

        print(f"Password for '{email}' ({company_name}) has been set successfully.")


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Set a user password for local testing.")
    parser.add_argument("email", help="User email address")
    parser.add_argument("password", help="Plain-text password to hash and store")
    parser.add_argument(
        "--company",
        default="Demo Pet Shop",
        help="Company the user belongs to (created if missing)"
    )
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    set_password(args.email, args.password, args.company)


if __name__ == "__main__":
    main()
