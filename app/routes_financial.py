"""Financial routes: account balances, transfers and transactions."""
from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from .auth import get_tenant_id
from .errors import InvalidPayload
from .ledger import LedgerService
from .models import FinancialTransfer
from .repository import SqlAlchemyRepository
from .routes import payload_int
from .values import cents_to_units, parse_date

bp_financial = Blueprint("financial", __name__, url_prefix="/financial")


def _description(payload: dict) -> str | None:
    description = payload.get("description")
    if description is None:
        return None
    description = str(description).strip()
    if len(description) > 200:
        raise InvalidPayload("description must be at most 200 characters")
    return description or None


@bp_financial.get("/accounts/<int:account_id>/balance")
def account_balance(account_id: int) -> tuple[dict[str, object], int]:
    """Current balance: initial balance plus every income minus every expense."""
    company_id = get_tenant_id()
    try:
        balance = LedgerService().account_balance(company_id, account_id)
    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to compute account balance", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return (
        jsonify({
            "account_id": account_id,
            "balance_cents": balance,
            "balance": cents_to_units(balance),
        }),
        200,
    )


# --- Transfers ---


@bp_financial.get("/transfers")
def list_transfers() -> tuple[dict[str, object], int]:
    """List transfers with filters and pagination.
    ---
    tags:
      - Financial
    parameters:
      - name: page
        in: query
        type: integer
        default: 1
      - name: limit
        in: query
        type: integer
        default: 10
        maximum: 100
      - name: account_id
        in: query
        type: integer
        description: Transfers leaving or entering this account
      - name: date_from
        in: query
        type: string
      - name: date_to
        in: query
        type: string
      - name: search
        in: query
        type: string
    responses:
      200:
        description: Transfers with pagination and the total transferred
    """
    company_id = get_tenant_id()
    try:
        page = max(1, int(request.args.get("page", 1)))
        limit = min(100, max(1, int(request.args.get("limit", 10))))
        account_id = request.args.get("account_id", type=int)
    except (ValueError, TypeError) as exc:
        current_app.logger.warning(f"Invalid pagination parameters: {exc}")
        return jsonify({"error": "invalid_parameters"}), 400

    date_from = request.args.get("date_from")
    date_to = request.args.get("date_to")
    filters = {
        "account_id": account_id,
        "date_from": parse_date(date_from, "date_from") if date_from else None,
        "date_to": parse_date(date_to, "date_to") if date_to else None,
        "search": (request.args.get("search") or "").strip() or None,
    }

    try:
        query = SqlAlchemyRepository().list_transfers(company_id, **filters)
        total = query.count()
        transfers = query.limit(limit).offset((page - 1) * limit).all()
        total_transferred = (
            query.order_by(None)
            .with_entities(func.coalesce(func.sum(FinancialTransfer.amount_cents), 0))
            .scalar()
        )
    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to fetch transfers", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return (
        jsonify({
            "transfers": [t.to_dict() for t in transfers],
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "pages": (total + limit - 1) // limit,
            },
            "statistics": {"total_transferred_cents": total_transferred},
        }),
        200,
    )


@bp_financial.post("/transfers")
def create_transfer() -> tuple[dict[str, object], int]:
    """Move money between two accounts of the company.
    ---
    tags:
      - Financial
    parameters:
      - name: body
        in: body
        required: true
        schema:
          type: object
          properties:
            from_account_id:
              type: integer
            to_account_id:
              type: integer
            amount_cents:
              type: integer
            date:
              type: string
              format: date
            description:
              type: string
          required:
            - from_account_id
            - to_account_id
            - amount_cents
            - date
    responses:
      201:
        description: Transfer and both of its transactions created
      400:
        description: Invalid payload, amount or same account
      404:
        description: Account not found
      409:
        description: Insufficient balance in the source account
      500:
        description: Nothing was saved
    """
    company_id = get_tenant_id()
    payload = request.get_json(silent=True) or {}

    from_account_id = payload_int(payload, "from_account_id")
    to_account_id = payload_int(payload, "to_account_id")
    if "amount_cents" not in payload or not payload.get("date"):
        raise InvalidPayload("from_account_id, to_account_id, amount_cents and date are required")

    result = LedgerService().create_transfer(
        company_id,
        from_account_id,
        to_account_id,
        payload["amount_cents"],
        parse_date(payload["date"]),
        _description(payload),
    )
    return jsonify({"message": "Transfer created successfully", "transfer": result.to_dict()}), 201


@bp_financial.get("/transfers/<int:transfer_id>")
def get_transfer(transfer_id: int) -> tuple[dict[str, object], int]:
    company_id = get_tenant_id()
    transfer = LedgerService().get_transfer(company_id, transfer_id)
    payload = transfer.to_dict()
    payload["transactions"] = [t.to_dict() for t in transfer.transactions]
    return jsonify({"transfer": payload}), 200


@bp_financial.put("/transfers/<int:transfer_id>")
def update_transfer(transfer_id: int) -> tuple[dict[str, object], int]:
    """Partially update a transfer; both linked transactions follow."""
    company_id = get_tenant_id()
    payload = request.get_json(silent=True) or {}

    changes: dict[str, object] = {}
    for field in ("from_account_id", "to_account_id"):
        if field in payload:
            changes[field] = payload_int(payload, field)
    if "amount_cents" in payload:
        changes["amount_cents"] = payload["amount_cents"]
    if "date" in payload:
        changes["transfer_date"] = parse_date(payload["date"])
    if "description" in payload:
        changes["description"] = _description(payload)
    if not changes:
        raise InvalidPayload("nothing to update")

    result = LedgerService().update_transfer(company_id, transfer_id, **changes)
    return jsonify({"message": "Transfer updated successfully", "transfer": result.to_dict()}), 200


@bp_financial.delete("/transfers/<int:transfer_id>")
def delete_transfer(transfer_id: int) -> tuple[dict[str, str], int]:
    company_id = get_tenant_id()
    LedgerService().delete_transfer(company_id, transfer_id)
    return jsonify({"message": "Transfer deleted successfully"}), 200


# --- Transactions ---


@bp_financial.post("/transactions")
def create_transaction() -> tuple[dict[str, object], int]:
    """Record an income or an expense on an account.

    Appointment income is booked when an appointment is completed, never here.
    ---
    tags:
      - Financial
    responses:
      201:
        description: Transaction created
      400:
        description: Invalid payload
      404:
        description: Account or category not found
      409:
        description: Expense exceeds the account balance
    """
    company_id = get_tenant_id()
    payload = request.get_json(silent=True) or {}

    account_id = payload_int(payload, "account_id")
    if "amount_cents" not in payload or not payload.get("type") or not payload.get("date"):
        raise InvalidPayload("account_id, type, amount_cents and date are required")

    transaction = LedgerService().record_transaction(
        company_id,
        account_id,
        payload["type"],
        payload["amount_cents"],
        parse_date(payload["date"]),
        category_id=payload_int(payload, "category_id", required=False),
        description=_description(payload),
    )
    return jsonify({"message": "Transaction created successfully", "transaction": transaction.to_dict()}), 201


@bp_financial.put("/transactions/<int:transaction_id>")
def update_transaction(transaction_id: int) -> tuple[dict[str, object], int]:
    company_id = get_tenant_id()
    payload = request.get_json(silent=True) or {}

    changes: dict[str, object] = {}
    for field in ("account_id", "category_id"):
        if field in payload:
            changes[field] = payload_int(payload, field, required=False)
    for field in ("type", "amount_cents"):
        if field in payload:
            changes[field] = payload[field]
    if "date" in payload:
        changes["transaction_date"] = parse_date(payload["date"])
    if "description" in payload:
        changes["description"] = _description(payload)
    if not changes:
        raise InvalidPayload("nothing to update")

    transaction = LedgerService().update_transaction(company_id, transaction_id, **changes)
    return jsonify({"message": "Transaction updated successfully", "transaction": transaction.to_dict()}), 200


@bp_financial.delete("/transactions/<int:transaction_id>")
def delete_transaction(transaction_id: int) -> tuple[dict[str, str], int]:
    company_id = get_tenant_id()
    LedgerService().delete_transaction(company_id, transaction_id)
    return jsonify({"message": "Transaction deleted successfully"}), 200
