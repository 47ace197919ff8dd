"""HTTP routes for the pet shop backend: health, login, services, appointments."""
from __future__ import annotations

from datetime import datetime, timezone

from flask import Blueprint, Flask, current_app, jsonify, request
from sqlalchemy import func, text
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.security import check_password_hash

from .auth import build_token, get_tenant_id
from .availability import SLOT_GRANULARITY_MINUTES, AvailabilityService
from .booking import AppointmentService
from .errors import InvalidPayload, PetShopError
from .extensions import db
from .models import User
from .values import parse_date, parse_duration, parse_time

bp = Blueprint("api", __name__)


def payload_int(payload: dict, field: str, required: bool = True) -> int | None:
    """Read an integer id from a JSON body."""
    value = payload.get(field)
    if value is None or value == "":
        if required:
            raise InvalidPayload(f"{field} is required")
        return None
    if isinstance(value, bool):
        raise InvalidPayload(f"{field} must be an integer")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InvalidPayload(f"{field} must be an integer") from None


def handle_petshop_error(exc: PetShopError):
    if exc.status_code >= 500:
        db.session.rollback()
    else:
        current_app.logger.info("Request rejected: %s (%s)", exc.error, exc.message)
    return jsonify(exc.to_dict()), exc.status_code


def register_routes(app: Flask) -> None:
    from .routes_financial import bp_financial

    app.register_blueprint(bp)
    app.register_blueprint(bp_financial)
    app.register_error_handler(PetShopError, handle_petshop_error)


@bp.get("/health")
def health_check() -> tuple[dict[str, str], int]:
    """Expose a simple uptime check endpoint.
    ---
    tags:
      - Health
    responses:
      200:
        description: Service is healthy and running.
    """
    return jsonify({"status": "ok"}), 200


@bp.get("/db-health")
def database_health() -> tuple[dict[str, str], int]:
    """Check connectivity to the configured database."""
    try:
        db.session.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        current_app.logger.exception("Database connectivity check failed", exc_info=exc)
        return jsonify({"database": "unavailable"}), 500

    return jsonify({"database": "ok"}), 200


@bp.post("/auth/login")
def login() -> tuple[dict[str, object], int]:
    """Authenticate a user by email/password and return an access token.
    ---
    tags:
      - Authentication
    responses:
      200:
        description: Token issued
      400:
        description: Missing credentials
      401:
        description: Invalid credentials
    """
    payload = request.get_json(silent=True) or {}
    email = (payload.get("email") or "").strip().lower()
    password = payload.get("password") or ""

    if not email or not password:
        return (
            jsonify({"error": "invalid_payload", "message": "email and password are required"}),
            400,
        )

    try:
        user = User.query.filter(func.lower(User.email) == email).first()
        if user is None or not check_password_hash(user.password_hash, password):
            return jsonify({"error": "unauthorized", "message": "invalid email or password"}), 401

        user.last_login_at = datetime.now(timezone.utc)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to log user in", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    token = build_token(user.user_id, user.company_id)
    return jsonify({"token": token, "user": user.to_dict_basic()}), 200


@bp.get("/services/<int:service_id>/availability")
def service_availability(service_id: int) -> tuple[dict[str, object], int]:
    """List the free start times for a service on a given date.
    ---
    tags:
      - Appointments
    parameters:
      - name: date
        in: query
        type: string
        required: true
        description: YYYY-MM-DD
      - name: duration_minutes
        in: query
        type: integer
        description: Override the service duration
    responses:
      200:
        description: Available slots
      400:
        description: Invalid input
      404:
        description: Service not found
    """
    company_id = get_tenant_id()
    date_str = request.args.get("date")
    if not date_str:
        raise InvalidPayload("date (YYYY-MM-DD) is required")
    day = parse_date(date_str)

    duration = request.args.get("duration_minutes")
    duration_minutes = parse_duration(duration) if duration is not None else None

    try:
        slots = AvailabilityService().available_slots(company_id, service_id, day, duration_minutes)
    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to check availability", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return (
        jsonify({
            "date": day.isoformat(),
            "service_id": service_id,
            "granularity_minutes": SLOT_GRANULARITY_MINUTES,
            "available_slots": [slot.strftime("%H:%M") for slot in slots],
        }),
        200,
    )


@bp.get("/appointments")
def list_appointments() -> tuple[dict[str, object], int]:
    """List the company's appointments for one day."""
    company_id = get_tenant_id()
    day = parse_date(request.args.get("date") or datetime.now(timezone.utc).date())
    include_cancelled = request.args.get("include_cancelled", "false").lower() == "true"

    try:
        appointments = AppointmentService().list_for_day(company_id, day, include_cancelled)
    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to fetch appointments", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return jsonify({"appointments": [a.to_dict() for a in appointments]}), 200


@bp.post("/appointments")
def create_appointment() -> tuple[dict[str, object], int]:
    """Book an appointment on one of the service's free slots.
    ---
    tags:
      - Appointments
    parameters:
      - name: body
        in: body
        required: true
        schema:
          type: object
          properties:
            service_id:
              type: integer
            date:
              type: string
              format: date
            start_time:
              type: string
              example: "09:30"
            client_name:
              type: string
            pet_name:
              type: string
            notes:
              type: string
          required:
            - service_id
            - date
            - start_time
    responses:
      201:
        description: Appointment created
      400:
        description: Invalid payload
      409:
        description: Selected time is no longer available
    """
    company_id = get_tenant_id()
    payload = request.get_json(silent=True) or {}

    service_id = payload_int(payload, "service_id")
    if not payload.get("date") or not payload.get("start_time"):
        raise InvalidPayload("service_id, date and start_time are required")
    day = parse_date(payload["date"])
    start_time = parse_time(payload["start_time"])

    appointment = AppointmentService().book(
        company_id,
        service_id,
        day,
        start_time,
        client_name=(payload.get("client_name") or "").strip() or None,
        pet_name=(payload.get("pet_name") or "").strip() or None,
        notes=(payload.get("notes") or "").strip() or None,
    )
    return (
        jsonify({"message": "Appointment created successfully", "appointment": appointment.to_dict()}),
        201,
    )


@bp.put("/appointments/<int:appointment_id>/status")
def update_appointment_status(appointment_id: int) -> tuple[dict[str, object], int]:
    """Move an appointment through its workflow.

    Completing it with an ``account_id`` books the service price as income.
    """
    company_id = get_tenant_id()
    payload = request.get_json(silent=True) or {}
    status = (payload.get("status") or "").strip()
    if not status:
        raise InvalidPayload("status is required")

    appointment = AppointmentService().change_status(
        company_id,
        appointment_id,
        status,
        account_id=payload_int(payload, "account_id", required=False),
        category_id=payload_int(payload, "category_id", required=False),
    )
    return jsonify({"message": "Appointment updated", "appointment": appointment.to_dict()}), 200
