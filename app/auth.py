"""Bearer tokens identifying the user and the company they act for."""
from __future__ import annotations

from flask import current_app, request
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from .errors import Unauthenticated


def _serializer() -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(current_app.config["SECRET_KEY"], salt="auth-token")


def build_token(user_id: int, company_id: int | None) -> str:
    return _serializer().dumps({"user_id": user_id, "company_id": company_id})


def read_token() -> dict[str, object] | None:
    """Decode the ``Authorization: Bearer`` header, or ``None`` if absent or invalid."""
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return None

    token = auth_header[7:]
    try:
        return _serializer().loads(token, max_age=current_app.config.get("TOKEN_MAX_AGE", 86400))
    except SignatureExpired:
        current_app.logger.info("Rejected expired token")
        return None
    except BadSignature:
        return None


def get_tenant_id() -> int:
    """Company id of the authenticated user; raises ``Unauthenticated``."""
    payload = read_token()
    if not payload or not payload.get("company_id"):
        raise Unauthenticated()
    return int(payload["company_id"])
