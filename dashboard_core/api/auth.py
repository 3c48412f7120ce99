"""
Identity extraction for the Flask API.

Tokens are verified upstream (proxy / auth module); here the JWT claims are
only read, with expiry still enforced. When no usable token is present the
``x-user-*`` headers set by the proxy are used instead.
"""

from functools import wraps
from typing import Any, Dict, List, Optional

import jwt
from flask import jsonify, request

from dashboard_core.config import TOKEN_COOKIE_NAME
from dashboard_core.models import Identity


def _split_list(value: Any) -> List[str]:
    if isinstance(value, (list, tuple)):
        items = [str(v) for v in value]
    elif isinstance(value, str):
        items = value.split(",")
    else:
        items = []
    return [v.strip() for v in items if v.strip()]


def decode_claims(token: str) -> Dict[str, Any]:
    """Read JWT claims without checking the signature. Expiry is still checked."""
    return jwt.decode(token, options={"verify_signature": False, "verify_exp": True})


def identity_from_claims(payload: Dict[str, Any]) -> Identity:
    email = (
        payload.get("email")
        or payload.get("preferred_username")
        or payload.get("upn")
        or payload.get("unique_name")
        or ""
    )
    groups_raw = next(
        (payload[k] for k in ("groupIds", "group_ids", "group_ids_list", "groups", "group_ids_csv")
         if payload.get(k) is not None),
        [],
    )
    roles_raw = payload.get("roles") if payload.get("roles") is not None else payload.get("role")
    if isinstance(roles_raw, str):
        roles_raw = [roles_raw]
    return Identity(
        subject_id=str(payload.get("sub") or email or ""),
        email=str(email),
        name=str(payload.get("name") or email or ""),
        roles=_split_list(roles_raw),
        groups=_split_list(groups_raw),
    )


def identity_from_headers(headers) -> Optional[Identity]:
    user_id = headers.get("x-user-id")
    if not user_id:
        return None
    email = headers.get("x-user-email", "")
    return Identity(
        subject_id=user_id,
        email=email,
        name=headers.get("x-user-name") or email,
        roles=_split_list(headers.get("x-user-roles", "")),
        groups=_split_list(headers.get("x-user-group-ids") or headers.get("x-user-groups", "")),
    )


def extract_identity() -> Optional[Identity]:
    """Identity for the current request, or None."""
    token = request.cookies.get(TOKEN_COOKIE_NAME)
    if not token:
        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            token = auth_header[7:]

    if token:
        if token.count(".") != 2:
            return None
        try:
            return identity_from_claims(decode_claims(token))
        except jwt.ExpiredSignatureError:
            return None
        except jwt.InvalidTokenError:
            pass  # unreadable token: fall back to proxy headers

    return identity_from_headers(request.headers)


def identity_required(f):
    """Decorator that rejects requests without an identity."""
    @wraps(f)
    def decorated(*args, **kwargs):
        identity = extract_identity()
        if identity is None or not identity.subject_id:
            return jsonify({"error": "Unauthorized"}), 401
        request.identity = identity
        return f(*args, **kwargs)

    return decorated
