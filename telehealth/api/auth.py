"""
JWT authentication helpers and middleware for the Flask API.

Tokens are issued by the external identity provider; this side only
verifies them and turns their claims into a ``SessionIdentity``.
"""

from datetime import datetime, timedelta
from functools import wraps
from typing import Any, Dict, Optional

import jwt
from flask import jsonify, request

from telehealth.config import IDP_JWT_ALGORITHM, IDP_JWT_AUDIENCE, IDP_JWT_SECRET, TOKEN_EXPIRY_HOURS
from telehealth.models import SessionIdentity


def generate_token(identity: SessionIdentity, expires_in_hours: int = TOKEN_EXPIRY_HOURS) -> str:
    """Mint a token for *identity* the way the identity provider would (development use)."""
    payload = {
        "sub": identity.external_id,
        "email": identity.email,
        "given_name": identity.first_name,
        "family_name": identity.last_name,
        "phone_number": identity.phone,
        "picture": identity.image_url,
        "role": identity.role_hint,
        "iat": datetime.utcnow(),
        "exp": datetime.utcnow() + timedelta(hours=expires_in_hours),
    }
    if IDP_JWT_AUDIENCE:
        payload["aud"] = IDP_JWT_AUDIENCE
    return jwt.encode(payload, IDP_JWT_SECRET, algorithm=IDP_JWT_ALGORITHM)


def verify_token(token: str) -> Optional[Dict[str, Any]]:
    """Verify a JWT token and return the decoded payload (or None)."""
    try:
        return jwt.decode(
            token,
            IDP_JWT_SECRET,
            algorithms=[IDP_JWT_ALGORITHM],
            audience=IDP_JWT_AUDIENCE,
            options={"verify_aud": bool(IDP_JWT_AUDIENCE)},
        )
    except jwt.ExpiredSignatureError:
        return None
    except jwt.InvalidTokenError:
        return None


def identity_from_claims(claims: Dict[str, Any]) -> Optional[SessionIdentity]:
    """Map provider claims to a ``SessionIdentity``; ``None`` without a subject."""
    subject = claims.get("sub")
    if not subject:
        return None
    return SessionIdentity(
        external_id=str(subject),
        email=claims.get("email"),
        first_name=claims.get("given_name") or "",
        last_name=claims.get("family_name") or "",
        phone=claims.get("phone_number"),
        image_url=claims.get("picture"),
        role_hint=claims.get("role"),
    )


def token_required(f):
    """Decorator that protects endpoints with JWT authentication."""
    @wraps(f)
    def decorated(*args, **kwargs):
        token = None

        # Check Authorization header (Bearer token)
        if "Authorization" in request.headers:
            auth_header = request.headers["Authorization"]
            try:
                token = auth_header.split(" ")[1]
            except IndexError:
                return jsonify({"error": "Invalid authorization header format"}), 401

        # Fallback: query params
        if not token:
            token = request.args.get("token")

        if not token:
            return jsonify({"error": "Authentication token is missing"}), 401

        payload = verify_token(token)
        if not payload:
            return jsonify({"error": "Invalid or expired token"}), 401

        identity = identity_from_claims(payload)
        if identity is None:
            return jsonify({"error": "Token has no subject"}), 401

        request.identity = identity
        request.token = token

        return f(*args, **kwargs)

    return decorated
