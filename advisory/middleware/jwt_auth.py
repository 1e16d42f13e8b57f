"""
JWT Auth Middleware — parses JWT from the Authorization header, sets g.jwt_user_id.

The middleware never rejects a request by itself: an absent, expired or
invalid token leaves ``g.jwt_user_id`` unset and the identity resolver
(``advisory.services.identity``) decides whether the endpoint needs one.
"""

import logging

import jwt as pyjwt
from flask import g, request

from advisory.services.jwt_service import decode_access_token

logger = logging.getLogger(__name__)

# Paths that skip JWT auth entirely
JWT_SKIP_PREFIXES = (
    "/api/v1/health",
)


def init_jwt_middleware(app):
    """Register JWT middleware as a before_request hook."""

    @app.before_request
    def _jwt_auth():
        g.jwt_user_id = None
        g.jwt_role = None

        path = request.path
        if not path.startswith("/api/v1/"):
            return
        for prefix in JWT_SKIP_PREFIXES:
            if path.startswith(prefix):
                return

        auth_header = request.headers.get("Authorization", "")
        if not auth_header.startswith("Bearer "):
            return

        token = auth_header[7:]  # Strip "Bearer "

        try:
            payload = decode_access_token(token)
            g.jwt_user_id = payload.get("sub")
            g.jwt_role = payload.get("role")
        except pyjwt.ExpiredSignatureError:
            logger.info("Expired access token", extra={"event_type": "jwt_expired", "path": path})
        except pyjwt.InvalidTokenError:
            logger.warning("Invalid access token", extra={"event_type": "jwt_invalid", "path": path})
