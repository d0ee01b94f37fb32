# Overview: Request decorators that turn upstream identity headers into explicit ids.

from dataclasses import dataclass
from functools import wraps

from flask import g, jsonify, request

USER_HEADER = "X-User-Id"
CUSTOMER_HEADER = "X-Customer-Id"


@dataclass(frozen=True)
class Identity:
    """Caller identity as asserted by the upstream auth layer."""
    user_id: int | None
    customer_id: int | None


def _header_id(name: str) -> int | None:
    raw = request.headers.get(name)
    if raw is None or not raw.strip():
        return None
    raw = raw.strip()
    if not raw.isdigit():
        raise ValueError(name)
    return int(raw)


def require_identity(*, customer: bool = False, user: bool = False):
    """
    Require identity headers and expose them as g.identity.

    Authentication happens upstream; this only parses what it forwarded.
    Returns 401 when a required header is missing, 400 when it is not an id.
    Route handlers pass g.identity fields into services explicitly.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            try:
                identity = Identity(
                    user_id=_header_id(USER_HEADER),
                    customer_id=_header_id(CUSTOMER_HEADER),
                )
            except ValueError as exc:
                return jsonify({"error": f"{exc.args[0]} must be a positive integer"}), 400

            if customer and identity.customer_id is None:
                return jsonify({"error": f"{CUSTOMER_HEADER} header required"}), 401
            if user and identity.user_id is None:
                return jsonify({"error": f"{USER_HEADER} header required"}), 401

            g.identity = identity
            return f(*args, **kwargs)

        return decorated_function

    return decorator
