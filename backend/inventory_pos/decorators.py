# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

ACTOR_HEADER = "X-Actor"


def require_actor(f):
    """
    Require an actor identity on the request.

    The authentication layer in front of this service authenticates the
    caller and forwards the username in the X-Actor header. Sets:
    - g.actor_username: the username to attribute writes to

    Returns 401 if the header is missing or blank. Whether the username
    exists is decided by the service (ActorNotFound -> 404).
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        username = (request.headers.get(ACTOR_HEADER) or "").strip()
        if not username:
            return jsonify({"error": "Authentication required"}), 401

        g.actor_username = username
        return f(*args, **kwargs)

    return decorated_function
