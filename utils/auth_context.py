from functools import wraps
from flask import current_app, g, jsonify, request

def load_current_user():
    # Authentication happens upstream; the gateway forwards the caller id
    header = current_app.config.get("AUTH_USER_HEADER", "X-User-Id")
    user_id = (request.headers.get(header) or "").strip()
    g.user_id = user_id or None

def login_required(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        if getattr(g, "user_id", None) is None:
            return jsonify(error="Authentication required"), 401
        return fn(*args, **kwargs)
    return wrapper
