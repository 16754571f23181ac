from functools import wraps
from flask import current_app, g, jsonify, request
from models.user import User

def load_current_user():
    """Trust the user id forwarded by the gateway; no tokens are checked here."""
    header = current_app.config.get("IDENTITY_HEADER", "X-User-Id")
    raw = (request.headers.get(header) or "").strip()
    g.user = None
    if not raw.isdigit():
        return
    user = User.query.get(int(raw))
    if user and user.is_active:
        g.user = user

def login_required(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        if getattr(g, "user", None) is None:
            return jsonify(error="Authentication required"), 401
        return fn(*args, **kwargs)
    return wrapper
