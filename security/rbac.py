"""Role checks for the user forwarded by the gateway."""
from functools import wraps
from flask import g, jsonify

USER = "USER"
ADMIN = "ADMIN"
ROLES = (USER, ADMIN)


def current_roles() -> set:
    user = getattr(g, "user", None)
    return {r.name for r in user.roles} if user else set()


def has_role(role_name: str) -> bool:
    return role_name in current_roles()


def is_admin() -> bool:
    return has_role(ADMIN)


def require_roles(*role_names: str):
    """
    Usage: @require_roles("ADMIN")
    """
    unknown = set(role_names) - set(ROLES)
    if unknown:
        raise ValueError(f"Unknown role(s): {', '.join(sorted(unknown))}")

    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            if getattr(g, "user", None) is None:
                return jsonify(error="Authentication required"), 401

            if not current_roles().intersection(role_names):
                return jsonify(error=f"{' or '.join(role_names).title()} access required", kind="forbidden"), 403

            return fn(*args, **kwargs)
        return wrapper
    return decorator
