from functools import wraps
from flask import g

from services.errors import Forbidden, Unauthorized

ROLE_PLAYER = "PLAYER"
ROLE_STAFF = "STAFF"
ROLE_ADMIN = "ADMIN"

DEFAULT_ROLES = (ROLE_PLAYER, ROLE_STAFF, ROLE_ADMIN)


def user_has_role(user, *role_names: str) -> bool:
    """ADMIN satisfies every role."""
    if user is None:
        return False
    names = {r.name for r in user.roles}
    return ROLE_ADMIN in names or bool(names.intersection(role_names))


def require_roles(*role_names: str):
    """
    Usage: @require_roles("STAFF")
    Raises Unauthorized / Forbidden; the app error handler renders them.
    """
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            user = getattr(g, "user", None)
            if user is None:
                raise Unauthorized()
            if not user_has_role(user, *role_names):
                raise Forbidden()
            return fn(*args, **kwargs)
        return wrapper
    return decorator
