from functools import wraps
from flask import g

from security.session import get_session_from_request
from services.errors import Unauthorized


def load_current_user():
    sess = get_session_from_request()
    g.session = sess
    g.user = sess.user if sess else None


def current_user_id():
    """The resolved user id for service calls; None when not logged in."""
    user = getattr(g, "user", None)
    return user.id if user is not None else None


def login_required(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        if getattr(g, "user", None) is None:
            raise Unauthorized()
        return fn(*args, **kwargs)
    return wrapper
