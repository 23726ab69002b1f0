from .health import health_bp
from .auth import auth_bp
from .facilities import facilities_bp
from .booking import booking_bp
from .admin import admin_bp
from .staff import staff_bp
