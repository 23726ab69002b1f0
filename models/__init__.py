from .db import db
from .user import User, Role, user_roles
from .audit_log import AuditLog
from .session import Session
from .facility import Facility
from .court import Court
from .booking import Booking, BookingStatus, ACTIVE_STATUSES
from .equipment import Equipment, EquipmentRequest, EquipmentRequestItem
from .notification_log import NotificationLog
