"""
Booking and facility change events.

Events are sent after the booking transaction has committed. Each receiver
runs on its own; a failing receiver is logged and rolled back so it can never
undo or block the booking that triggered it. The built-in receivers only
queue NotificationLog rows; delivery (push, email) happens elsewhere.
"""
import logging

from blinker import Namespace

from models import db
from models.notification_log import NotificationLog

logger = logging.getLogger(__name__)

_signals = Namespace()

booking_created = _signals.signal("booking-created")
booking_cancelled = _signals.signal("booking-cancelled")
booking_rescheduled = _signals.signal("booking-rescheduled")
facility_changed = _signals.signal("facility-changed")


def emit(signal, sender, **payload) -> int:
    """Call every receiver of `signal`, isolating failures. Returns failure count."""
    failures = 0
    for receiver in list(signal.receivers_for(sender)):
        try:
            receiver(sender, **payload)
        except Exception:
            failures += 1
            db.session.rollback()
            logger.exception("Receiver %r failed for %s", receiver, signal.name)
    return failures


def _queue_booking(kind, booking):
    db.session.add(NotificationLog(
        kind=kind,
        facility_id=booking.facility_id,
        booking_id=booking.id,
        court_id=booking.court_id,
        start_time=booking.start_time,
        end_time=booking.end_time,
    ))
    db.session.commit()
    logger.info("Queued %s for booking %s", kind, booking.id)


@booking_created.connect
def _on_booking_created(booking, **extra):
    _queue_booking("booking_created", booking)


@booking_cancelled.connect
def _on_booking_cancelled(booking, **extra):
    _queue_booking("booking_cancelled", booking)


@booking_rescheduled.connect
def _on_booking_rescheduled(booking, **extra):
    _queue_booking("booking_rescheduled", booking)


@facility_changed.connect
def _on_facility_changed(facility, kind=None, **extra):
    db.session.add(NotificationLog(kind=f"facility_{kind}", facility_id=facility.id))
    db.session.commit()
    logger.info("Queued facility_%s for facility %s", kind, facility.name)
