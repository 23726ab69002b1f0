from models import db
from models.court import Court
from models.equipment import Equipment
from models.facility import Facility
from models.user import Role
from security.rbac import DEFAULT_ROLES

DEMO_FACILITIES = [
    # name, sport_type, indoor, open, close, courts, equipment
    ("Badminton Hall", "badminton", True, "08:00", "22:00", ["Court 1", "Court 2", "Court 3"],
     [("Badminton Racket", 10), ("Shuttlecock Tube", 20)]),
    ("Futsal Arena", "futsal", True, "09:00", "23:00", ["Pitch A", "Pitch B"],
     [("Futsal Ball", 6), ("Bibs Set", 4)]),
    ("Tennis Centre", "tennis", False, None, None, ["Court 1", "Court 2"],
     [("Tennis Racket", 8)]),
]


def seed_roles():
    existing = {r.name for r in Role.query.all()}
    for name in DEFAULT_ROLES:
        if name not in existing:
            db.session.add(Role(name=name))
    db.session.commit()


def seed_demo_facilities() -> int:
    """Insert the demo facilities that are missing. Returns how many were added."""
    added = 0
    for name, sport, indoor, open_time, close_time, courts, equipment in DEMO_FACILITIES:
        if Facility.query.filter_by(name=name).first():
            continue
        facility = Facility(
            name=name, sport_type=sport, is_indoor=indoor,
            open_time=open_time, close_time=close_time,
        )
        facility.courts = [Court(name=c) for c in courts]
        facility.equipment = [
            Equipment(name=e, qty_total=qty, qty_available=qty) for e, qty in equipment
        ]
        db.session.add(facility)
        added += 1
    db.session.commit()
    return added
