from utils.clock import format_hhmm, isoformat_utc, local_date


def facility_json(f, with_children=False):
    out = {
        "id": f.id,
        "name": f.name,
        "sport_type": f.sport_type,
        "is_indoor": f.is_indoor,
        "location": f.location,
        "description": f.description,
        "open_time": f.open_time,
        "close_time": f.close_time,
        "is_active": f.is_active,
    }
    if with_children:
        out["courts"] = [court_json(c) for c in f.courts if c.is_active]
        out["equipment"] = [equipment_json(e) for e in f.equipment]
    return out


def court_json(c):
    return {"id": c.id, "facility_id": c.facility_id, "name": c.name, "is_active": c.is_active}


def equipment_json(e):
    return {
        "id": e.id,
        "facility_id": e.facility_id,
        "name": e.name,
        "qty_total": e.qty_total,
        "qty_available": e.qty_available,
    }


def booking_json(b):
    return {
        "id": b.id,
        "user_id": b.user_id,
        "facility_id": b.facility_id,
        "court_id": b.court_id,
        "court_name": b.court.name if b.court else None,
        "start": isoformat_utc(b.start_time),
        "end": isoformat_utc(b.end_time),
        "local_date": local_date(b.start_time).isoformat(),
        "local_start": format_hhmm(b.start_time),
        "local_end": format_hhmm(b.end_time),
        "status": b.status,
        "created_at": isoformat_utc(b.created_at),
        "cancelled_at": isoformat_utc(b.cancelled_at),
    }


def equipment_request_json(r):
    return {
        "id": r.id,
        "booking_id": r.booking_id,
        "status": r.status,
        "note": r.note,
        "decided_by": r.decided_by,
        "decided_at": isoformat_utc(r.decided_at),
        "returned_at": isoformat_utc(r.returned_at),
        "items": [
            {
                "id": i.id,
                "equipment_id": i.equipment_id,
                "equipment_name": i.equipment.name if i.equipment else None,
                "qty": i.qty,
                "qty_returned": i.qty_returned,
                "condition": i.condition,
                "issued_at": isoformat_utc(i.issued_at),
            }
            for i in r.items
        ],
    }
