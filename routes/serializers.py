def _iso(value):
    return value.isoformat() if value else None


def slot_to_dict(s, viewer_id=None, admin=False):
    """Public slot view. Holder ids are only shown to admins."""
    out = {
        "id": s.id,
        "turf_id": s.turf_id,
        "date": _iso(s.date),
        "start_time": s.start_time,
        "end_time": s.end_time,
        "price": s.price,
        "status": s.status,
        "locked_at": _iso(s.locked_at),
        "locked_by_me": viewer_id is not None and s.locked_by == viewer_id,
        "booked_by_me": viewer_id is not None and s.booked_by == viewer_id,
    }
    if admin:
        out["locked_by"] = s.locked_by
        out["booked_by"] = s.booked_by
        out["booking_id"] = s.booking_id
    return out


def payment_to_dict(p):
    return {
        "id": p.id,
        "booking_id": p.booking_id,
        "user_id": p.user_id,
        "amount": p.amount,
        "currency": p.currency,
        "method": p.method,
        "transaction_ref": p.transaction_ref,
        "upi_id": p.upi_id,
        "evidence_ref": p.evidence_ref,
        "status": p.status,
        "verified_by": p.verified_by,
        "verified_at": _iso(p.verified_at),
        "failure_reason": p.failure_reason,
        "refunded_at": _iso(p.refunded_at),
        "refund_reason": p.refund_reason,
        "notes": p.notes,
        "created_at": _iso(p.created_at),
    }


def booking_to_dict(b, include_slots=True):
    out = {
        "id": b.id,
        "booking_code": b.booking_code,
        "user_id": b.user_id,
        "turf_id": b.turf_id,
        "date": _iso(b.date),
        "start_time": b.start_time,
        "end_time": b.end_time,
        "total_amount": b.total_amount,
        "status": b.status,
        "payment_id": b.payment.id if b.payment else None,
        "payment_status": b.payment_status,
        "customer_details": {
            "name": b.customer_name,
            "email": b.customer_email,
            "phone": b.customer_phone,
        },
        "number_of_players": b.number_of_players,
        "special_requests": b.special_requests,
        "is_offline": b.is_offline,
        "cancellation_reason": b.cancellation_reason,
        "cancelled_at": _iso(b.cancelled_at),
        "invoice_url": b.invoice_url,
        "created_at": _iso(b.created_at),
    }
    if include_slots:
        out["slot_ids"] = b.slot_ids
    return out


def turf_to_dict(t):
    return {
        "id": t.id,
        "name": t.name,
        "location": t.location,
        "description": t.description,
        "price_per_hour": t.price_per_hour,
        "operating_hours": {"open": t.open_time, "close": t.close_time},
        "is_active": t.is_active,
        "created_at": _iso(t.created_at),
    }
