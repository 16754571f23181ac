from flask import Blueprint, request, jsonify, g

from routes.serializers import slot_to_dict
from security.rbac import is_admin, require_roles
from services import reservations, slots as slot_store
from utils.auth_context import login_required

slot_bp = Blueprint("slot", __name__, url_prefix="/slots")


def _view(slot):
    user = getattr(g, "user", None)
    return slot_to_dict(slot, viewer_id=user.id if user else None, admin=is_admin())


# ---------- PUBLIC: view slots (expired holds are released on read) ----------
@slot_bp.get("/turf/<int:turf_id>")
def list_slots(turf_id: int):
    date_str = request.args.get("date")
    if not date_str:
        return jsonify(error="Date is required"), 400

    rows = slot_store.fetch_reconciled_slots(turf_id, date_str)
    return jsonify(slots=[_view(s) for s in rows]), 200


@slot_bp.get("/<int:slot_id>")
def get_slot(slot_id: int):
    slot = slot_store.fetch_reconciled_slot(slot_id)
    return jsonify(slot=_view(slot)), 200


# ---------- PLAYERS: hold / release ----------
@slot_bp.post("/lock")
@login_required
def lock_slot():
    data = request.get_json(silent=True) or {}
    slot, expires_in = reservations.lock_slot(data.get("slot_id"), g.user.id)
    return jsonify(message="Slot locked successfully", slot=_view(slot), expires_in=expires_in), 200


@slot_bp.post("/unlock")
@login_required
def unlock_slot():
    data = request.get_json(silent=True) or {}
    slot = reservations.unlock_slot(data.get("slot_id"), g.user.id)
    return jsonify(message="Slot unlocked successfully", slot=_view(slot)), 200


# ---------- ADMIN: inventory ----------
@slot_bp.post("/generate")
@require_roles("ADMIN")
def generate_slots():
    data = request.get_json(silent=True) or {}
    if not data.get("turf_id") or not data.get("start_date") or not data.get("end_date"):
        return jsonify(error="turf_id, start_date, end_date are required"), 400

    count = slot_store.generate_slots(
        data.get("turf_id"),
        data.get("start_date"),
        data.get("end_date"),
        data.get("slot_duration"),
        user_id=g.user.id,
    )
    return jsonify(message=f"{count} slots generated successfully", count=count), 201


@slot_bp.post("")
@require_roles("ADMIN")
def create_slot():
    data = request.get_json(silent=True) or {}
    required = ("turf_id", "date", "start_time", "end_time", "price")
    if any(data.get(k) in (None, "") for k in required):
        return jsonify(error="turf_id, date, start_time, end_time, price are required"), 400

    slot = slot_store.create_slot(
        data["turf_id"], data["date"], data["start_time"], data["end_time"], data["price"],
        user_id=g.user.id,
    )
    return jsonify(message="Slot created successfully", slot=_view(slot)), 201


@slot_bp.delete("/<int:slot_id>")
@require_roles("ADMIN")
def delete_slot(slot_id: int):
    slot_store.delete_slot(slot_id, user_id=g.user.id)
    return jsonify(message="Slot deleted successfully"), 200
