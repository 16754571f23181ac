from flask import Blueprint, request, jsonify, g

from routes.serializers import booking_to_dict
from security.rbac import is_admin, require_roles
from services import queries, reservations
from utils.auth_context import login_required

booking_bp = Blueprint("booking", __name__, url_prefix="/bookings")


# ---------- PLAYERS: book locked slots ----------
@booking_bp.post("")
@login_required
def create_booking():
    data = request.get_json(silent=True) or {}
    booking = reservations.create_booking(
        data.get("slot_ids"),
        g.user.id,
        customer_details=data.get("customer_details"),
        number_of_players=data.get("number_of_players"),
        special_requests=data.get("special_requests"),
    )
    return jsonify(message="Booking created successfully", booking=booking_to_dict(booking)), 201


@booking_bp.get("")
@login_required
def my_bookings():
    rows, pagination = queries.list_user_bookings(
        g.user.id,
        status=request.args.get("status"),
        page=request.args.get("page", 1),
        limit=request.args.get("limit", 10),
    )
    return jsonify(bookings=[booking_to_dict(b) for b in rows], pagination=pagination), 200


@booking_bp.get("/<int:booking_id>")
@login_required
def get_booking(booking_id: int):
    booking = queries.get_booking(booking_id, g.user.id, is_admin=is_admin())
    return jsonify(booking=booking_to_dict(booking)), 200


@booking_bp.post("/<int:booking_id>/cancel")
@login_required
def cancel_booking(booking_id: int):
    data = request.get_json(silent=True) or {}
    booking = reservations.cancel_booking(booking_id, g.user.id, reason=data.get("reason"))
    return jsonify(message="Booking cancelled successfully", booking=booking_to_dict(booking)), 200


@booking_bp.post("/<int:booking_id>/invoice")
@login_required
def attach_invoice(booking_id: int):
    data = request.get_json(silent=True) or {}
    booking = reservations.attach_invoice(booking_id, data.get("invoice_url"), g.user.id, as_admin=is_admin())
    return jsonify(message="Invoice attached", booking=booking_to_dict(booking)), 200


# ---------- ADMIN ----------
@booking_bp.post("/offline")
@require_roles("ADMIN")
def create_offline_booking():
    data = request.get_json(silent=True) or {}
    booking = reservations.create_offline_booking(
        data.get("slot_id"),
        data.get("customer_details"),
        g.user.id,
        amount_paid=data.get("amount_paid"),
        number_of_players=data.get("number_of_players"),
        special_requests=data.get("special_requests"),
    )
    return jsonify(message="Offline booking created successfully", booking=booking_to_dict(booking)), 201


@booking_bp.get("/admin/all")
@require_roles("ADMIN")
def list_all_bookings():
    rows, pagination = queries.list_all_bookings(
        status=request.args.get("status"),
        payment_status=request.args.get("payment_status"),
        start_date=request.args.get("start_date"),
        end_date=request.args.get("end_date"),
        page=request.args.get("page", 1),
        limit=request.args.get("limit", 20),
    )
    return jsonify(bookings=[booking_to_dict(b) for b in rows], pagination=pagination), 200


@booking_bp.get("/admin/stats")
@require_roles("ADMIN")
def booking_stats():
    return jsonify(queries.booking_stats()), 200


@booking_bp.post("/<int:booking_id>/admin_cancel")
@require_roles("ADMIN")
def admin_cancel_booking(booking_id: int):
    data = request.get_json(silent=True) or {}
    booking = reservations.cancel_booking(booking_id, g.user.id, reason=data.get("reason"), as_admin=True)
    return jsonify(message="Cancelled by admin", booking=booking_to_dict(booking)), 200


@booking_bp.post("/<int:booking_id>/complete")
@require_roles("ADMIN")
def complete_booking(booking_id: int):
    booking = reservations.complete_booking(booking_id, g.user.id)
    return jsonify(message="Booking completed", booking=booking_to_dict(booking)), 200
