from flask import Blueprint, request, jsonify, g

from routes.serializers import payment_to_dict
from security.rbac import is_admin, require_roles
from services import payments, queries
from utils.auth_context import login_required

payments_bp = Blueprint("payments", __name__, url_prefix="/payments")


@payments_bp.post("/submit")
@login_required
def submit_payment():
    data = request.get_json(silent=True) or {}
    if not data.get("booking_id") or not data.get("transaction_ref"):
        return jsonify(error="Please provide booking ID and UPI transaction ID"), 400

    payment = payments.submit_payment(
        data.get("booking_id"),
        g.user.id,
        data.get("transaction_ref"),
        evidence_ref=data.get("evidence_ref"),
        amount=data.get("amount"),
        upi_id=data.get("upi_id"),
        method=data.get("method") or "UPI",
        as_admin=is_admin(),
    )
    return jsonify(
        message="Transaction ID submitted successfully. Payment verification pending.",
        payment=payment_to_dict(payment),
    ), 200


@payments_bp.get("/me")
@login_required
def my_payments():
    rows = queries.list_user_payments(g.user.id)
    return jsonify(count=len(rows), payments=[payment_to_dict(p) for p in rows]), 200


@payments_bp.get("/pending")
@require_roles("ADMIN")
def pending_payments():
    rows = queries.list_pending_payments()
    return jsonify(count=len(rows), payments=[payment_to_dict(p) for p in rows]), 200


@payments_bp.get("/<int:payment_id>")
@login_required
def get_payment(payment_id: int):
    payment = queries.get_payment(payment_id, g.user.id, is_admin=is_admin())
    return jsonify(payment=payment_to_dict(payment)), 200


@payments_bp.post("/<int:payment_id>/verify")
@require_roles("ADMIN")
def verify_payment(payment_id: int):
    data = request.get_json(silent=True) or {}
    payment = payments.verify_payment(payment_id, data.get("status"), g.user.id, notes=data.get("notes"))
    return jsonify(message=f"Payment {payment.status} successfully", payment=payment_to_dict(payment)), 200


@payments_bp.post("/<int:payment_id>/refund")
@require_roles("ADMIN")
def refund_payment(payment_id: int):
    data = request.get_json(silent=True) or {}
    payment = payments.refund_payment(payment_id, g.user.id, reason=data.get("reason"))
    return jsonify(message="Payment refunded", payment=payment_to_dict(payment)), 200
