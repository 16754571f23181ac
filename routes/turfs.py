from flask import Blueprint, request, jsonify, g

from routes.serializers import turf_to_dict
from security.rbac import require_roles
from services import turfs as turf_store

turf_bp = Blueprint("turf", __name__, url_prefix="/turfs")


# ---------- PUBLIC: browse ----------
@turf_bp.get("")
def list_turfs():
    rows, pagination = turf_store.list_turfs(
        city=request.args.get("city"),
        min_price=request.args.get("minPrice"),
        max_price=request.args.get("maxPrice"),
        page=request.args.get("page", 1),
        limit=request.args.get("limit", 10),
    )
    return jsonify(turfs=[turf_to_dict(t) for t in rows], pagination=pagination), 200


@turf_bp.get("/<int:turf_id>")
def get_turf(turf_id: int):
    return jsonify(turf_to_dict(turf_store.get_turf(turf_id))), 200


# ---------- ADMIN: catalogue ----------
@turf_bp.post("")
@require_roles("ADMIN")
def create_turf():
    turf = turf_store.create_turf(request.get_json(silent=True) or {}, g.user.id)
    return jsonify(turf_to_dict(turf)), 201


@turf_bp.patch("/<int:turf_id>")
@require_roles("ADMIN")
def update_turf(turf_id: int):
    turf = turf_store.update_turf(turf_id, request.get_json(silent=True) or {}, g.user.id)
    return jsonify(turf_to_dict(turf)), 200


@turf_bp.delete("/<int:turf_id>")
@require_roles("ADMIN")
def deactivate_turf(turf_id: int):
    turf = turf_store.deactivate_turf(turf_id, g.user.id)
    return jsonify(message="Turf deactivated successfully", turf=turf_to_dict(turf)), 200
