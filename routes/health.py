from flask import Blueprint, jsonify

from utils.clock import now

health_bp = Blueprint("health", __name__)


@health_bp.get("/health")
def health():
    return jsonify(status="ok", service="turfslot", timestamp=now().isoformat()), 200
