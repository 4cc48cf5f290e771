from __future__ import annotations

import logging
from flask import Blueprint, jsonify

logger = logging.getLogger(__name__)

# Create the blueprint
api_bp = Blueprint("api", __name__, url_prefix="/api")


# Health check / ping endpoint
@api_bp.route("/ping", methods=["GET"])
def ping():
    """Unauthenticated liveness check"""
    return jsonify({"ok": True, "message": "pong"})


# Import API routes to register them on blueprint after blueprint creation
from .resume_analysis import *
