"""Blueprint registration and the JSON dashboard API."""
from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user, login_required
from flask_wtf.csrf import generate_csrf

from utils.complaint_queries import complaint_stats, dashboard_stats
from utils.decorators import permission_required
from utils.rewards import leaderboard, reward_snapshot
from .admin import admin_bp
from .auth import auth_bp
from .complaints import complaints_bp

main_bp = Blueprint("main", __name__)


@main_bp.route("/")
def index():
    return jsonify({"service": "civic-eye", "status": "ok"})


@main_bp.route("/api/csrf-token", methods=["GET"])
def csrf_token():
    return jsonify({"csrf_token": generate_csrf()})


@main_bp.route("/api/stats", methods=["GET"])
@permission_required("reports.view")
def stats():
    return jsonify(complaint_stats())


@main_bp.route("/api/dashboard-stats", methods=["GET"])
def public_dashboard_stats():
    return jsonify(dashboard_stats())


@main_bp.route("/api/leaderboard", methods=["GET"])
def leaderboard_feed():
    try:
        limit = int(request.args.get("limit", 50))
    except (TypeError, ValueError):
        limit = 50
    limit = max(1, min(limit, 100))
    rows = leaderboard(limit)
    current_app.logger.info("leaderboard_served", extra={"count": len(rows)})
    return jsonify({"leaderboard": [r.to_dict() for r in rows]})


@main_bp.route("/api/rewards/me", methods=["GET"])
@login_required
def my_rewards():
    return jsonify(reward_snapshot(current_user.id))


__all__ = ["main_bp", "auth_bp", "complaints_bp", "admin_bp"]
