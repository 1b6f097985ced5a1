from flask import Blueprint, current_app, jsonify

bp = Blueprint("pages", __name__)


@bp.get("/")
def index():
    current_app.logger.debug("GET / called")
    return jsonify({"status": "ok", "message": "rotate service running"})
