# Overview: Flask API routes for cashdesk configuration (daily report recipients).

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import CashdeskError
from ..extensions import db
from ..services import recipients_service
from ..decorators import require_auth, require_permission
from ..validation import require_json
from . import error_response


config_bp = Blueprint("config", __name__, url_prefix="/api/config")


@config_bp.get("/report-recipients")
@require_auth
@require_permission("VIEW_TILL")
def get_report_recipients_route():
    return jsonify({
        "recipients": recipients_service.get_recipients(),
        "max_recipients": recipients_service.max_recipients(),
    }), 200


@config_bp.post("/report-recipients")
@require_auth
def set_report_recipients_route():
    """
    Replace the daily report recipient list.

    Request body:
    {
        "emails": ["owner@example.com", "accounting@example.com"]
    }

    Supervisor/admin only. At most MAX_REPORT_RECIPIENTS addresses; an
    empty list turns report delivery off.
    """
    try:
        data = require_json(request.get_json(silent=True))
        emails = data.get("emails", data.get("recipients"))

        recipients = recipients_service.set_recipients(emails, g.current_user.id)

        return jsonify({
            "message": "Report recipients updated",
            "recipients": recipients,
        }), 200

    except CashdeskError as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to update report recipients")
        return jsonify({"error": "Internal server error"}), 500
