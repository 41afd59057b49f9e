# Overview: Flask API routes for billing sales into the till and collecting tables.

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import CashdeskError
from ..extensions import db
from ..models import PaymentMethod
from ..services import sales_service
from ..services.sales_service import PaymentLine
from ..decorators import require_auth, require_permission
from ..validation import ValidationError, parse_amount, parse_enum, require_json
from . import error_response


sales_bp = Blueprint("sales", __name__, url_prefix="/api")


def _parse_payments(raw) -> list[PaymentLine]:
    if not isinstance(raw, list) or not raw:
        raise ValidationError("payments must be a non-empty list")

    payments = []
    for index, item in enumerate(raw):
        if not isinstance(item, dict):
            raise ValidationError(f"payments[{index}] must be an object")
        method = item.get("payment_method", item.get("method"))
        payments.append(PaymentLine(
            method=parse_enum(PaymentMethod, method, f"payments[{index}].payment_method"),
            amount=parse_amount(item.get("amount"), f"payments[{index}].amount"),
        ))
    return payments


@sales_bp.post("/sales/<int:sale_id>/bill")
@require_auth
@require_permission("OPERATE_TILL")
def bill_sale_route(sale_id: int):
    """
    Emit a ticket or invoice for a pending sale.

    Request body:
    {
        "document_type": "TICKET",     // or INVOICE_A / INVOICE_B / INVOICE_C
        "payments": [
            {"payment_method": "CASH", "amount": 1200},
            {"payment_method": "DEBIT_CARD", "amount": 800}
        ]
    }

    Each payment becomes a SALE movement on the default till's open shift.
    The sale's table stays blocking shift closure until collected.
    """
    try:
        data = require_json(request.get_json(silent=True))
        document_type = str(data.get("document_type") or "").upper()

        sale = sales_service.bill_sale(
            sale_id,
            document_type,
            _parse_payments(data.get("payments")),
            g.current_user.id,
        )

        movements = sales_service.sale_movements(sale.id)
        return jsonify({
            "message": f"Sale {sale.sale_number} billed",
            "sale": sale.to_dict(),
            "movements": [m.to_dict() for m in movements],
        }), 200

    except CashdeskError as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to bill sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.post("/tables/<int:table_id>/collect")
@require_auth
@require_permission("OPERATE_TILL")
def collect_table_route(table_id: int):
    """Confirm payment for a billed table and free it."""
    try:
        table = sales_service.confirm_collection(table_id)
        return jsonify({"message": "Payment collected", "table": table.to_dict()}), 200

    except CashdeskError as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to collect table payment")
        return jsonify({"error": "Internal server error"}), 500
