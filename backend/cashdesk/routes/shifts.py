# Overview: Flask API routes for shift (turno) operations; parses input and returns JSON responses.

# backend/cashdesk/routes/shifts.py
"""
Shift Management API Routes

DESIGN:
- Shift lifecycle: open -> close | force-close (immutable once closed)
- Till movements are append-only and need an open shift
- Closing is blocked while any table is billed but not collected

SECURITY:
- VIEW_TILL for read endpoints (every role)
- OPERATE_TILL to open/close shifts and record movements (cashier and up)
- SUPERVISE_TILL to force-close (supervisor, admin)
"""

from functools import wraps

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import CashdeskError
from ..extensions import db
from ..models import RECORDABLE_KINDS, MovementKind, PaymentMethod, ShiftState
from ..services import ledger_service, shift_service, table_gate_service
from ..services.concurrency import run_with_retry
from ..services.ledger_service import ShiftNotOpenError
from ..decorators import require_auth, require_permission
from ..validation import (
    ValidationError,
    parse_amount,
    parse_date,
    parse_enum,
    parse_optional_text,
    parse_positive_int,
    parse_time_of_day,
    require_json,
)
from . import error_response


shifts_bp = Blueprint("shifts", __name__, url_prefix="/api/shifts")


def _json_errors(action: str):
    """Map domain errors to their status codes; anything else is a logged 500."""
    def decorator(f):
        @wraps(f)
        def wrapper(*args, **kwargs):
            try:
                return f(*args, **kwargs)
            except CashdeskError as e:
                db.session.rollback()
                return error_response(e)
            except Exception:
                db.session.rollback()
                current_app.logger.exception("Failed to %s", action)
                return jsonify({"error": "Internal server error"}), 500
        return wrapper
    return decorator


def _field(data: dict, name: str, alias: str | None = None):
    """Read a snake_case field, accepting the camelCase alias the web client sends."""
    if name in data:
        return data.get(name)
    return data.get(alias) if alias else None


def _text(data: dict, name: str, alias: str | None = None) -> str | None:
    return parse_optional_text({name: _field(data, name, alias)}, name)


def _till(value: str | None) -> str:
    if value is not None and not isinstance(value, str):
        raise ValidationError("till must be a string")
    till =(value or current_app.config["DEFAULT_TILL"]).strip().upper()
    if not till or len(till) > 32:
        raise ValidationError("till must be 1-32 characters")
    return till


# =============================================================================
# READ
# =============================================================================

@shifts_bp.get("/active")
@shifts_bp.get("/active/<string:till>")
@require_auth
@require_permission("VIEW_TILL")
@_json_errors("load active shift")
def active_shift_route(till: str | None = None):
    """
    Current OPEN shift of a till with its movements and running totals.

    Returns 404 when the till has no open shift.
    """
    till = _till(till)
    shift = shift_service.find_open_shift(till)
    if not shift:
        return jsonify({"error": f"No active shift on till {till}", "shift": None}), 404

    return jsonify({"shift": shift_service.shift_snapshot(shift)}), 200


@shifts_bp.get("/<int:shift_id>")
@require_auth
@require_permission("VIEW_TILL")
@_json_errors("load shift")
def get_shift_route(shift_id: int):
    shift = shift_service.get_shift(shift_id)
    return jsonify({"shift": shift_service.shift_snapshot(shift)}), 200


@shifts_bp.get("/history")
@shifts_bp.get("/history/<string:till>")
@require_auth
@require_permission("VIEW_TILL")
@_json_errors("load shift history")
def shift_history_route(till: str | None = None):
    """
    Paginated shift history for a till.

    Query params:
    - page (default 1), limit (default 10, max 100)
    - date_from, date_to: YYYY-MM-DD, filter on opening day
    - state: OPEN, CLOSED or FORCED_CLOSED
    """
    args = request.args
    state = args.get("state")

    result = shift_service.list_history(
        _till(till),
        page=parse_positive_int(args.get("page"), "page", default=1),
        limit=parse_positive_int(args.get("limit"), "limit", default=10, maximum=100),
        date_from=parse_date(args.get("date_from") or args.get("dateFrom"), "date_from"),
        date_to=parse_date(args.get("date_to") or args.get("dateTo"), "date_to"),
        state=parse_enum(ShiftState, state, "state") if state else None,
    )
    return jsonify(result), 200


@shifts_bp.get("/pending-tables")
@require_auth
@require_permission("VIEW_TILL")
@_json_errors("load pending tables")
def pending_tables_route():
    """Tables currently blocking shift closure."""
    tables = table_gate_service.find_tables_pending_collection()
    return jsonify({
        "count": len(tables),
        "tables": table_gate_service.describe_tables(tables),
    }), 200


# =============================================================================
# LIFECYCLE
# =============================================================================

@shifts_bp.post("/open")
@require_auth
@require_permission("OPERATE_TILL")
@_json_errors("open shift")
def open_shift_route():
    """
    Open a new shift.

    Request body:
    {
        "name": "Morning",
        "till": "PRINCIPAL",          (optional)
        "scheduled_start": "08:00",
        "scheduled_end": "14:00",
        "initial_fund": 1000,         // ignored when a previous closed shift carries a final fund
        "opening_notes": "..."        (optional)
    }

    Returns 409 if the till already has an open shift or the same shift
    name was already opened today.
    """
    data = require_json(request.get_json(silent=True))

    name = parse_optional_text(data, "name", max_length=64)
    if not name:
        raise ValidationError("name required")

    shift = shift_service.open_shift(
        till=_till(data.get("till")),
        name=name,
        scheduled_start=parse_time_of_day(_field(data, "scheduled_start", "scheduledStart"), "scheduled_start"),
        scheduled_end=parse_time_of_day(_field(data, "scheduled_end", "scheduledEnd"), "scheduled_end"),
        initial_fund=parse_amount(_field(data, "initial_fund", "initialFund"), "initial_fund", allow_zero=True),
        user_id=g.current_user.id,
        notes=_text(data, "opening_notes", "openingNotes"),
    )

    return jsonify({
        "message": f"Shift {shift.name} opened",
        "shift": shift.to_dict(),
    }), 201


@shifts_bp.post("/<int:shift_id>/close")
@require_auth
@require_permission("OPERATE_TILL")
@_json_errors("close shift")
def close_shift_route(shift_id: int):
    """
    Close a shift and reconcile the drawer.

    Request body:
    {
        "counted_cash": 1500.00,
        "closing_notes": "...",          (optional)
        "reconciliation_notes": "..."    (optional)
    }

    409 with pending_tables when tables are billed but not collected,
    403 when the caller is neither the opener nor a supervisor.
    """
    data = require_json(request.get_json(silent=True))

    counted_cash = parse_amount(_field(data, "counted_cash", "countedCash"), "counted_cash", allow_zero=True)
    closing_notes = _text(data, "closing_notes", "closingNotes")
    reconciliation_notes = _text(data, "reconciliation_notes", "reconciliationNotes")

    # A concurrent close surfaces as ShiftAlreadyClosedError on retry
    result = run_with_retry(lambda: shift_service.close_shift(
        shift_id,
        counted_cash,
        g.current_user.id,
        closing_notes=closing_notes,
        reconciliation_notes=reconciliation_notes,
    ))

    return jsonify({"message": "Shift closed", **result.to_dict()}), 200


@shifts_bp.post("/<int:shift_id>/force-close")
@require_auth
@require_permission("SUPERVISE_TILL")
@_json_errors("force-close shift")
def force_close_shift_route(shift_id: int):
    """
    Administrative close (supervisor/admin).

    Request body:
    {
        "motive": "Cashier left without closing",
        "counted_cash": 820.00
    }

    Subject to the same pending-tables gate as a normal close.
    """
    data = require_json(request.get_json(silent=True))

    motive = parse_optional_text(data, "motive", max_length=255)
    if not motive:
        raise ValidationError("motive required to force a shift close")

    counted_cash = parse_amount(_field(data, "counted_cash", "countedCash"), "counted_cash", allow_zero=True)

    result = run_with_retry(lambda: shift_service.force_close_shift(
        shift_id, motive, counted_cash, g.current_user.id
    ))

    return jsonify({"message": "Shift force-closed", **result.to_dict()}), 200


# =============================================================================
# MOVEMENTS
# =============================================================================

@shifts_bp.post("/movement")
@require_auth
@require_permission("OPERATE_TILL")
@_json_errors("record till movement")
def record_movement_route():
    """
    Record a movement on the open shift of a till.

    Request body:
    {
        "kind": "WITHDRAWAL",
        "concept": "Safe drop",
        "amount": 2500,
        "payment_method": "CASH",
        "till": "PRINCIPAL",        (optional)
        "notes": "...",             (optional)
        "authorized_by": 2          (optional supervisor user id)
    }

    Withdrawals, vendor payments and adjustments above the authorization
    threshold return 403 unless a supervisor records or authorizes them.
    """
    data = require_json(request.get_json(silent=True))

    kind = parse_enum(MovementKind, data.get("kind"), "kind")
    if kind not in RECORDABLE_KINDS:
        raise ValidationError(f"{kind.value} movements are recorded by shift closure only")

    concept = parse_optional_text(data, "concept", max_length=255)
    if not concept:
        raise ValidationError("concept required")

    authorized_by = _field(data, "authorized_by", "authorizedBy")
    if authorized_by is not None and (isinstance(authorized_by, bool) or not isinstance(authorized_by, int)):
        raise ValidationError("authorized_by must be a user id")

    till = _till(data.get("till"))
    shift = shift_service.find_open_shift(till)
    if not shift:
        raise ShiftNotOpenError(f"No open shift on till {till}", till=till)

    movement = ledger_service.record_movement(
        shift.id,
        kind,
        concept,
        parse_amount(data.get("amount"), "amount"),
        parse_enum(PaymentMethod, _field(data, "payment_method", "paymentMethod"), "payment_method"),
        g.current_user.id,
        notes=parse_optional_text(data, "notes"),
        authorized_by_user_id=authorized_by,
    )

    return jsonify({"message": "Movement recorded", "movement": movement.to_dict()}), 201
