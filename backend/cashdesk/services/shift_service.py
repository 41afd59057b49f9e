"""
Shift ("turno") Lifecycle and Till Reconciliation Service

WHY: Cash accountability per till. A shift is the period during which one
drawer is in someone's custody; closing it counts the drawer and records
any difference against what the ledger says should be there.

DESIGN PRINCIPLES:
- One OPEN shift per till (partial unique index, not just this check)
- Closed shifts are immutable; OPEN -> CLOSED | FORCED_CLOSED only
- Drawer balance chains: a new shift starts with the last closed shift's final fund
- Every precondition is checked before the first write; one commit per operation
- Daily consolidation runs after the close commits and can never undo it
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from flask import current_app
from sqlalchemy import desc, func
from sqlalchemy.exc import IntegrityError

from ..errors import AuthorizationError, ConflictError, ShiftNotFoundError
from ..extensions import db
from ..models import Shift, ShiftState, TillMovement, User
from ..validation import to_money
from cashdesk.time_utils import business_date, day_bounds_utc, utcnow, to_utc_z
from . import consolidation_service, ledger_service, permission_service, table_gate_service
from .concurrency import lock_for_update


class ShiftAlreadyOpenError(ConflictError):
    pass


class DuplicateDailyShiftError(ConflictError):
    pass


class ShiftAlreadyClosedError(ConflictError):
    pass


class PendingTablesError(ConflictError):
    pass


class UnauthorizedCloseError(AuthorizationError):
    pass


@dataclass
class CloseResult:
    shift: Shift
    totals: ledger_service.LedgerTotals
    system_cash: Decimal
    counted_cash: Decimal
    delta: Decimal
    reconciliation: TillMovement | None
    consolidation: consolidation_service.ConsolidationOutcome | None = None

    def to_dict(self) -> dict:
        return {
            "shift": self.shift.to_dict(),
            "totals": {
                **self.totals.to_dict(),
                "system_cash": str(self.system_cash),
                "counted_cash": str(self.counted_cash),
                "reconciliation_delta": str(self.delta),
            },
            "reconciliation_movement": self.reconciliation.to_dict() if self.reconciliation else None,
            "consolidation": self.consolidation.to_dict() if self.consolidation else None,
        }


def _tolerance() -> Decimal:
    return Decimal(str(current_app.config["RECONCILIATION_TOLERANCE"]))


def _tz_name() -> str:
    return current_app.config["BUSINESS_TIMEZONE"]


def _shift_ref(shift: Shift) -> dict:
    return {
        "id": shift.id,
        "name": shift.name,
        "till": shift.till,
        "opened_by": shift.opened_by.to_summary() if shift.opened_by else None,
        "opened_at": to_utc_z(shift.opened_at),
    }


# =============================================================================
# QUERIES
# =============================================================================

def find_open_shift(till: str) -> Shift | None:
    """The till's current OPEN shift, if any."""
    return db.session.query(Shift).filter_by(till=till, state=ShiftState.OPEN).first()


def get_shift(shift_id: int) -> Shift:
    shift = db.session.query(Shift).filter_by(id=shift_id).first()
    if not shift:
        raise ShiftNotFoundError("Shift not found", shift_id=shift_id)
    return shift


def last_closed_shift(till: str) -> Shift | None:
    return (
        db.session.query(Shift)
        .filter_by(till=till, state=ShiftState.CLOSED)
        .order_by(desc(Shift.closed_at), desc(Shift.id))
        .first()
    )


def shift_snapshot(shift: Shift) -> dict:
    """Shift with its movements (newest first) and running totals."""
    totals = ledger_service.summarize(shift.id)
    data = shift.to_dict()
    data["movements"] = [m.to_dict() for m in ledger_service.list_movements(shift.id)]
    data["totals"] = {
        **totals.to_dict(),
        "system_cash": str(ledger_service.system_cash(shift, totals)),
    }
    return data


def list_history(
    till: str,
    *,
    page: int = 1,
    limit: int = 10,
    date_from: date | None = None,
    date_to: date | None = None,
    state: ShiftState | None = None,
) -> dict:
    """Shifts of a till, newest opening first, with movement counts and pagination."""
    query = db.session.query(Shift).filter(Shift.till == till)

    if date_from:
        start, _ = day_bounds_utc(date_from, _tz_name())
        query = query.filter(Shift.opened_at >= start)
    if date_to:
        _, end = day_bounds_utc(date_to, _tz_name())
        query = query.filter(Shift.opened_at < end)
    if state:
        query = query.filter(Shift.state == state)

    total = query.count()
    shifts = (
        query.order_by(desc(Shift.opened_at), desc(Shift.id))
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )

    counts = dict(
        db.session.query(TillMovement.shift_id, func.count(TillMovement.id))
        .filter(TillMovement.shift_id.in_([s.id for s in shifts] or [0]))
        .group_by(TillMovement.shift_id)
        .all()
    )

    rows = []
    for shift in shifts:
        row = shift.to_dict()
        row["movement_count"] = counts.get(shift.id, 0)
        rows.append(row)

    return {
        "shifts": rows,
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": math.ceil(total / limit) if limit else 0,
        },
    }


# =============================================================================
# OPEN
# =============================================================================

def open_shift(
    till: str,
    name: str,
    scheduled_start: str,
    scheduled_end: str,
    initial_fund,
    user_id: int,
    notes: str | None = None,
) -> Shift:
    """
    Open a new shift on a till.

    The effective initial fund is the final fund of the till's most recently
    closed shift when there is one; the supplied initial_fund only seeds a
    till with no closed history.

    Raises:
        ShiftAlreadyOpenError: the till already has an OPEN shift
        DuplicateDailyShiftError: a shift with this name was opened today on this till
    """
    existing_open = find_open_shift(till)
    if existing_open:
        raise ShiftAlreadyOpenError(
            f"Till {till} already has an open shift",
            open_shift=_shift_ref(existing_open),
        )

    now = utcnow()
    day_start, day_end = day_bounds_utc(business_date(now, _tz_name()), _tz_name())
    same_day = db.session.query(Shift).filter(
        Shift.till == till,
        Shift.name == name,
        Shift.opened_at >= day_start,
        Shift.opened_at < day_end,
    ).first()
    if same_day:
        raise DuplicateDailyShiftError(
            f'Shift "{name}" was already opened today on till {till}',
            existing_shift=_shift_ref(same_day),
        )

    previous = last_closed_shift(till)
    effective_fund = to_money(initial_fund)
    if previous is not None and previous.final_fund is not None:
        effective_fund = to_money(previous.final_fund)

    shift = Shift(
        name=name,
        till=till,
        scheduled_start=scheduled_start,
        scheduled_end=scheduled_end,
        initial_fund=effective_fund,
        state=ShiftState.OPEN,
        opened_by_user_id=user_id,
        opened_at=now,
        opening_notes=notes,
        previous_shift_id=previous.id if previous else None,
    )

    try:
        db.session.add(shift)
        db.session.flush()
        ledger_service.append_opening_fund(shift, user_id)
        db.session.commit()
    except IntegrityError:
        # Lost the race against a concurrent open on the same till
        db.session.rollback()
        winner = find_open_shift(till)
        raise ShiftAlreadyOpenError(
            f"Till {till} already has an open shift",
            open_shift=_shift_ref(winner) if winner else None,
        )
    except Exception:
        db.session.rollback()
        raise

    return shift


# =============================================================================
# CLOSE
# =============================================================================

def _require_no_pending_tables(*, forced: bool = False) -> None:
    pending = table_gate_service.find_tables_pending_collection()
    if not pending:
        return
    action = "force-close" if forced else "close"
    payload = {
        "pending_tables": table_gate_service.describe_tables(pending),
        "detail": f"Pending tables: {table_gate_service.summary_line(pending)}",
    }
    if forced:
        payload["advice"] = "Collect payment for these tables before forcing the close"
    raise PendingTablesError(
        f"Cannot {action} the shift: {len(pending)} table(s) have a ticket or invoice "
        f"emitted but not yet collected",
        **payload,
    )


def _load_open_shift_for_update(shift_id: int) -> Shift:
    shift = lock_for_update(db.session.query(Shift).filter_by(id=shift_id)).first()
    if not shift:
        raise ShiftNotFoundError("Shift not found", shift_id=shift_id)
    if not shift.can_transition_to(ShiftState.CLOSED):
        raise ShiftAlreadyClosedError(
            "Shift is already closed",
            shift_id=shift.id,
            state=ShiftState(shift.state).value,
        )
    return shift


def _reconcile(shift: Shift, counted_cash: Decimal) -> tuple[ledger_service.LedgerTotals, Decimal, Decimal]:
    totals = ledger_service.summarize(shift.id)
    expected = ledger_service.system_cash(shift, totals)
    return totals, expected, counted_cash - expected


def _stamp_close(
    shift: Shift,
    *,
    state: ShiftState,
    user_id: int,
    counted_cash: Decimal,
    expected: Decimal,
    delta: Decimal,
    closing_notes: str | None,
    reconciliation_notes: str | None,
) -> None:
    shift.state = state
    shift.closed_at = utcnow()
    shift.closed_by_user_id = user_id
    shift.final_fund = counted_cash
    shift.counted_cash = counted_cash
    shift.system_cash = expected
    shift.reconciliation_delta = delta
    shift.closing_notes = closing_notes
    shift.reconciliation_notes = reconciliation_notes


def close_shift(
    shift_id: int,
    counted_cash,
    user_id: int,
    closing_notes: str | None = None,
    reconciliation_notes: str | None = None,
) -> CloseResult:
    """
    Close an OPEN shift and reconcile the drawer.

    system_cash = initial_fund + ledger cash total
    delta       = counted_cash - system_cash

    A RECONCILIATION movement carrying the signed delta is written when
    |delta| exceeds the tolerance. After the close commits, the daily
    consolidation trigger is evaluated; its failure never affects the close.

    Raises (checked in this order, before any write):
        PendingTablesError: any table billed but not collected
        ShiftNotFoundError / ShiftAlreadyClosedError
        UnauthorizedCloseError: closer is neither the opener nor elevated
    """
    counted_cash = to_money(counted_cash)

    _require_no_pending_tables()
    shift = _load_open_shift_for_update(shift_id)

    if shift.opened_by_user_id != user_id and not permission_service.is_elevated(user_id):
        raise UnauthorizedCloseError(
            "Only the user who opened the shift or a supervisor can close it",
            opened_by=shift.opened_by.to_summary() if shift.opened_by else None,
        )

    totals, expected, delta = _reconcile(shift, counted_cash)
    reconciliation = None

    try:
        _stamp_close(
            shift,
            state=ShiftState.CLOSED,
            user_id=user_id,
            counted_cash=counted_cash,
            expected=expected,
            delta=delta,
            closing_notes=closing_notes,
            reconciliation_notes=reconciliation_notes,
        )
        if abs(delta) > _tolerance():
            label = "Surplus" if delta > 0 else "Shortfall"
            reconciliation = ledger_service.append_reconciliation(
                shift,
                delta,
                user_id,
                concept=f"Cash count difference: {label} of ${abs(delta):.2f}",
                notes=reconciliation_notes,
            )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    result = CloseResult(
        shift=shift,
        totals=totals,
        system_cash=expected,
        counted_cash=counted_cash,
        delta=delta,
        reconciliation=reconciliation,
    )
    result.consolidation = consolidation_service.evaluate_after_close(
        shift.till, business_date(shift.closed_at, _tz_name())
    )
    return result


def force_close_shift(
    shift_id: int,
    motive: str,
    counted_cash,
    user_id: int,
) -> CloseResult:
    """
    Administrative close by a supervisor.

    Same gate and arithmetic as close_shift, but the shift ends FORCED_CLOSED
    and a RECONCILIATION movement is always written as the audit record of
    the override, even for a zero delta. FORCED_CLOSED shifts do not count
    toward the daily consolidation trigger, so it is not evaluated here.
    """
    counted_cash = to_money(counted_cash)

    supervisor = db.session.query(User).filter_by(id=user_id).first()
    if not supervisor or not permission_service.is_elevated(user_id):
        raise UnauthorizedCloseError(
            "Forcing a shift close requires a supervisor or admin",
            required_role="supervisor",
        )

    _require_no_pending_tables(forced=True)
    shift = _load_open_shift_for_update(shift_id)

    totals, expected, delta = _reconcile(shift, counted_cash)

    try:
        _stamp_close(
            shift,
            state=ShiftState.FORCED_CLOSED,
            user_id=user_id,
            counted_cash=counted_cash,
            expected=expected,
            delta=delta,
            closing_notes=f"FORCED CLOSE: {motive}",
            reconciliation_notes=f"Administrative close by {supervisor.full_name}",
        )
        reconciliation = ledger_service.append_reconciliation(
            shift,
            delta,
            user_id,
            concept=f"FORCED CLOSE - Motive: {motive}",
            notes=f"Administrative close by {supervisor.full_name} with difference of ${delta:.2f}",
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    return CloseResult(
        shift=shift,
        totals=totals,
        system_cash=expected,
        counted_cash=counted_cash,
        delta=delta,
        reconciliation=reconciliation,
    )
