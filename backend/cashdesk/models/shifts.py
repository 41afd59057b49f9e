from __future__ import annotations

import enum

from sqlalchemy import event
from sqlalchemy.orm import object_session

from ..extensions import db
from ..errors import LedgerImmutableError
from cashdesk.time_utils import to_utc_z


class ShiftState(str, enum.Enum):
    OPEN = "OPEN"
    CLOSED = "CLOSED"
    FORCED_CLOSED = "FORCED_CLOSED"


# OPEN is the only state with outgoing transitions.
SHIFT_TRANSITIONS = {
    ShiftState.OPEN: {ShiftState.CLOSED, ShiftState.FORCED_CLOSED},
    ShiftState.CLOSED: set(),
    ShiftState.FORCED_CLOSED: set(),
}


class MovementKind(str, enum.Enum):
    SALE = "SALE"
    FUND_INJECTION = "FUND_INJECTION"
    WITHDRAWAL = "WITHDRAWAL"
    EXPENSE = "EXPENSE"
    VENDOR_PAYMENT = "VENDOR_PAYMENT"
    ADJUSTMENT = "ADJUSTMENT"
    RECONCILIATION = "RECONCILIATION"
    TRANSFER = "TRANSFER"


# Kinds that add to the drawer; every other kind takes cash out.
INFLOW_KINDS = {MovementKind.SALE, MovementKind.FUND_INJECTION}

# Kinds a user may record directly. RECONCILIATION is written only by shift closure.
RECORDABLE_KINDS = set(MovementKind) - {MovementKind.RECONCILIATION}


class PaymentMethod(str, enum.Enum):
    CASH = "CASH"
    DEBIT_CARD = "DEBIT_CARD"
    CREDIT_CARD = "CREDIT_CARD"
    BANK_TRANSFER = "BANK_TRANSFER"
    QR_WALLET = "QR_WALLET"


def _money(value):
    return None if value is None else str(value)


class Shift(db.Model):
    """
    One cash-register working period ("turno") for one till.

    LIFECYCLE:
    - OPEN: drawer in use, movements may be recorded
    - CLOSED: counted and reconciled by the opener or a supervisor
    - FORCED_CLOSED: administrative close by a supervisor

    IMMUTABLE: Once closed, a shift is never reopened or deleted.
    At most one OPEN shift per till is enforced by a partial unique index.
    """
    __tablename__ = "shifts"
    __table_args__ = (
        db.Index(
            "uq_shifts_open_till",
            "till",
            unique=True,
            sqlite_where=db.text("state = 'OPEN'"),
            postgresql_where=db.text("state = 'OPEN'"),
        ),
        db.Index("ix_shifts_till_closed_at", "till", "closed_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(64), nullable=False)
    till = db.Column(db.String(32), nullable=False, index=True)

    # Scheduled time of day, "HH:MM"
    scheduled_start = db.Column(db.String(5), nullable=False)
    scheduled_end = db.Column(db.String(5), nullable=False)

    state = db.Column(
        db.Enum(ShiftState, native_enum=False, length=16, validate_strings=True),
        nullable=False,
        default=ShiftState.OPEN,
        index=True,
    )

    initial_fund = db.Column(db.Numeric(12, 2), nullable=False)

    # Set exactly once, at close
    final_fund = db.Column(db.Numeric(12, 2), nullable=True)
    counted_cash = db.Column(db.Numeric(12, 2), nullable=True)
    system_cash = db.Column(db.Numeric(12, 2), nullable=True)
    reconciliation_delta = db.Column(db.Numeric(12, 2), nullable=True)

    opened_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    opened_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    closed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    closed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    opening_notes = db.Column(db.Text, nullable=True)
    closing_notes = db.Column(db.Text, nullable=True)
    reconciliation_notes = db.Column(db.Text, nullable=True)

    previous_shift_id = db.Column(db.Integer, db.ForeignKey("shifts.id"), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    opened_by = db.relationship("User", foreign_keys=[opened_by_user_id])
    closed_by = db.relationship("User", foreign_keys=[closed_by_user_id])
    previous_shift = db.relationship("Shift", remote_side=[id], uselist=False)
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_open(self) -> bool:
        return self.state == ShiftState.OPEN

    def can_transition_to(self, target: ShiftState) -> bool:
        return target in SHIFT_TRANSITIONS[ShiftState(self.state)]

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "till": self.till,
            "scheduled_start": self.scheduled_start,
            "scheduled_end": self.scheduled_end,
            "state": ShiftState(self.state).value,
            "initial_fund": _money(self.initial_fund),
            "final_fund": _money(self.final_fund),
            "counted_cash": _money(self.counted_cash),
            "system_cash": _money(self.system_cash),
            "reconciliation_delta": _money(self.reconciliation_delta),
            "opened_by": self.opened_by.to_summary() if self.opened_by else None,
            "opened_at": to_utc_z(self.opened_at),
            "closed_by": self.closed_by.to_summary() if self.closed_by else None,
            "closed_at": to_utc_z(self.closed_at) if self.closed_at else None,
            "opening_notes": self.opening_notes,
            "closing_notes": self.closing_notes,
            "reconciliation_notes": self.reconciliation_notes,
            "previous_shift_id": self.previous_shift_id,
            "version_id": self.version_id,
        }


class TillMovement(db.Model):
    """
    Append-only cash-drawer ledger entry owned by one shift.

    Amounts are stored as positive magnitudes; direction comes from the kind.
    RECONCILIATION is the exception: it carries the signed close-time delta.

    IMMUTABLE: rows are never updated or deleted (see ledger_service guards).
    """
    __tablename__ = "till_movements"
    __table_args__ = (
        db.Index("ix_till_movements_shift_occurred", "shift_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shift_id = db.Column(db.Integer, db.ForeignKey("shifts.id"), nullable=False, index=True)

    kind = db.Column(
        db.Enum(MovementKind, native_enum=False, length=24, validate_strings=True),
        nullable=False,
        index=True,
    )
    concept = db.Column(db.String(255), nullable=False)
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    payment_method = db.Column(
        db.Enum(PaymentMethod, native_enum=False, length=24, validate_strings=True),
        nullable=False,
    )

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    notes = db.Column(db.Text, nullable=True)

    # Drawer cash at shift open; mirrors Shift.initial_fund
    is_opening_fund = db.Column(db.Boolean, nullable=False, default=False)

    # Approval tracking for high-value outflows
    requires_authorization = db.Column(db.Boolean, nullable=False, default=False)
    authorized_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    # Fiscal document fields when the movement documents a sale
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)
    document_type = db.Column(db.String(32), nullable=True)
    document_number = db.Column(db.String(32), nullable=True)
    authorization_code = db.Column(db.String(32), nullable=True)

    shift = db.relationship("Shift", backref=db.backref("movements", lazy=True, order_by="TillMovement.id"))
    user = db.relationship("User", foreign_keys=[user_id])
    authorized_by = db.relationship("User", foreign_keys=[authorized_by_user_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "shift_id": self.shift_id,
            "kind": MovementKind(self.kind).value,
            "concept": self.concept,
            "amount": _money(self.amount),
            "payment_method": PaymentMethod(self.payment_method).value,
            "user": self.user.to_summary() if self.user else None,
            "occurred_at": to_utc_z(self.occurred_at),
            "notes": self.notes,
            "is_opening_fund": self.is_opening_fund,
            "requires_authorization": self.requires_authorization,
            "authorized_by": self.authorized_by.to_summary() if self.authorized_by else None,
            "sale_id": self.sale_id,
            "document_type": self.document_type,
            "document_number": self.document_number,
            "authorization_code": self.authorization_code,
        }


@event.listens_for(TillMovement, "before_update")
def _reject_movement_update(mapper, connection, target):
    session = object_session(target)
    if session is not None and not session.is_modified(target, include_collections=False):
        return
    raise LedgerImmutableError(
        "Till movements are immutable; record a compensating ADJUSTMENT instead",
        movement_id=target.id,
    )


@event.listens_for(TillMovement, "before_delete")
def _reject_movement_delete(mapper, connection, target):
    raise LedgerImmutableError(
        "Till movements cannot be deleted",
        movement_id=target.id,
    )
