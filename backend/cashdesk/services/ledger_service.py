# Overview: Service-layer operations for the till ledger; encapsulates business logic and database work.

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable

from ..errors import ConflictError, ShiftNotFoundError, ValidationError
from ..extensions import db
from ..models import INFLOW_KINDS, MovementKind, PaymentMethod, Shift, ShiftState, TillMovement
from ..validation import to_money
from cashdesk.time_utils import utcnow
from . import movement_policy
from .concurrency import lock_for_update

"""
Till Ledger Invariants (authoritative)

- Append-only: movements are never updated or deleted; corrections are new
  ADJUSTMENT / RECONCILIATION rows.
- Movements are only written while the owning shift is OPEN.
- Amounts are positive magnitudes; direction comes from the kind. Only
  RECONCILIATION carries a signed amount (the close-time delta).
- summarize() is a pure fold over stored rows, so it is replayable.
"""

ZERO = Decimal("0.00")

# Totals keys reported per kind. RECONCILIATION folds into ADJUSTMENT.
KIND_TOTAL_KEYS = {
    MovementKind.SALE: "SALE",
    MovementKind.FUND_INJECTION: "FUND_INJECTION",
    MovementKind.WITHDRAWAL: "WITHDRAWAL",
    MovementKind.EXPENSE: "EXPENSE",
    MovementKind.VENDOR_PAYMENT: "VENDOR_PAYMENT",
    MovementKind.ADJUSTMENT: "ADJUSTMENT",
    MovementKind.RECONCILIATION: "ADJUSTMENT",
    MovementKind.TRANSFER: "TRANSFER",
}

CARD_METHODS = {PaymentMethod.DEBIT_CARD, PaymentMethod.CREDIT_CARD}
TRANSFER_METHODS = {PaymentMethod.BANK_TRANSFER, PaymentMethod.QR_WALLET}


class ShiftNotOpenError(ConflictError):
    pass


class InvalidAmountError(ValidationError):
    pass


@dataclass
class LedgerTotals:
    by_kind: dict[str, Decimal] = field(
        default_factory=lambda: {key: ZERO for key in dict.fromkeys(KIND_TOTAL_KEYS.values())}
    )
    by_payment_method: dict[str, Decimal] = field(
        default_factory=lambda: {m.value: ZERO for m in PaymentMethod}
    )
    cash_total: Decimal = ZERO
    card_total: Decimal = ZERO
    transfer_total: Decimal = ZERO
    movement_count: int = 0

    def to_dict(self) -> dict:
        return {
            "by_kind": {k: str(v) for k, v in self.by_kind.items()},
            "by_payment_method": {k: str(v) for k, v in self.by_payment_method.items()},
            "cash_total": str(self.cash_total),
            "card_total": str(self.card_total),
            "transfer_total": str(self.transfer_total),
            "movement_count": self.movement_count,
        }


def summarize_movements(movements: Iterable[TillMovement]) -> LedgerTotals:
    """
    Fold movements into per-kind, per-method and net cash totals.

    cash_total: every CASH movement adds when the kind is an inflow
    (SALE, FUND_INJECTION) and subtracts otherwise.
    """
    totals = LedgerTotals()
    for mov in movements:
        kind = MovementKind(mov.kind)
        method = PaymentMethod(mov.payment_method)
        amount = to_money(mov.amount)

        totals.movement_count += 1
        totals.by_kind[KIND_TOTAL_KEYS[kind]] += amount
        totals.by_payment_method[method.value] += amount

        if method == PaymentMethod.CASH:
            if kind in INFLOW_KINDS:
                totals.cash_total += amount
            else:
                totals.cash_total -= amount
        elif method in CARD_METHODS:
            totals.card_total += amount
        elif method in TRANSFER_METHODS:
            totals.transfer_total += amount

    return totals


def summarize(shift_id: int) -> LedgerTotals:
    """
    Totals for a shift's ledger, excluding the opening fund movement.

    The opening FUND_INJECTION mirrors Shift.initial_fund; leaving it out
    keeps cash_total the net drawer movement so that
    system_cash = initial_fund + cash_total holds.
    """
    rows = (
        db.session.query(TillMovement)
        .filter_by(shift_id=shift_id, is_opening_fund=False)
        .order_by(TillMovement.id)
        .all()
    )
    return summarize_movements(rows)


def system_cash(shift: Shift, totals: LedgerTotals | None = None) -> Decimal:
    if totals is None:
        totals = summarize(shift.id)
    return to_money(shift.initial_fund) + totals.cash_total


def list_movements(shift_id: int, *, newest_first: bool = True) -> list[TillMovement]:
    order = TillMovement.id.desc() if newest_first else TillMovement.id.asc()
    return db.session.query(TillMovement).filter_by(shift_id=shift_id).order_by(order).all()


def _append(
    shift: Shift,
    *,
    kind: MovementKind,
    concept: str,
    amount: Decimal,
    payment_method: PaymentMethod,
    user_id: int,
    notes: str | None = None,
    is_opening_fund: bool = False,
    requires_authorization: bool = False,
    authorized_by_user_id: int | None = None,
    sale_id: int | None = None,
    document_type: str | None = None,
    document_number: str | None = None,
    authorization_code: str | None = None,
) -> TillMovement:
    movement = TillMovement(
        shift_id=shift.id,
        kind=kind,
        concept=concept,
        amount=amount,
        payment_method=payment_method,
        user_id=user_id,
        occurred_at=utcnow(),
        notes=notes,
        is_opening_fund=is_opening_fund,
        requires_authorization=requires_authorization,
        authorized_by_user_id=authorized_by_user_id,
        sale_id=sale_id,
        document_type=document_type,
        document_number=document_number,
        authorization_code=authorization_code,
    )
    db.session.add(movement)
    db.session.flush()
    return movement


def record_movement(
    shift_id: int,
    kind: MovementKind,
    concept: str,
    amount,
    payment_method: PaymentMethod,
    user_id: int,
    *,
    notes: str | None = None,
    authorized_by_user_id: int | None = None,
    sale_id: int | None = None,
    document_type: str | None = None,
    document_number: str | None = None,
    authorization_code: str | None = None,
    commit: bool = True,
) -> TillMovement:
    """
    Append one movement to an OPEN shift's ledger.

    Raises:
        InvalidAmountError: amount <= 0
        ValidationError: kind is RECONCILIATION (written only by shift closure)
        ShiftNotFoundError / ShiftNotOpenError: target shift missing or not OPEN
        AuthorizationRequiredError: high-value movement without an elevated authorizer
    """
    kind = MovementKind(kind)
    payment_method = PaymentMethod(payment_method)

    if kind == MovementKind.RECONCILIATION:
        raise ValidationError("RECONCILIATION movements are recorded by shift closure only")

    amount = to_money(amount)
    if amount <= 0:
        raise InvalidAmountError("Amount must be greater than 0", amount=str(amount))

    if not concept or not concept.strip():
        raise ValidationError("concept required")

    # Row lock serialises the OPEN check behind a concurrent close of the same shift
    shift = lock_for_update(db.session.query(Shift).filter_by(id=shift_id)).first()
    if not shift:
        raise ShiftNotFoundError("Shift not found", shift_id=shift_id)
    if ShiftState(shift.state) != ShiftState.OPEN:
        raise ShiftNotOpenError(
            "Movements can only be recorded on an open shift",
            shift_id=shift.id,
            state=ShiftState(shift.state).value,
        )

    decision = movement_policy.evaluate(kind, amount, user_id, authorized_by_user_id)

    movement = _append(
        shift,
        kind=kind,
        concept=concept.strip(),
        amount=amount,
        payment_method=payment_method,
        user_id=user_id,
        notes=notes,
        requires_authorization=decision.requires_authorization,
        authorized_by_user_id=decision.authorized_by_user_id,
        sale_id=sale_id,
        document_type=document_type,
        document_number=document_number,
        authorization_code=authorization_code,
    )

    if commit:
        db.session.commit()

    return movement


def append_opening_fund(shift: Shift, user_id: int) -> TillMovement:
    """First movement of every shift: the drawer's opening cash. Caller commits."""
    return _append(
        shift,
        kind=MovementKind.FUND_INJECTION,
        concept="Opening fund",
        amount=to_money(shift.initial_fund),
        payment_method=PaymentMethod.CASH,
        user_id=user_id,
        is_opening_fund=True,
    )


def append_reconciliation(
    shift: Shift,
    delta: Decimal,
    user_id: int,
    *,
    concept: str,
    notes: str | None = None,
) -> TillMovement:
    """Signed close-time correction. Caller commits together with the shift close."""
    return _append(
        shift,
        kind=MovementKind.RECONCILIATION,
        concept=concept,
        amount=to_money(delta),
        payment_method=PaymentMethod.CASH,
        user_id=user_id,
        notes=notes,
        requires_authorization=False,
        authorized_by_user_id=None,
    )
