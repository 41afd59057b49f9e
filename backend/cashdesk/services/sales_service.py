# Overview: Billing a sale into the open till and releasing its table on collection.

"""
Sales billing

WHY: Sales only reach the drawer through billing. Emitting a ticket or an
invoice records one SALE movement per payment line on the default till's
open shift and leaves the table in the billed-but-uncollected state until
payment is confirmed, which is what blocks shift closure meanwhile.
"""

from __future__ import annotations

import secrets
import string
from dataclasses import dataclass
from decimal import Decimal

from flask import current_app
from sqlalchemy import desc

from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import DiningTable, PaymentMethod, Sale, TableState, TillMovement
from ..models.tables import BILLED_UNCOLLECTED
from ..validation import to_money
from cashdesk.time_utils import business_date, utcnow
from . import ledger_service
from .concurrency import lock_for_update
from .shift_service import find_open_shift


TICKET = "TICKET"
INVOICE_TYPES = {"INVOICE_A": "A", "INVOICE_B": "B", "INVOICE_C": "C"}
DOCUMENT_TYPES = {TICKET, *INVOICE_TYPES}

# Non-fiscal tickets are stored under this document type
TICKET_DOCUMENT_TYPE = "NON_FISCAL_TICKET"


class SaleNotFoundError(NotFoundError):
    pass


class SaleStateError(ConflictError):
    pass


class NoOpenShiftForSaleError(ConflictError):
    pass


@dataclass(frozen=True)
class PaymentLine:
    method: PaymentMethod
    amount: Decimal


def _next_ticket_number(now) -> str:
    prefix = f"TK{business_date(now, current_app.config['BUSINESS_TIMEZONE']).strftime('%Y%m%d')}"
    last = (
        db.session.query(Sale.document_number)
        .filter(Sale.document_number.like(f"{prefix}%"))
        .order_by(desc(Sale.document_number))
        .first()
    )
    sequence = int(last[0][-4:]) + 1 if last else 1
    return f"{prefix}{sequence:04d}"


def _next_invoice_number(document_type: str) -> str:
    last = (
        db.session.query(Sale.document_number)
        .filter(Sale.document_type == document_type, Sale.document_number.isnot(None))
        .order_by(desc(Sale.document_number))
        .first()
    )
    sequence = int(last[0].split("-")[-1]) + 1 if last else 1
    return f"0001-{sequence:08d}"


def _simulated_authorization_code() -> str:
    """14-digit code standing in for the fiscal authority's authorization."""
    return "".join(secrets.choice(string.digits) for _ in range(14))


def bill_sale(
    sale_id: int,
    document_type: str,
    payments: list[PaymentLine],
    user_id: int,
) -> Sale:
    """
    Emit a ticket or invoice for a pending sale and record its payments in the till.

    Raises:
        ValidationError: unknown document type, no payments, or payments not summing to the total
        SaleNotFoundError / SaleStateError: unknown sale or sale already billed
        NoOpenShiftForSaleError: the default till has no open shift
    """
    if document_type not in DOCUMENT_TYPES:
        raise ValidationError(f"document_type must be one of: {', '.join(sorted(DOCUMENT_TYPES))}")
    if not payments:
        raise ValidationError("At least one payment is required")

    sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).first()
    if not sale:
        raise SaleNotFoundError("Sale not found", sale_id=sale_id)
    if sale.status != "PENDING":
        raise SaleStateError("Sale has already been billed", sale_id=sale.id, status=sale.status)

    paid = sum((p.amount for p in payments), Decimal("0.00"))
    if paid != to_money(sale.total):
        raise ValidationError(
            "Payments must add up to the sale total",
            total=str(to_money(sale.total)),
            paid=str(paid),
        )

    till = current_app.config["DEFAULT_TILL"]
    shift = find_open_shift(till)
    if not shift:
        raise NoOpenShiftForSaleError(
            f"No open shift on till {till}. Open the till before billing sales.",
            till=till,
        )

    now = utcnow()
    if document_type == TICKET:
        stored_type = TICKET_DOCUMENT_TYPE
        number = _next_ticket_number(now)
        code = f"INT-{int(now.timestamp() * 1000)}"
    else:
        stored_type = document_type
        number = _next_invoice_number(document_type)
        code = _simulated_authorization_code()

    try:
        sale.document_type = stored_type
        sale.document_number = number
        sale.authorization_code = code
        sale.status = "COMPLETED"

        for payment in payments:
            ledger_service.record_movement(
                shift.id,
                "SALE",
                f"Sale {sale.sale_number} - {payment.method.value}",
                payment.amount,
                payment.method,
                user_id,
                sale_id=sale.id,
                document_type=stored_type,
                document_number=number,
                authorization_code=code,
                commit=False,
            )

        if sale.table is not None:
            sale.table.state = BILLED_UNCOLLECTED

        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    return sale


def confirm_collection(table_id: int) -> DiningTable:
    """Payment received for a billed table: free it so shifts can close again."""
    table = db.session.query(DiningTable).filter_by(id=table_id).first()
    if not table:
        raise NotFoundError("Table not found", table_id=table_id)
    if TableState(table.state) != BILLED_UNCOLLECTED:
        raise ConflictError(
            "Table has no billed sale awaiting collection",
            table_id=table.id,
            state=TableState(table.state).value,
        )

    table.state = TableState.FREE
    db.session.commit()
    return table


def sale_movements(sale_id: int) -> list[TillMovement]:
    return db.session.query(TillMovement).filter_by(sale_id=sale_id).order_by(TillMovement.id).all()
