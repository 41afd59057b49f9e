# Overview: Daily consolidated report, triggered when a till's Nth shift of the day closes.

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, field
from datetime import date
from decimal import Decimal

from flask import current_app, render_template
from sqlalchemy import func

from ..extensions import db
from ..models import Product, Sale, SaleLine, Shift, ShiftState
from ..validation import to_money
from cashdesk.time_utils import day_bounds_utc, to_utc_z, utcnow
from ..tasks import send_report_task
from . import ledger_service, mail_service, recipients_service

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")

STATUS_NOT_TRIGGERED = "NOT_TRIGGERED"
STATUS_SKIPPED = "SKIPPED_NO_RECIPIENTS"
STATUS_QUEUED = "QUEUED"
STATUS_SENT = "SENT"
STATUS_FAILED = "FAILED"
STATUS_ERROR = "ERROR"


@dataclass
class ConsolidationOutcome:
    till: str
    day: date
    closed_shift_count: int
    triggered: bool
    report: dict | None = None
    report_file: str | None = None
    recipients: list[str] = field(default_factory=list)
    dispatch_status: str = STATUS_NOT_TRIGGERED
    error: str | None = None

    def to_dict(self) -> dict:
        return {
            "till": self.till,
            "date": self.day.isoformat(),
            "closed_shift_count": self.closed_shift_count,
            "triggered": self.triggered,
            "report_file": self.report_file,
            "report_summary": self.report["summary"] if self.report else None,
            "recipients": self.recipients,
            "dispatch_status": self.dispatch_status,
            "error": self.error,
        }


def _tz_name() -> str:
    return current_app.config["BUSINESS_TIMEZONE"]


def report_file_name(till: str, day: date) -> str:
    return f"daily_report_{till}_{day.isoformat()}.json"


def count_closed_shifts(till: str, day: date) -> int:
    """CLOSED (not FORCED_CLOSED) shifts of a till whose close falls on the local day."""
    start, end = day_bounds_utc(day, _tz_name())
    return db.session.query(func.count(Shift.id)).filter(
        Shift.till == till,
        Shift.state == ShiftState.CLOSED,
        Shift.closed_at >= start,
        Shift.closed_at < end,
    ).scalar() or 0


def _top_products(start, end, limit: int) -> list[dict]:
    quantity = func.sum(SaleLine.quantity)
    rows = (
        db.session.query(
            Product.id,
            Product.code,
            Product.name,
            quantity.label("quantity"),
            func.sum(SaleLine.subtotal).label("revenue"),
        )
        .join(SaleLine, SaleLine.product_id == Product.id)
        .join(Sale, Sale.id == SaleLine.sale_id)
        .filter(
            Sale.status == "COMPLETED",
            Sale.sold_at >= start,
            Sale.sold_at < end,
        )
        .group_by(Product.id, Product.code, Product.name)
        .order_by(quantity.desc(), Product.name.asc())
        .limit(limit)
        .all()
    )
    return [
        {
            "product_id": pid,
            "code": code,
            "name": name,
            "quantity": int(qty or 0),
            "revenue": str(to_money(revenue or 0)),
        }
        for pid, code, name, qty, revenue in rows
    ]


def build_daily_report(till: str, day: date) -> dict:
    """
    Aggregate every shift opened on the day for the till, plus the day's
    completed sales and best-selling products.
    """
    start, end = day_bounds_utc(day, _tz_name())

    shifts = (
        db.session.query(Shift)
        .filter(Shift.till == till, Shift.opened_at >= start, Shift.opened_at < end)
        .order_by(Shift.opened_at.asc(), Shift.id.asc())
        .all()
    )

    sales = (
        db.session.query(Sale)
        .filter(Sale.status == "COMPLETED", Sale.sold_at >= start, Sale.sold_at < end)
        .all()
    )

    cash_total = card_total = transfer_total = delta_total = ZERO
    shift_rows = []
    for number, shift in enumerate(shifts, start=1):
        totals = ledger_service.summarize(shift.id)
        delta = to_money(shift.reconciliation_delta) if shift.reconciliation_delta is not None else ZERO

        shift_rows.append({
            "number": number,
            "shift_id": shift.id,
            "name": shift.name,
            "state": ShiftState(shift.state).value,
            "opened_at": to_utc_z(shift.opened_at),
            "closed_at": to_utc_z(shift.closed_at) if shift.closed_at else None,
            "opened_by": shift.opened_by.full_name if shift.opened_by else None,
            "closed_by": shift.closed_by.full_name if shift.closed_by else None,
            "initial_fund": str(to_money(shift.initial_fund)),
            "final_fund": str(to_money(shift.final_fund)) if shift.final_fund is not None else None,
            "reconciliation_delta": str(delta),
            "sales_total": str(totals.by_kind["SALE"]),
            "cash_total": str(totals.cash_total),
            "notes": shift.closing_notes or "",
        })

        cash_total += totals.cash_total
        card_total += totals.card_total
        transfer_total += totals.transfer_total
        delta_total += delta

    sales_total = sum((to_money(s.total) for s in sales), ZERO)

    return {
        "date": day.isoformat(),
        "till": till,
        "generated_at": to_utc_z(utcnow()),
        "summary": {
            "shift_count": len(shifts),
            "sales_count": len(sales),
            "sales_total": str(sales_total),
            "cash_total": str(cash_total),
            "reconciliation_delta_total": str(delta_total),
        },
        "shifts": shift_rows,
        "payment_methods": {
            "cash": str(cash_total),
            "card": str(card_total),
            "transfer": str(transfer_total),
        },
        "top_products": _top_products(start, end, int(current_app.config["DAILY_REPORT_TOP_PRODUCTS"])),
    }


def _write_report_file(report: dict, file_name: str) -> None:
    report_dir = current_app.config.get("DAILY_REPORT_DIR")
    if not report_dir:
        return
    try:
        os.makedirs(report_dir, exist_ok=True)
        with open(os.path.join(report_dir, file_name), "w", encoding="utf-8") as fh:
            json.dump(report, fh, indent=2)
    except OSError:
        logger.exception("Could not write daily report file %s", file_name)


def dispatch_report(report: dict, file_name: str) -> tuple[str, list[str]]:
    """
    Hand the report to the configured recipients.

    Returns (dispatch_status, recipients). With no recipients the send is
    skipped. Delivery is queued as a Celery task when REPORT_DISPATCH_ASYNC is
    set so a slow mail server never delays the close response.
    """
    _write_report_file(report, file_name)

    recipients = recipients_service.get_recipients()
    if not recipients:
        logger.info("No daily report recipients configured; skipping dispatch of %s", file_name)
        return STATUS_SKIPPED, []

    subject = f"Daily report {report['till']} {report['date']}"
    body = render_template("daily_report.txt", report=report)
    attachment_text = json.dumps(report, indent=2)
    settings = mail_service.MailSettings.from_config(current_app.config)

    if current_app.config.get("REPORT_DISPATCH_ASYNC", True):
        result = send_report_task.delay(
            asdict(settings), recipients, subject, body, file_name, attachment_text
        )
        logger.info("Daily report %s queued for delivery as task %s", file_name, result.id)
        return STATUS_QUEUED, recipients

    attachment = (file_name, attachment_text.encode("utf-8"))
    sent = mail_service.send_report_safely(settings, recipients, subject, body, attachment)
    return (STATUS_SENT if sent else STATUS_FAILED), recipients


def consolidate(till: str, day: date) -> ConsolidationOutcome:
    """Build and dispatch the day's report unconditionally (operator re-send)."""
    report = build_daily_report(till, day)
    file_name = report_file_name(till, day)
    status, recipients = dispatch_report(report, file_name)
    return ConsolidationOutcome(
        till=till,
        day=day,
        closed_shift_count=count_closed_shifts(till, day),
        triggered=True,
        report=report,
        report_file=file_name,
        recipients=recipients,
        dispatch_status=status,
    )


def check_and_maybe_consolidate(till: str, day: date) -> ConsolidationOutcome:
    """
    Fire the daily report when exactly DAILY_REPORT_SHIFT_COUNT shifts of
    the till have closed on the day. Equality, not >=, so the report goes
    out once: on the close that makes the count reach the threshold.
    """
    closed = count_closed_shifts(till, day)
    if closed != int(current_app.config["DAILY_REPORT_SHIFT_COUNT"]):
        return ConsolidationOutcome(till=till, day=day, closed_shift_count=closed, triggered=False)

    logger.info("Shift %d of the day closed on till %s; building daily report", closed, till)
    return consolidate(till, day)


def evaluate_after_close(till: str, day: date) -> ConsolidationOutcome:
    """
    Trigger evaluation for the close flow: any failure is logged and
    reported in the outcome, never raised.
    """
    try:
        return check_and_maybe_consolidate(till, day)
    except Exception as exc:
        logger.exception("Daily consolidation failed for till %s on %s", till, day)
        db.session.rollback()
        return ConsolidationOutcome(
            till=till,
            day=day,
            closed_shift_count=0,
            triggered=False,
            dispatch_status=STATUS_ERROR,
            error=str(exc),
        )
