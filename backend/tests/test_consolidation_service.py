"""
Daily consolidation trigger tests.

The report fires on the close that brings a till's CLOSED shifts for the
day to exactly DAILY_REPORT_SHIFT_COUNT; delivery problems never undo the close.
"""

import json
import smtplib
from dataclasses import asdict
from decimal import Decimal
from types import SimpleNamespace

import pytest

from cashdesk.models import ShiftState
from cashdesk.services import consolidation_service, mail_service, recipients_service, sales_service, shift_service
from cashdesk.services.sales_service import PaymentLine
from cashdesk.models import PaymentMethod
from cashdesk.tasks import send_report_task
from cashdesk.time_utils import business_date, utcnow


SHIFT_NAMES = ["Morning", "Afternoon", "Night", "Late"]


def _close_n(user, open_shift, n, till="PRINCIPAL"):
    results = []
    for name in SHIFT_NAMES[:n]:
        shift = open_shift(user, name=name, till=till)
        results.append(shift_service.close_shift(shift.id, shift.initial_fund, user.id))
    return results


@pytest.fixture
def sent_mail(monkeypatch):
    """Capture outgoing reports instead of talking SMTP."""
    outbox = []

    def fake_send(settings, recipients, subject, body, attachment=None):
        outbox.append({"recipients": recipients, "subject": subject, "body": body, "attachment": attachment})

    monkeypatch.setattr(mail_service, "send_report", fake_send)
    return outbox


@pytest.fixture
def with_recipients(supervisor):
    return recipients_service.set_recipients(["owner@example.com", "books@example.com"], supervisor.id)


class TestTrigger:

    def test_fires_exactly_on_third_close(self, cashier, open_shift, with_recipients, sent_mail):
        first, second, third, fourth = _close_n(cashier, open_shift, 4)

        assert first.consolidation.triggered is False
        assert second.consolidation.triggered is False
        assert third.consolidation.triggered is True
        assert third.consolidation.closed_shift_count == 3
        assert third.consolidation.dispatch_status == consolidation_service.STATUS_SENT
        assert fourth.consolidation.triggered is False
        assert fourth.consolidation.closed_shift_count == 4

        assert len(sent_mail) == 1
        assert sent_mail[0]["recipients"] == ["owner@example.com", "books@example.com"]

    def test_no_recipients_skips_dispatch(self, cashier, open_shift, sent_mail):
        *_, third = _close_n(cashier, open_shift, 3)

        assert third.shift.state == ShiftState.CLOSED
        assert third.consolidation.triggered is True
        assert third.consolidation.dispatch_status == consolidation_service.STATUS_SKIPPED
        assert third.consolidation.recipients == []
        assert third.consolidation.report["summary"]["shift_count"] == 3
        assert sent_mail == []

    def test_forced_closes_do_not_count(self, cashier, supervisor, open_shift, with_recipients, sent_mail):
        _close_n(cashier, open_shift, 2)
        shift = open_shift(cashier, name="Night")
        forced = shift_service.force_close_shift(shift.id, "Audit", shift.initial_fund, supervisor.id)

        assert forced.consolidation is None
        day = business_date(utcnow(), "UTC")
        assert consolidation_service.count_closed_shifts("PRINCIPAL", day) == 2
        assert sent_mail == []

    def test_counts_are_per_till(self, cashier, open_shift, sent_mail):
        _close_n(cashier, open_shift, 2, till="PRINCIPAL")
        bar = _close_n(cashier, open_shift, 1, till="BAR")

        assert bar[0].consolidation.closed_shift_count == 1
        assert bar[0].consolidation.triggered is False

    def test_shift_count_follows_config(self, app, cashier, open_shift, monkeypatch, sent_mail):
        monkeypatch.setitem(app.config, "DAILY_REPORT_SHIFT_COUNT", 1)
        [only] = _close_n(cashier, open_shift, 1)
        assert only.consolidation.triggered is True


class TestDispatchFailures:

    def test_smtp_failure_is_reported_not_raised(self, cashier, open_shift, with_recipients, monkeypatch):
        def refuse(*args, **kwargs):
            raise smtplib.SMTPException("relay denied")

        monkeypatch.setattr(mail_service, "send_report", refuse)

        *_, third = _close_n(cashier, open_shift, 3)

        assert third.shift.state == ShiftState.CLOSED
        assert third.consolidation.dispatch_status == consolidation_service.STATUS_FAILED

    def test_unexpected_error_never_fails_the_close(self, cashier, open_shift, with_recipients, monkeypatch):
        def explode(*args, **kwargs):
            raise RuntimeError("template crashed")

        monkeypatch.setattr(mail_service, "send_report", explode)

        *_, third = _close_n(cashier, open_shift, 3)

        assert shift_service.get_shift(third.shift.id).state == ShiftState.CLOSED
        assert third.consolidation.dispatch_status == consolidation_service.STATUS_ERROR
        assert "template crashed" in third.consolidation.error


class TestQueuedDelivery:

    def test_async_dispatch_queues_task_and_close_returns(self, app, cashier, open_shift, with_recipients, monkeypatch):
        queued = []

        class FakeTask:
            @staticmethod
            def delay(*args):
                queued.append(args)
                return SimpleNamespace(id="task-1")

        monkeypatch.setitem(app.config, "REPORT_DISPATCH_ASYNC", True)
        monkeypatch.setattr(consolidation_service, "send_report_task", FakeTask)

        *_, third = _close_n(cashier, open_shift, 3)

        assert shift_service.get_shift(third.shift.id).state == ShiftState.CLOSED
        assert third.consolidation.dispatch_status == consolidation_service.STATUS_QUEUED
        assert len(queued) == 1

        settings, recipients, subject, body, file_name, attachment_text = queued[0]
        assert settings["sender"] == app.config["MAIL_FROM"]
        assert recipients == ["owner@example.com", "books@example.com"]
        assert file_name == third.consolidation.report_file
        assert json.loads(attachment_text)["summary"]["shift_count"] == 3

    def test_task_sends_report(self, sent_mail):
        settings = asdict(mail_service.MailSettings.from_config({}))

        result = send_report_task.apply(
            args=(settings, ["owner@example.com"], "Daily report", "body", "r.json", '{"till": "PRINCIPAL"}')
        ).get()

        assert result == {"status": "sent", "recipients": ["owner@example.com"]}
        assert sent_mail[0]["attachment"] == ("r.json", b'{"till": "PRINCIPAL"}')

    def test_task_gives_up_after_last_retry(self, monkeypatch):
        def refuse(*args, **kwargs):
            raise smtplib.SMTPException("relay denied")

        monkeypatch.setattr(mail_service, "send_report", refuse)
        settings = asdict(mail_service.MailSettings.from_config({}))

        result = send_report_task.apply(
            args=(settings, ["owner@example.com"], "Daily report", "body"),
            retries=send_report_task.max_retries,
        ).get()

        assert result["status"] == "failed"
        assert "relay denied" in result["error"]


class TestReport:

    def test_report_contents(self, cashier, open_shift, make_sale, make_table, products, with_recipients, sent_mail):
        table = make_table(4)
        shift = open_shift(cashier, name="Morning", initial_fund="1000.00")

        sale = make_sale(cashier, [(products["PIZ"], 2), (products["EMP"], 3)], table=table)
        sales_service.bill_sale(
            sale.id,
            "TICKET",
            [
                PaymentLine(PaymentMethod.CASH, Decimal("5000.00")),
                PaymentLine(PaymentMethod.DEBIT_CARD, Decimal("2500.00")),
            ],
            cashier.id,
        )
        sales_service.confirm_collection(table.id)
        other = make_sale(cashier, [(products["EMP"], 1)])
        sales_service.bill_sale(other.id, "TICKET", [PaymentLine(PaymentMethod.QR_WALLET, Decimal("500.00"))], cashier.id)
        make_sale(cashier, [(products["BEV"], 10)])  # never billed

        shift_service.close_shift(shift.id, Decimal("6000.00"), cashier.id)

        day = business_date(utcnow(), "UTC")
        report = consolidation_service.build_daily_report("PRINCIPAL", day)

        assert report["summary"]["shift_count"] == 1
        assert report["summary"]["sales_count"] == 2
        assert report["summary"]["sales_total"] == "8000.00"
        assert report["summary"]["reconciliation_delta_total"] == "0.00"
        assert report["payment_methods"] == {"cash": "5000.00", "card": "2500.00", "transfer": "500.00"}
        assert [p["code"] for p in report["top_products"]] == ["EMP", "PIZ"]
        assert report["top_products"][0]["quantity"] == 4
        assert report["shifts"][0]["name"] == "Morning"

    def test_manual_consolidation_ignores_count(self, cashier, open_shift, with_recipients, sent_mail):
        _close_n(cashier, open_shift, 1)
        day = business_date(utcnow(), "UTC")

        outcome = consolidation_service.consolidate("PRINCIPAL", day)

        assert outcome.triggered is True
        assert outcome.closed_shift_count == 1
        assert outcome.report_file == f"daily_report_PRINCIPAL_{day.isoformat()}.json"
        assert len(sent_mail) == 1
        filename, payload = sent_mail[0]["attachment"]
        assert filename == outcome.report_file
        assert json.loads(payload)["till"] == "PRINCIPAL"
        assert "Daily report - till PRINCIPAL" in sent_mail[0]["body"]

    def test_report_file_written_when_configured(self, app, cashier, open_shift, monkeypatch, tmp_path):
        monkeypatch.setitem(app.config, "DAILY_REPORT_DIR", str(tmp_path))

        *_, third = _close_n(cashier, open_shift, 3)

        written = tmp_path / third.consolidation.report_file
        assert written.exists()
        assert json.loads(written.read_text(encoding="utf-8"))["summary"]["shift_count"] == 3
