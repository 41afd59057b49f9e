"""
HTTP tests for the shift, config and sales endpoints.

Verifies status codes (401/403/400/404/409) and response payloads.
"""

import pytest

from cashdesk.models import TableState
from cashdesk.models.tables import BILLED_UNCOLLECTED
from cashdesk.services import recipients_service


OPEN_BODY = {
    "name": "Morning",
    "scheduled_start": "08:00",
    "scheduled_end": "14:00",
    "initial_fund": 1000,
}


def _open(client, headers, **overrides):
    return client.post("/api/shifts/open", json={**OPEN_BODY, **overrides}, headers=headers)


def _movement(client, headers, **body):
    payload = {"kind": "SALE", "concept": "Counter sale", "amount": 500, "payment_method": "CASH"}
    payload.update(body)
    return client.post("/api/shifts/movement", json=payload, headers=headers)


# =============================================================================
# AUTHENTICATION / PERMISSIONS
# =============================================================================


class TestAccessControl:

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/shifts/active"),
            ("GET", "/api/shifts/active/PRINCIPAL"),
            ("POST", "/api/shifts/open"),
            ("POST", "/api/shifts/1/close"),
            ("POST", "/api/shifts/1/force-close"),
            ("GET", "/api/shifts/history/PRINCIPAL"),
            ("GET", "/api/shifts/1"),
            ("POST", "/api/shifts/movement"),
            ("GET", "/api/shifts/pending-tables"),
            ("GET", "/api/config/report-recipients"),
            ("POST", "/api/config/report-recipients"),
            ("POST", "/api/sales/1/bill"),
            ("POST", "/api/tables/1/collect"),
        ],
    )
    def test_requires_auth(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"

    def test_waiter_reads_but_cannot_operate(self, client, waiter_headers):
        assert client.get("/api/shifts/pending-tables", headers=waiter_headers).status_code == 200

        resp = _open(client, waiter_headers)
        assert resp.status_code == 403
        assert resp.json["required_permission"] == "OPERATE_TILL"

    def test_cashier_cannot_force_close(self, client, cashier_headers):
        shift_id = _open(client, cashier_headers).json["shift"]["id"]

        resp = client.post(
            f"/api/shifts/{shift_id}/force-close",
            json={"motive": "x", "counted_cash": 1000},
            headers=cashier_headers,
        )
        assert resp.status_code == 403

    def test_login_and_me(self, client, cashier):
        resp = client.post("/api/auth/login", json={"username": "cashier", "password": "Password123!"})
        assert resp.status_code == 200
        token = resp.json["token"]

        me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert me.status_code == 200
        assert me.json["user"]["roles"] == ["cashier"]
        assert "OPERATE_TILL" in me.json["user"]["permissions"]

    def test_bad_credentials(self, client, cashier):
        resp = client.post("/api/auth/login", json={"username": "cashier", "password": "nope"})
        assert resp.status_code == 401

    def test_logout_revokes_token(self, client, cashier_headers):
        assert client.post("/api/auth/logout", headers=cashier_headers).status_code == 200
        assert client.get("/api/auth/me", headers=cashier_headers).status_code == 401


# =============================================================================
# OPEN / ACTIVE
# =============================================================================


class TestOpenAndActive:

    def test_open_returns_201(self, client, cashier_headers):
        resp = _open(client, cashier_headers, opening_notes="Float counted twice")

        assert resp.status_code == 201
        shift = resp.json["shift"]
        assert shift["state"] == "OPEN"
        assert shift["till"] == "PRINCIPAL"
        assert shift["initial_fund"] == "1000.00"
        assert shift["opening_notes"] == "Float counted twice"

    def test_camel_case_body(self, client, cashier_headers):
        resp = client.post("/api/shifts/open", json={
            "name": "Morning",
            "till": "bar",
            "scheduledStart": "8:00",
            "scheduledEnd": "14:00",
            "initialFund": "250.50",
        }, headers=cashier_headers)

        assert resp.status_code == 201
        assert resp.json["shift"]["till"] == "BAR"
        assert resp.json["shift"]["scheduled_start"] == "08:00"
        assert resp.json["shift"]["initial_fund"] == "250.50"

    def test_second_open_is_409(self, client, cashier_headers, other_cashier_headers):
        first = _open(client, cashier_headers).json["shift"]

        resp = _open(client, other_cashier_headers, name="Afternoon")

        assert resp.status_code == 409
        assert resp.json["open_shift"]["id"] == first["id"]

    def test_duplicate_name_today_is_409(self, client, cashier_headers):
        shift_id = _open(client, cashier_headers).json["shift"]["id"]
        client.post(f"/api/shifts/{shift_id}/close", json={"counted_cash": 1000}, headers=cashier_headers)

        resp = _open(client, cashier_headers)
        assert resp.status_code == 409
        assert "existing_shift" in resp.json

    @pytest.mark.parametrize(
        "overrides",
        [
            {"name": ""},
            {"scheduled_start": "25:00"},
            {"scheduled_end": "8pm"},
            {"initial_fund": -1},
            {"initial_fund": "abc"},
            {"initial_fund": True},
            {"till": 5},
            {"till": ["BAR"]},
        ],
    )
    def test_open_validation(self, client, cashier_headers, overrides):
        resp = _open(client, cashier_headers, **overrides)
        assert resp.status_code == 400

    def test_zero_initial_fund_allowed(self, client, cashier_headers):
        assert _open(client, cashier_headers, initial_fund=0).status_code == 201

    def test_active_shift_with_totals(self, client, cashier_headers):
        _open(client, cashier_headers)
        _movement(client, cashier_headers, amount=500)
        _movement(client, cashier_headers, amount=300, payment_method="DEBIT_CARD")

        resp = client.get("/api/shifts/active/PRINCIPAL", headers=cashier_headers)

        assert resp.status_code == 200
        shift = resp.json["shift"]
        assert shift["totals"]["cash_total"] == "500.00"
        assert shift["totals"]["card_total"] == "300.00"
        assert shift["totals"]["system_cash"] == "1500.00"
        assert len(shift["movements"]) == 3
        assert shift["movements"][0]["payment_method"] == "DEBIT_CARD"

    def test_no_active_shift_is_404(self, client, cashier_headers):
        resp = client.get("/api/shifts/active/PRINCIPAL", headers=cashier_headers)
        assert resp.status_code == 404
        assert resp.json["shift"] is None


# =============================================================================
# MOVEMENTS
# =============================================================================


class TestMovements:

    def test_record_movement(self, client, cashier_headers):
        _open(client, cashier_headers)

        resp = _movement(client, cashier_headers, kind="expense", concept="Ice", amount="120.50", notes="Receipt #4")

        assert resp.status_code == 201
        movement = resp.json["movement"]
        assert movement["kind"] == "EXPENSE"
        assert movement["amount"] == "120.50"
        assert movement["notes"] == "Receipt #4"

    def test_no_open_shift_is_409(self, client, cashier_headers):
        resp = _movement(client, cashier_headers)
        assert resp.status_code == 409
        assert resp.json["till"] == "PRINCIPAL"

    @pytest.mark.parametrize(
        "body",
        [
            {"amount": 0},
            {"amount": -5},
            {"kind": "RECONCILIATION"},
            {"kind": "GIFT"},
            {"payment_method": "CHEQUE"},
            {"concept": ""},
            {"till": 5},
        ],
    )
    def test_movement_validation(self, client, cashier_headers, body):
        _open(client, cashier_headers)
        assert _movement(client, cashier_headers, **body).status_code == 400

    def test_high_value_withdrawal_needs_supervisor(self, client, cashier_headers, supervisor):
        _open(client, cashier_headers)

        denied = _movement(client, cashier_headers, kind="WITHDRAWAL", concept="Safe drop", amount=15000)
        assert denied.status_code == 403
        assert denied.json["required_role"] == "supervisor"

        allowed = _movement(
            client, cashier_headers,
            kind="WITHDRAWAL", concept="Safe drop", amount=15000, authorized_by=supervisor.id,
        )
        assert allowed.status_code == 201
        assert allowed.json["movement"]["authorized_by"]["id"] == supervisor.id


# =============================================================================
# CLOSE / FORCE-CLOSE
# =============================================================================


class TestClose:

    def test_close_with_totals_and_consolidation(self, client, cashier_headers):
        shift_id = _open(client, cashier_headers).json["shift"]["id"]
        _movement(client, cashier_headers, amount=500)

        resp = client.post(
            f"/api/shifts/{shift_id}/close",
            json={"countedCash": 1480, "closingNotes": "Busy", "reconciliationNotes": "Short"},
            headers=cashier_headers,
        )

        assert resp.status_code == 200
        body = resp.json
        assert body["shift"]["state"] == "CLOSED"
        assert body["shift"]["closing_notes"] == "Busy"
        assert body["totals"]["system_cash"] == "1500.00"
        assert body["totals"]["reconciliation_delta"] == "-20.00"
        assert body["reconciliation_movement"]["amount"] == "-20.00"
        assert body["consolidation"]["triggered"] is False

    def test_pending_tables_block_close(self, client, cashier_headers, make_table):
        shift_id = _open(client, cashier_headers).json["shift"]["id"]
        table = make_table(4, BILLED_UNCOLLECTED)

        resp = client.post(f"/api/shifts/{shift_id}/close", json={"counted_cash": 1000}, headers=cashier_headers)

        assert resp.status_code == 409
        assert resp.json["pending_tables"] == [
            {"id": table.id, "number": 4, "sector": "Salon", "state": "AWAITING_ORDER"}
        ]

        active = client.get("/api/shifts/active", headers=cashier_headers)
        assert active.json["shift"]["state"] == "OPEN"

        pending = client.get("/api/shifts/pending-tables", headers=cashier_headers)
        assert pending.json["count"] == 1

    def test_other_cashier_close_is_403(self, client, cashier_headers, other_cashier_headers):
        shift_id = _open(client, cashier_headers).json["shift"]["id"]

        resp = client.post(
            f"/api/shifts/{shift_id}/close", json={"counted_cash": 1000}, headers=other_cashier_headers
        )
        assert resp.status_code == 403

    def test_close_unknown_shift_is_404(self, client, cashier_headers):
        resp = client.post("/api/shifts/999999/close", json={"counted_cash": 1000}, headers=cashier_headers)
        assert resp.status_code == 404

    def test_close_twice_is_409(self, client, cashier_headers):
        shift_id = _open(client, cashier_headers).json["shift"]["id"]
        client.post(f"/api/shifts/{shift_id}/close", json={"counted_cash": 1000}, headers=cashier_headers)

        resp = client.post(f"/api/shifts/{shift_id}/close", json={"counted_cash": 1000}, headers=cashier_headers)
        assert resp.status_code == 409

    def test_close_requires_counted_cash(self, client, cashier_headers):
        shift_id = _open(client, cashier_headers).json["shift"]["id"]
        resp = client.post(f"/api/shifts/{shift_id}/close", json={}, headers=cashier_headers)
        assert resp.status_code == 400

    def test_force_close(self, client, cashier_headers, supervisor_headers):
        shift_id = _open(client, cashier_headers).json["shift"]["id"]

        resp = client.post(
            f"/api/shifts/{shift_id}/force-close",
            json={"motive": "Cashier went home", "counted_cash": 950},
            headers=supervisor_headers,
        )

        assert resp.status_code == 200
        assert resp.json["shift"]["state"] == "FORCED_CLOSED"
        assert resp.json["reconciliation_movement"]["concept"] == "FORCED CLOSE - Motive: Cashier went home"

    def test_force_close_requires_motive(self, client, cashier_headers, supervisor_headers):
        shift_id = _open(client, cashier_headers).json["shift"]["id"]
        resp = client.post(
            f"/api/shifts/{shift_id}/force-close", json={"counted_cash": 950}, headers=supervisor_headers
        )
        assert resp.status_code == 400


# =============================================================================
# HISTORY / DETAIL
# =============================================================================


class TestHistory:

    def test_history_pagination(self, client, cashier_headers):
        for name in ["Morning", "Afternoon"]:
            shift_id = _open(client, cashier_headers, name=name).json["shift"]["id"]
            client.post(f"/api/shifts/{shift_id}/close", json={"counted_cash": 1000}, headers=cashier_headers)

        resp = client.get("/api/shifts/history/PRINCIPAL?page=1&limit=1", headers=cashier_headers)

        assert resp.status_code == 200
        assert resp.json["pagination"] == {"page": 1, "limit": 1, "total": 2, "pages": 2}
        assert resp.json["shifts"][0]["name"] == "Afternoon"

    def test_history_state_filter(self, client, cashier_headers):
        _open(client, cashier_headers)

        closed = client.get("/api/shifts/history?state=closed", headers=cashier_headers)
        assert closed.json["pagination"]["total"] == 0

        bad = client.get("/api/shifts/history?state=LOST", headers=cashier_headers)
        assert bad.status_code == 400

    def test_history_bad_date(self, client, cashier_headers):
        resp = client.get("/api/shifts/history?date_from=14-03-2026", headers=cashier_headers)
        assert resp.status_code == 400

    def test_shift_detail(self, client, cashier_headers):
        shift_id = _open(client, cashier_headers).json["shift"]["id"]

        resp = client.get(f"/api/shifts/{shift_id}", headers=cashier_headers)
        assert resp.status_code == 200
        assert resp.json["shift"]["id"] == shift_id
        assert resp.json["shift"]["movements"][0]["is_opening_fund"] is True

        assert client.get("/api/shifts/999999", headers=cashier_headers).status_code == 404


# =============================================================================
# CONFIG / SALES
# =============================================================================


class TestReportRecipients:

    def test_supervisor_updates_recipients(self, client, supervisor_headers):
        resp = client.post(
            "/api/config/report-recipients",
            json={"emails": ["owner@example.com"]},
            headers=supervisor_headers,
        )
        assert resp.status_code == 200

        listed = client.get("/api/config/report-recipients", headers=supervisor_headers)
        assert listed.json == {"recipients": ["owner@example.com"], "max_recipients": 5}

    def test_cashier_cannot_update(self, client, cashier_headers):
        resp = client.post(
            "/api/config/report-recipients",
            json={"emails": ["owner@example.com"]},
            headers=cashier_headers,
        )
        assert resp.status_code == 403
        assert recipients_service.get_recipients() == []

    def test_too_many_is_400(self, client, supervisor_headers):
        resp = client.post(
            "/api/config/report-recipients",
            json={"emails": [f"u{i}@example.com" for i in range(6)]},
            headers=supervisor_headers,
        )
        assert resp.status_code == 400


class TestSalesRoutes:

    def test_bill_then_collect(self, client, cashier, cashier_headers, make_sale, make_table, products):
        shift_id = _open(client, cashier_headers).json["shift"]["id"]
        table = make_table(6, TableState.OCCUPIED)
        sale = make_sale(cashier, [(products["EMP"], 2)], table=table)

        billed = client.post(
            f"/api/sales/{sale.id}/bill",
            json={"document_type": "ticket", "payments": [{"payment_method": "CASH", "amount": 1000}]},
            headers=cashier_headers,
        )
        assert billed.status_code == 200
        assert billed.json["sale"]["status"] == "COMPLETED"
        assert len(billed.json["movements"]) == 1

        blocked = client.post(f"/api/shifts/{shift_id}/close", json={"counted_cash": 2000}, headers=cashier_headers)
        assert blocked.status_code == 409

        collected = client.post(f"/api/tables/{table.id}/collect", headers=cashier_headers)
        assert collected.status_code == 200
        assert collected.json["table"]["state"] == "FREE"

        closed = client.post(f"/api/shifts/{shift_id}/close", json={"counted_cash": 2000}, headers=cashier_headers)
        assert closed.status_code == 200
        assert closed.json["totals"]["reconciliation_delta"] == "0.00"

    def test_bill_without_payments_is_400(self, client, cashier, cashier_headers, make_sale, products):
        _open(client, cashier_headers)
        sale = make_sale(cashier, [(products["EMP"], 1)])

        resp = client.post(
            f"/api/sales/{sale.id}/bill", json={"document_type": "TICKET", "payments": []}, headers=cashier_headers
        )
        assert resp.status_code == 400


def test_health(client, db_session):
    resp = client.get("/health")
    assert resp.status_code == 200
