"""
Finance tests: cash flow, expenses, revenues and recurring series.

Verifies:
- Day rows chain: opening = previous closing, closing = opening + in - out
- Backdated movements carry forward to every later day
- Paid expenses and non-sale revenues own exactly one movement
- Recurring series fill in every missing occurrence once
"""

from datetime import date

import pytest

from brecho.extensions import db
from brecho.models import CashFlowDay, CashMovement, Expense, Revenue
from brecho.services import cash_flow_service, expense_service, revenue_service
from brecho.services.tenant_service import shop_today


def _movements(**links):
    return db.session.query(CashMovement).filter_by(**links).all()


def _day(shop_id, day):
    return db.session.query(CashFlowDay).filter_by(shop_id=shop_id, date=day).one()


def _manual(client, headers, day, movement_type, amount_cents, description="Ajuste de caixa"):
    return client.post(
        "/api/cash-flow/movements",
        json={
            "date": day,
            "movement_type": movement_type,
            "amount_cents": amount_cents,
            "description": description,
        },
        headers=headers,
    )


# =============================================================================
# CASH FLOW
# =============================================================================


class TestCashFlowChain:
    """Daily balances."""

    def test_backdated_movement_rechains_later_days(self, client, owner_headers, shop_a):
        assert _manual(client, owner_headers, "2026-03-10", "IN", 10000).status_code == 201
        assert _manual(client, owner_headers, "2026-03-12", "OUT", 3000).status_code == 201
        assert _manual(client, owner_headers, "2026-03-05", "in", 500).status_code == 201

        first = _day(shop_a.id, date(2026, 3, 5))
        middle = _day(shop_a.id, date(2026, 3, 10))
        last = _day(shop_a.id, date(2026, 3, 12))

        assert (first.opening_balance_cents, first.closing_balance_cents) == (0, 500)
        assert (middle.opening_balance_cents, middle.closing_balance_cents) == (500, 10500)
        assert (last.opening_balance_cents, last.closing_balance_cents) == (10500, 7500)

    def test_period_fills_quiet_days(self, client, owner_headers):
        _manual(client, owner_headers, "2026-03-05", "IN", 500)
        _manual(client, owner_headers, "2026-03-10", "IN", 10000)

        resp = client.get("/api/cash-flow/period?start=2026-03-09&end=2026-03-11", headers=owner_headers)
        assert resp.status_code == 200
        days = resp.json["days"]
        assert [row["date"] for row in days] == ["2026-03-09", "2026-03-10", "2026-03-11"]
        assert days[0]["id"] is None
        assert days[0]["closing_balance_cents"] == 500
        assert days[1]["inflow_cents"] == 10000
        assert days[2]["opening_balance_cents"] == days[2]["closing_balance_cents"] == 10500

    @pytest.mark.parametrize(
        "query",
        [
            "start=2026-03-10&end=2026-03-01",
            "start=2025-01-01&end=2026-03-01",
            "start=10/03/2026",
        ],
    )
    def test_period_rejects_bad_ranges(self, client, owner_headers, query):
        resp = client.get(f"/api/cash-flow/period?{query}", headers=owner_headers)
        assert resp.status_code == 400

    def test_balance_and_day_detail(self, client, owner_headers):
        _manual(client, owner_headers, "2026-03-10", "IN", 10000)
        _manual(client, owner_headers, "2026-03-12", "OUT", 3000, description="Troco do fundo")

        balance = client.get("/api/cash-flow/balance?as_of=2026-03-11", headers=owner_headers)
        assert balance.json["balance_cents"] == 10000

        detail = client.get("/api/cash-flow/days/2026-03-12", headers=owner_headers)
        assert detail.json["day"]["closing_balance_cents"] == 7000
        assert [m["description"] for m in detail.json["movements"]] == ["Troco do fundo"]

        quiet = client.get("/api/cash-flow/days/2026-03-11", headers=owner_headers)
        assert quiet.json["movements"] == []
        assert quiet.json["day"]["closing_balance_cents"] == 10000

    def test_history_is_oldest_first(self, shop_a):
        cash_flow_service.create_manual_movement(
            shop_id=shop_a.id,
            day=date(2026, 3, 10),
            movement_type="IN",
            amount_cents=2500,
            description="Fundo de troco",
        )
        rows = cash_flow_service.balance_history(shop_id=shop_a.id, days=3, today=date(2026, 3, 11))
        assert rows == [
            {"date": "2026-03-09", "balance_cents": 0},
            {"date": "2026-03-10", "balance_cents": 2500},
            {"date": "2026-03-11", "balance_cents": 2500},
        ]


class TestManualMovements:
    """Hand-entered movements."""

    @pytest.mark.parametrize(
        "payload",
        [
            {"movement_type": "IN", "amount_cents": 100, "description": "ok"},
            {"movement_type": "SIDEWAYS", "amount_cents": 100, "description": "Ajuste"},
            {"movement_type": "IN", "amount_cents": 0, "description": "Ajuste"},
            {"movement_type": "IN", "amount_cents": 10.5, "description": "Ajuste"},
            {"movement_type": "IN", "description": "Ajuste"},
        ],
    )
    def test_invalid_movements(self, client, owner_headers, payload):
        resp = client.post("/api/cash-flow/movements", json=payload, headers=owner_headers)
        assert resp.status_code == 400

    def test_defaults_to_today(self, client, owner_headers, shop_a):
        resp = client.post(
            "/api/cash-flow/movements",
            json={"movement_type": "OUT", "amount_cents": 1200, "description": "Sacolas"},
            headers=owner_headers,
        )
        assert resp.status_code == 201
        assert resp.json["date"] == shop_today(shop_a.id).isoformat()
        assert resp.json["is_manual"] is True

    def test_delete_rechains(self, client, owner_headers, shop_a):
        first = _manual(client, owner_headers, "2026-03-10", "IN", 10000).json
        _manual(client, owner_headers, "2026-03-12", "OUT", 3000)

        resp = client.delete(f"/api/cash-flow/movements/{first['id']}", headers=owner_headers)
        assert resp.status_code == 200
        assert _day(shop_a.id, date(2026, 3, 12)).closing_balance_cents == -3000

    def test_linked_movement_cannot_be_deleted(self, client, owner_headers, shop_a):
        revenue = revenue_service.create_revenue(
            shop_id=shop_a.id,
            patch={"description": "Aluguel de arara", "amount_cents": 4000, "revenue_type": "RENTALS"},
        )
        movement = _movements(revenue_id=revenue.id)[0]
        resp = client.delete(f"/api/cash-flow/movements/{movement.id}", headers=owner_headers)
        assert resp.status_code == 409

    def test_unknown_movement(self, client, owner_headers):
        assert client.delete("/api/cash-flow/movements/9999", headers=owner_headers).status_code == 404

    def test_seller_cannot_see_cash(self, client, seller_headers):
        assert client.get("/api/cash-flow/period", headers=seller_headers).status_code == 403


# =============================================================================
# EXPENSES
# =============================================================================


class TestExpenses:
    """Expense payment state and its movement."""

    def test_unpaid_defaults_due_date(self, client, owner_headers, shop_a):
        resp = client.post(
            "/api/expenses",
            json={"description": "Conta de luz", "amount_cents": 18000},
            headers=owner_headers,
        )
        assert resp.status_code == 201
        assert resp.json["is_paid"] is False
        assert resp.json["due_date"] == shop_today(shop_a.id).isoformat()
        assert _movements(expense_id=resp.json["id"]) == []

    @pytest.mark.parametrize(
        "extra",
        [
            {"is_paid": True},
            {"is_paid": True, "paid_on": "2026-03-10"},
            {"expense_type": "HOBBY"},
            {"frequency": "HOURLY"},
        ],
    )
    def test_invalid_expenses(self, client, owner_headers, cash_method, extra):
        payload = {"description": "Conta de luz", "amount_cents": 18000, **extra}
        resp = client.post("/api/expenses", json=payload, headers=owner_headers)
        assert resp.status_code == 400

    def test_paid_expense_records_out(self, client, owner_headers, shop_a, cash_method):
        resp = client.post(
            "/api/expenses",
            json={
                "description": "Cabides",
                "amount_cents": 4500,
                "is_paid": True,
                "paid_on": "2026-03-10",
                "payment_method_id": cash_method.id,
            },
            headers=owner_headers,
        )
        assert resp.status_code == 201

        [movement] = _movements(expense_id=resp.json["id"])
        assert movement.movement_type == "OUT"
        assert movement.description == "Despesa: Cabides"
        assert _day(shop_a.id, date(2026, 3, 10)).closing_balance_cents == -4500

    def test_pay_then_unpay(self, client, owner_headers, shop_a, cash_method):
        expense_id = client.post(
            "/api/expenses",
            json={"description": "Aluguel", "amount_cents": 150000, "due_date": "2026-03-05"},
            headers=owner_headers,
        ).json["id"]

        paid = client.post(
            f"/api/expenses/{expense_id}/pay",
            json={"paid_on": "2026-03-06", "payment_method_id": cash_method.id},
            headers=owner_headers,
        )
        assert paid.status_code == 200
        assert paid.json["paid_on"] == "2026-03-06"
        assert len(_movements(expense_id=expense_id)) == 1

        again = client.post(f"/api/expenses/{expense_id}/pay", json={}, headers=owner_headers)
        assert again.status_code == 409

        unpaid = client.put(f"/api/expenses/{expense_id}", json={"is_paid": False}, headers=owner_headers)
        assert unpaid.status_code == 200
        assert unpaid.json["paid_on"] is None
        assert _movements(expense_id=expense_id) == []
        assert _day(shop_a.id, date(2026, 3, 6)).closing_balance_cents == 0

    def test_pay_without_method_rejected(self, client, owner_headers):
        expense_id = client.post(
            "/api/expenses",
            json={"description": "Aluguel", "amount_cents": 150000},
            headers=owner_headers,
        ).json["id"]
        resp = client.post(f"/api/expenses/{expense_id}/pay", json={}, headers=owner_headers)
        assert resp.status_code == 400

    def test_amount_change_replaces_movement(self, shop_a, cash_method):
        expense = expense_service.create_expense(
            shop_id=shop_a.id,
            patch={
                "description": "Cabides",
                "amount_cents": 4500,
                "is_paid": True,
                "paid_on": date(2026, 3, 10),
                "payment_method_id": cash_method.id,
            },
        )
        expense_service.update_expense(shop_id=shop_a.id, expense_id=expense.id, patch={"amount_cents": 5000})

        [movement] = _movements(expense_id=expense.id)
        assert movement.amount_cents == 5000
        assert _day(shop_a.id, date(2026, 3, 10)).outflow_cents == 5000

    def test_delete_removes_movement(self, client, owner_headers, shop_a, cash_method):
        expense = expense_service.create_expense(
            shop_id=shop_a.id,
            patch={
                "description": "Cabides",
                "amount_cents": 4500,
                "is_paid": True,
                "paid_on": date(2026, 3, 10),
                "payment_method_id": cash_method.id,
            },
        )
        resp = client.delete(f"/api/expenses/{expense.id}", headers=owner_headers)
        assert resp.status_code == 200
        assert _movements(expense_id=expense.id) == []
        assert db.session.query(CashMovement).count() == 0

    def test_list_filters(self, client, owner_headers, shop_a, cash_method):
        expense_service.create_expense(
            shop_id=shop_a.id,
            patch={"description": "Aluguel", "amount_cents": 150000, "due_date": date(2026, 3, 5)},
        )
        expense_service.create_expense(
            shop_id=shop_a.id,
            patch={
                "description": "Cabides",
                "amount_cents": 4500,
                "is_paid": True,
                "paid_on": date(2026, 4, 2),
                "payment_method_id": cash_method.id,
            },
        )
        march = client.get("/api/expenses?start=2026-03-01&end=2026-03-31", headers=owner_headers)
        assert [row["description"] for row in march.json["items"]] == ["Aluguel"]

        paid = client.get("/api/expenses?is_paid=true", headers=owner_headers)
        assert [row["description"] for row in paid.json["items"]] == ["Cabides"]


# =============================================================================
# REVENUES
# =============================================================================


class TestRevenues:
    """Non-sale revenues own their IN movement."""

    def test_create_records_in(self, client, owner_headers, shop_a):
        resp = client.post(
            "/api/revenues",
            json={
                "description": "Aluguel de arara",
                "amount_cents": 4000,
                "date": "2026-03-10",
                "revenue_type": "rentals",
            },
            headers=owner_headers,
        )
        assert resp.status_code == 201
        assert resp.json["revenue_type"] == "RENTALS"

        [movement] = _movements(revenue_id=resp.json["id"])
        assert movement.movement_type == "IN"
        assert movement.description == "Receita: Aluguel de arara"

    def test_sale_revenue_cannot_recur(self, client, owner_headers):
        resp = client.post(
            "/api/revenues",
            json={
                "description": "Venda avulsa",
                "amount_cents": 4000,
                "revenue_type": "SALE",
                "is_recurring": True,
            },
            headers=owner_headers,
        )
        assert resp.status_code == 400

    def test_move_date_moves_cash(self, client, owner_headers, shop_a):
        revenue = revenue_service.create_revenue(
            shop_id=shop_a.id,
            patch={"description": "Consultoria", "amount_cents": 4000, "date": date(2026, 3, 10)},
        )
        resp = client.put(f"/api/revenues/{revenue.id}", json={"date": "2026-03-02"}, headers=owner_headers)
        assert resp.status_code == 200

        [movement] = _movements(revenue_id=revenue.id)
        assert movement.date == date(2026, 3, 2)
        assert _day(shop_a.id, date(2026, 3, 10)).inflow_cents == 0
        assert _day(shop_a.id, date(2026, 3, 10)).closing_balance_cents == 4000

    def test_sale_revenue_is_owned_by_the_sale(self, client, owner_headers, cash_method, product_a):
        sale = client.post(
            "/api/sales",
            json={"payment_method_id": cash_method.id, "items": [{"product_id": product_a.id}]},
            headers=owner_headers,
        ).json
        revenue = db.session.query(Revenue).filter_by(sale_id=sale["id"]).one()

        updated = client.put(f"/api/revenues/{revenue.id}", json={"amount_cents": 1}, headers=owner_headers)
        assert updated.status_code == 409
        deleted = client.delete(f"/api/revenues/{revenue.id}", headers=owner_headers)
        assert deleted.status_code == 409


# =============================================================================
# RECURRENCE
# =============================================================================


class TestRecurrence:
    """Recurring revenue and expense series."""

    @pytest.mark.parametrize(
        "current, frequency, expected",
        [
            (date(2026, 1, 31), "MONTHLY", date(2026, 2, 28)),
            (date(2026, 1, 31), None, date(2026, 2, 28)),
            (date(2026, 3, 1), "WEEKLY", date(2026, 3, 8)),
            (date(2026, 3, 1), "BIWEEKLY", date(2026, 3, 16)),
            (date(2026, 3, 1), "daily", date(2026, 3, 2)),
            (date(2026, 11, 30), "QUARTERLY", date(2027, 2, 28)),
            (date(2024, 2, 29), "ANNUAL", date(2025, 2, 28)),
        ],
    )
    def test_next_occurrence(self, current, frequency, expected):
        assert revenue_service.next_occurrence(current, frequency) == expected

    @pytest.fixture
    def series(self, shop_a):
        revenue = revenue_service.create_revenue(
            shop_id=shop_a.id,
            patch={
                "description": "Aluguel do box",
                "amount_cents": 1000,
                "date": date(2026, 1, 15),
                "revenue_type": "RENTALS",
                "is_recurring": True,
            },
        )
        expense = expense_service.create_expense(
            shop_id=shop_a.id,
            patch={
                "description": "Aluguel da loja",
                "amount_cents": 150000,
                "due_date": date(2026, 1, 5),
                "is_recurring": True,
            },
        )
        return revenue, expense

    def test_process_fills_missing_occurrences(self, shop_a, series):
        revenue, expense = series
        assert revenue.frequency == "MONTHLY"

        result = revenue_service.process_recurring(shop_id=shop_a.id, today=date(2026, 4, 20))
        assert result == {"revenues_created": 3, "expenses_created": 3, "today": "2026-04-20"}

        dates = [
            row.date for row in db.session.query(Revenue)
            .filter_by(recurrence_parent_id=revenue.id).order_by(Revenue.date).all()
        ]
        assert dates == [date(2026, 2, 15), date(2026, 3, 15), date(2026, 4, 15)]

        generated = db.session.query(Expense).filter_by(recurrence_parent_id=expense.id).all()
        assert all(not row.is_paid for row in generated)
        assert max(row.due_date for row in generated) == date(2026, 4, 5)

        assert cash_flow_service.current_balance(shop_id=shop_a.id, as_of=date(2026, 4, 20)) == 4000

    def test_process_is_idempotent(self, shop_a, series):
        revenue_service.process_recurring(shop_id=shop_a.id, today=date(2026, 4, 20))
        again = revenue_service.process_recurring(shop_id=shop_a.id, today=date(2026, 4, 20))
        assert again["revenues_created"] == 0
        assert again["expenses_created"] == 0

    def test_deleting_root_promotes_earliest(self, client, owner_headers, shop_a, series):
        revenue, _ = series
        revenue_service.process_recurring(shop_id=shop_a.id, today=date(2026, 4, 20))

        resp = client.delete(f"/api/revenues/{revenue.id}", headers=owner_headers)
        assert resp.status_code == 200

        new_root = db.session.query(Revenue).filter_by(date=date(2026, 2, 15)).one()
        assert new_root.recurrence_parent_id is None
        assert new_root.is_recurring is True
        children = db.session.query(Revenue).filter_by(recurrence_parent_id=new_root.id).count()
        assert children == 2

        again = revenue_service.process_recurring(shop_id=shop_a.id, today=date(2026, 4, 20))
        assert again["revenues_created"] == 0

    def test_process_route(self, client, owner_headers):
        resp = client.post("/api/recurring/process", headers=owner_headers)
        assert resp.status_code == 200
        assert resp.json["revenues_created"] == 0
        assert resp.json["expenses_created"] == 0
