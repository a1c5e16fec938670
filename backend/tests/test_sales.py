"""
Sales workflow tests.

Verifies:
- Immediate payment: sale PAID, stock decremented, SALE revenue, cash IN
- Deferred payment: installments split with the remainder on the first
- A rejected sale leaves stock, revenue and cash untouched
- Cancellation reverses every effect; only cancelled sales can be deleted
- Installment status drives cash movements and the sale status
"""

from datetime import date

import pytest

from brecho.extensions import db
from brecho.models import CashFlowDay, CashMovement, Installment, Product, Revenue, Sale
from brecho.services import customer_service, seller_service
from brecho.services.sales_service import _split_installments


def _sell(client, headers, **body):
    return client.post("/api/sales", json=body, headers=headers)


def _cash_day(shop_id, day):
    return db.session.query(CashFlowDay).filter_by(shop_id=shop_id, date=day).first()


# =============================================================================
# IMMEDIATE PAYMENT
# =============================================================================


class TestImmediateSale:
    """Cash, PIX and cards settle the sale at checkout."""

    def test_sale_effects(self, client, owner_headers, shop_a, cash_method, product_a):
        resp = _sell(
            client, owner_headers,
            payment_method_id=cash_method.id,
            sold_at="2026-03-10T15:00:00Z",
            items=[{"product_id": product_a.id, "quantity": 1}],
        )
        assert resp.status_code == 201
        sale = resp.json
        assert sale["status"] == "PAID"
        assert sale["total_cents"] == 8990
        assert sale["sold_on"] == "2026-03-10"
        assert sale["installments"] == []
        assert sale["items"][0]["unit_price_cents"] == 8990

        product = db.session.get(Product, product_a.id)
        assert product.quantity == 0
        assert product.status == "SOLD"

        revenue = db.session.query(Revenue).filter_by(sale_id=sale["id"]).one()
        assert revenue.revenue_type == "SALE"
        assert revenue.amount_cents == 8990
        assert revenue.date == date(2026, 3, 10)

        movement = db.session.query(CashMovement).filter_by(sale_id=sale["id"]).one()
        assert movement.movement_type == "IN"
        assert movement.description == f"Venda #{sale['id']} - Cliente não informado"

        day = _cash_day(shop_a.id, date(2026, 3, 10))
        assert day.inflow_cents == 8990
        assert day.closing_balance_cents == 8990

    def test_sold_on_uses_shop_timezone(self, client, owner_headers, cash_method, product_a):
        # 01:30 UTC is still the previous evening in São Paulo
        resp = _sell(
            client, owner_headers,
            payment_method_id=cash_method.id,
            sold_at="2026-03-11T01:30:00Z",
            items=[{"product_id": product_a.id, "quantity": 1}],
        )
        assert resp.json["sold_on"] == "2026-03-10"

    def test_price_override_and_manual_item(self, client, owner_headers, cash_method, product_stack):
        resp = _sell(
            client, owner_headers,
            payment_method_id=cash_method.id,
            items=[
                {"product_id": product_stack.id, "quantity": 2, "unit_price_cents": 2000},
                {"manual_description": "Sacola ecológica", "quantity": 1, "unit_price_cents": 500},
            ],
        )
        assert resp.status_code == 201
        assert resp.json["total_cents"] == 4500
        assert db.session.get(Product, product_stack.id).quantity == 3

    def test_customer_name_in_cash_description(self, client, owner_headers, shop_a, cash_method, product_a):
        customer = customer_service.create_customer(shop_id=shop_a.id, patch={"name": "Joana Silva"})
        resp = _sell(
            client, owner_headers,
            customer_id=customer.id,
            payment_method_id=cash_method.id,
            items=[{"product_id": product_a.id}],
        )
        movement = db.session.query(CashMovement).filter_by(sale_id=resp.json["id"]).one()
        assert movement.description.endswith("Cliente: Joana Silva")

    def test_zero_total_creates_no_money(self, client, owner_headers, cash_method):
        resp = _sell(
            client, owner_headers,
            payment_method_id=cash_method.id,
            items=[{"manual_description": "Brinde", "quantity": 1, "unit_price_cents": 0}],
        )
        assert resp.status_code == 201
        assert db.session.query(Revenue).filter_by(sale_id=resp.json["id"]).count() == 0
        assert db.session.query(CashMovement).filter_by(sale_id=resp.json["id"]).count() == 0

    def test_zero_total_on_credit_is_settled(self, client, owner_headers, credit_method):
        resp = _sell(
            client, owner_headers,
            payment_method_id=credit_method.id,
            installment_count=3,
            items=[{"manual_description": "Brinde", "quantity": 1, "unit_price_cents": 0}],
        )
        assert resp.status_code == 201
        assert resp.json["status"] == "PAID"
        assert resp.json["installments"] == []
        assert resp.json["installment_count"] is None
        assert db.session.query(Installment).filter_by(sale_id=resp.json["id"]).count() == 0

    def test_more_installments_than_cents(self, client, owner_headers, credit_method):
        resp = _sell(
            client, owner_headers,
            payment_method_id=credit_method.id,
            installment_count=3,
            items=[{"manual_description": "Botão avulso", "quantity": 1, "unit_price_cents": 2}],
        )
        assert resp.status_code == 400
        assert db.session.query(Sale).count() == 0
        assert db.session.query(Installment).count() == 0

    def test_seller_role_can_sell(self, client, seller_headers, cash_method, product_a):
        resp = _sell(
            client, seller_headers,
            payment_method_id=cash_method.id,
            items=[{"product_id": product_a.id}],
        )
        assert resp.status_code == 201


# =============================================================================
# REJECTED SALES
# =============================================================================


class TestRejectedSale:
    """Invalid sales are rejected atomically."""

    def test_insufficient_stock_is_atomic(self, client, owner_headers, shop_a, cash_method, product_a, product_stack):
        resp = _sell(
            client, owner_headers,
            payment_method_id=cash_method.id,
            items=[
                {"product_id": product_stack.id, "quantity": 2},
                {"product_id": product_a.id, "quantity": 2},
            ],
        )
        assert resp.status_code == 400
        problem = resp.json["details"]["items"][0]
        assert problem["product_id"] == product_a.id
        assert problem["available_quantity"] == 1
        assert problem["error"] == "Insufficient stock"

        assert db.session.get(Product, product_stack.id).quantity == 5
        assert db.session.query(Sale).filter_by(shop_id=shop_a.id).count() == 0
        assert db.session.query(Revenue).filter_by(shop_id=shop_a.id).count() == 0
        assert db.session.query(CashMovement).filter_by(shop_id=shop_a.id).count() == 0

    def test_same_product_on_two_lines_counts_together(self, client, owner_headers, cash_method, product_a):
        resp = _sell(
            client, owner_headers,
            payment_method_id=cash_method.id,
            items=[{"product_id": product_a.id}, {"product_id": product_a.id}],
        )
        assert resp.status_code == 400
        assert resp.json["details"]["items"][0]["requested_quantity"] == 2

    def test_reserved_product_cannot_be_sold(self, client, owner_headers, cash_method, product_a):
        client.post(f"/api/products/{product_a.id}/reserve", json={"quantity": 1}, headers=owner_headers)
        resp = _sell(
            client, owner_headers,
            payment_method_id=cash_method.id,
            items=[{"product_id": product_a.id}],
        )
        assert resp.status_code == 400
        assert resp.json["details"]["items"][0]["error"] == "Product is RESERVED"

    def test_total_mismatch(self, client, owner_headers, cash_method, product_a):
        resp = _sell(
            client, owner_headers,
            payment_method_id=cash_method.id,
            total_cents=1000,
            items=[{"product_id": product_a.id}],
        )
        assert resp.status_code == 400
        assert resp.json["details"]["computed_total_cents"] == 8990

    @pytest.mark.parametrize(
        "items",
        [
            [],
            [{"quantity": 1}],
            [{"manual_description": "Sacola", "quantity": 1}],
            [{"manual_description": "Sacola", "quantity": 0, "unit_price_cents": 100}],
            [{"manual_description": "Sacola", "quantity": 1, "unit_price_cents": -5}],
        ],
    )
    def test_invalid_items(self, client, owner_headers, cash_method, items):
        resp = _sell(client, owner_headers, payment_method_id=cash_method.id, items=items)
        assert resp.status_code == 400

    def test_payment_method_required(self, client, owner_headers, product_a):
        resp = _sell(client, owner_headers, items=[{"product_id": product_a.id}])
        assert resp.status_code == 400
        assert resp.json["error"] == "payment_method_id is required"

    def test_inactive_seller_rejected(self, client, owner_headers, shop_a, cash_method, product_a):
        seller = seller_service.create_seller(shop_id=shop_a.id, patch={"name": "Rita", "status": "INACTIVE"})
        resp = _sell(
            client, owner_headers,
            seller_id=seller.id,
            payment_method_id=cash_method.id,
            items=[{"product_id": product_a.id}],
        )
        assert resp.status_code == 400
        assert db.session.get(Product, product_a.id).quantity == 1


# =============================================================================
# INSTALLMENTS
# =============================================================================


class TestInstallments:
    """Store credit (crediário) sales."""

    def test_split_remainder_on_first(self):
        assert _split_installments(10000, 3) == [3334, 3333, 3333]
        assert _split_installments(9000, 3) == [3000, 3000, 3000]

    def test_deferred_sale(self, client, owner_headers, shop_a, credit_method, product_stack):
        resp = _sell(
            client, owner_headers,
            payment_method_id=credit_method.id,
            sold_at="2026-03-10T15:00:00Z",
            installment_count=3,
            first_due_date="2026-04-10",
            items=[{"product_id": product_stack.id, "quantity": 4}],
        )
        assert resp.status_code == 201
        sale = resp.json
        assert sale["status"] == "PENDING"
        assert [i["amount_cents"] for i in sale["installments"]] == [3334, 3333, 3333]
        assert [i["due_date"] for i in sale["installments"]] == ["2026-04-10", "2026-05-10", "2026-06-10"]
        assert all(i["status"] == "AWAITING" for i in sale["installments"])

        # revenue is recognised at the sale, cash only when installments are paid
        assert db.session.query(Revenue).filter_by(sale_id=sale["id"]).count() == 1
        assert db.session.query(CashMovement).filter_by(shop_id=shop_a.id).count() == 0

    def test_first_due_date_defaults_to_next_month(self, client, owner_headers, credit_method, product_a):
        resp = _sell(
            client, owner_headers,
            payment_method_id=credit_method.id,
            sold_at="2026-01-31T15:00:00Z",
            items=[{"product_id": product_a.id}],
        )
        assert resp.json["installment_count"] == 1
        assert resp.json["installments"][0]["due_date"] == "2026-02-28"

    def test_too_many_installments(self, client, owner_headers, credit_method, product_a):
        resp = _sell(
            client, owner_headers,
            payment_method_id=credit_method.id,
            installment_count=25,
            items=[{"product_id": product_a.id}],
        )
        assert resp.status_code == 400

    def test_paying_installments(self, client, owner_headers, shop_a, credit_method, product_stack):
        sale = _sell(
            client, owner_headers,
            payment_method_id=credit_method.id,
            installment_count=2,
            first_due_date="2026-04-10",
            items=[{"product_id": product_stack.id, "quantity": 2}],
        ).json
        first, second = sale["installments"]

        resp = client.post(
            f"/api/sales/installments/{first['id']}/status",
            json={"status": "PAID", "paid_on": "2026-04-09"},
            headers=owner_headers,
        )
        assert resp.status_code == 200
        assert resp.json["paid_on"] == "2026-04-09"
        assert _cash_day(shop_a.id, date(2026, 4, 9)).inflow_cents == 2500
        assert db.session.get(Sale, sale["id"]).status == "PENDING"

        client.post(
            f"/api/sales/installments/{second['id']}/status",
            json={"status": "PAID", "paid_on": "2026-05-10"},
            headers=owner_headers,
        )
        assert db.session.get(Sale, sale["id"]).status == "PAID"
        assert _cash_day(shop_a.id, date(2026, 5, 10)).closing_balance_cents == 5000

    def test_reverting_payment_removes_cash(self, client, owner_headers, shop_a, credit_method, product_a):
        sale = _sell(
            client, owner_headers,
            payment_method_id=credit_method.id,
            items=[{"product_id": product_a.id}],
        ).json
        installment_id = sale["installments"][0]["id"]
        path = f"/api/sales/installments/{installment_id}/status"

        client.post(path, json={"status": "PAID", "paid_on": "2026-04-01"}, headers=owner_headers)
        assert db.session.get(Sale, sale["id"]).status == "PAID"

        resp = client.post(path, json={"status": "AWAITING"}, headers=owner_headers)
        assert resp.status_code == 200
        assert resp.json["paid_on"] is None
        assert db.session.query(CashMovement).filter_by(installment_id=installment_id).count() == 0
        assert _cash_day(shop_a.id, date(2026, 4, 1)).closing_balance_cents == 0
        assert db.session.get(Sale, sale["id"]).status == "PENDING"

    def test_bad_status(self, client, owner_headers, credit_method, product_a):
        sale = _sell(
            client, owner_headers,
            payment_method_id=credit_method.id,
            items=[{"product_id": product_a.id}],
        ).json
        resp = client.post(
            f"/api/sales/installments/{sale['installments'][0]['id']}/status",
            json={"status": "LATE"},
            headers=owner_headers,
        )
        assert resp.status_code == 400


# =============================================================================
# CANCELLATION
# =============================================================================


class TestCancellation:
    """Cancelling a sale reverses its effects."""

    def test_cancel_reverses_everything(self, client, owner_headers, shop_a, cash_method, product_a):
        customer = customer_service.create_customer(shop_id=shop_a.id, patch={"name": "Joana Silva"})
        sale = _sell(
            client, owner_headers,
            customer_id=customer.id,
            payment_method_id=cash_method.id,
            sold_at="2026-03-10T15:00:00Z",
            items=[{"product_id": product_a.id}],
        ).json

        resp = client.post(
            f"/api/sales/{sale['id']}/cancel",
            json={"reason": "Cliente desistiu"},
            headers=owner_headers,
        )
        assert resp.status_code == 200
        assert resp.json["status"] == "CANCELLED"
        assert resp.json["cancel_reason"] == "Cliente desistiu"

        product = db.session.get(Product, product_a.id)
        assert product.quantity == 1
        assert product.status == "AVAILABLE"
        assert db.session.query(Revenue).filter_by(sale_id=sale["id"]).count() == 0
        assert db.session.query(CashMovement).filter_by(sale_id=sale["id"]).count() == 0
        assert _cash_day(shop_a.id, date(2026, 3, 10)).closing_balance_cents == 0

        account = customer_service.get_points_account(shop_id=shop_a.id, customer_id=customer.id)
        assert account.points_balance == 0

    def test_cancel_keeps_redeemed_points(self, client, owner_headers, shop_a, cash_method, product_a):
        customer = customer_service.create_customer(shop_id=shop_a.id, patch={"name": "Joana Silva"})
        sale = _sell(
            client, owner_headers,
            customer_id=customer.id,
            payment_method_id=cash_method.id,
            items=[{"product_id": product_a.id}],
        ).json
        redemption = customer_service.request_redemption(
            shop_id=shop_a.id, customer_id=customer.id, points=80, reward_description="Desconto"
        )
        customer_service.approve_redemption(shop_id=shop_a.id, redemption_id=redemption.id)

        client.post(f"/api/sales/{sale['id']}/cancel", headers=owner_headers)

        account = customer_service.get_points_account(shop_id=shop_a.id, customer_id=customer.id)
        assert account.points_balance == 0
        assert account.lifetime_points_redeemed == 80

    def test_cancel_installment_sale(self, client, owner_headers, shop_a, credit_method, product_a):
        sale = _sell(
            client, owner_headers,
            payment_method_id=credit_method.id,
            installment_count=2,
            items=[{"product_id": product_a.id}],
        ).json
        client.post(
            f"/api/sales/installments/{sale['installments'][0]['id']}/status",
            json={"status": "PAID", "paid_on": "2026-04-01"},
            headers=owner_headers,
        )

        resp = client.post(f"/api/sales/{sale['id']}/cancel", headers=owner_headers)
        assert {i["status"] for i in resp.json["installments"]} == {"CANCELLED"}
        assert db.session.query(CashMovement).filter_by(shop_id=shop_a.id).count() == 0

    def test_cancel_twice_conflicts(self, client, owner_headers, cash_method, product_a):
        sale = _sell(client, owner_headers, payment_method_id=cash_method.id, items=[{"product_id": product_a.id}]).json
        client.post(f"/api/sales/{sale['id']}/cancel", headers=owner_headers)
        resp = client.post(f"/api/sales/{sale['id']}/cancel", headers=owner_headers)
        assert resp.status_code == 409

    def test_delete_requires_cancel(self, client, owner_headers, cash_method, product_a):
        sale = _sell(client, owner_headers, payment_method_id=cash_method.id, items=[{"product_id": product_a.id}]).json
        assert client.delete(f"/api/sales/{sale['id']}", headers=owner_headers).status_code == 409

        client.post(f"/api/sales/{sale['id']}/cancel", headers=owner_headers)
        assert client.delete(f"/api/sales/{sale['id']}", headers=owner_headers).status_code == 200
        assert client.get(f"/api/sales/{sale['id']}", headers=owner_headers).status_code == 404

    def test_seller_cannot_cancel(self, client, seller_headers, cash_method, product_a):
        sale = _sell(client, seller_headers, payment_method_id=cash_method.id, items=[{"product_id": product_a.id}]).json
        resp = client.post(f"/api/sales/{sale['id']}/cancel", headers=seller_headers)
        assert resp.status_code == 403


# =============================================================================
# LISTING AND EDITS
# =============================================================================


class TestSaleQueries:
    """Listing filters and descriptive edits."""

    def test_filter_by_period_and_status(self, client, owner_headers, cash_method, credit_method, product_stack):
        _sell(
            client, owner_headers,
            payment_method_id=cash_method.id,
            sold_at="2026-03-10T15:00:00Z",
            items=[{"product_id": product_stack.id}],
        )
        _sell(
            client, owner_headers,
            payment_method_id=credit_method.id,
            sold_at="2026-04-10T15:00:00Z",
            items=[{"product_id": product_stack.id}],
        )

        march = client.get("/api/sales?start=2026-03-01&end=2026-03-31", headers=owner_headers)
        assert march.json["count"] == 1
        pending = client.get("/api/sales?status=pending", headers=owner_headers)
        assert pending.json["count"] == 1
        assert pending.json["items"][0]["sold_on"] == "2026-04-10"

    def test_only_descriptive_fields_editable(self, client, owner_headers, cash_method, product_a):
        sale = _sell(client, owner_headers, payment_method_id=cash_method.id, items=[{"product_id": product_a.id}]).json

        ok = client.put(f"/api/sales/{sale['id']}", json={"notes": "Embrulhar"}, headers=owner_headers)
        assert ok.status_code == 200
        assert ok.json["notes"] == "Embrulhar"

        resp = client.put(f"/api/sales/{sale['id']}", json={"total_cents": 1}, headers=owner_headers)
        assert resp.status_code == 400

    @pytest.mark.parametrize(
        "body",
        [[1], {"notes": {"texto": "Embrulhar"}}, {"notes": 12}, {"customer_id": "1"}, {"seller_id": True}],
    )
    def test_update_rejects_malformed_body(self, client, owner_headers, cash_method, product_a, body):
        sale = _sell(client, owner_headers, payment_method_id=cash_method.id, items=[{"product_id": product_a.id}]).json

        resp = client.put(f"/api/sales/{sale['id']}", json=body, headers=owner_headers)
        assert resp.status_code == 400
        assert db.session.get(Sale, sale["id"]).notes is None
