"""
Financial goals and in-app alerts.

Verifies:
- Status follows the latest progress reading and the end date
- Reaching a target raises one GOAL_ACHIEVED alert
- The alert sweep deduplicates unread alerts per subject
"""

from datetime import date

import pytest

from brecho.extensions import db
from brecho.models import Alert, Goal
from brecho.services import goal_service, product_service


FUTURE = {"start_date": "2099-01-01", "end_date": "2099-12-31"}


def _alerts(shop_id, alert_type):
    return db.session.query(Alert).filter_by(shop_id=shop_id, alert_type=alert_type).all()


def _march_goal(shop_id, name="Faturamento de março", end=date(2026, 3, 31)):
    return goal_service.create_goal(
        shop_id=shop_id,
        patch={
            "name": name,
            "target_cents": 100000,
            "start_date": date(2026, 3, 1),
            "end_date": end,
        },
        today=date(2026, 3, 1),
    )


# =============================================================================
# GOALS
# =============================================================================


class TestGoals:
    """Goal CRUD and progress."""

    def test_create_defaults(self, client, owner_headers):
        resp = client.post(
            "/api/goals",
            json={"name": "Reserva de emergência", "target_cents": 500000, "goal_type": "SAVINGS", **FUTURE},
            headers=owner_headers,
        )
        assert resp.status_code == 201
        assert resp.json["status"] == "IN_PROGRESS"
        assert resp.json["current_cents"] == 0
        assert resp.json["percent_complete"] == 0.0
        assert resp.json["period"] == "MONTHLY"
        assert resp.json["days_remaining"] > 0

    @pytest.mark.parametrize(
        "payload",
        [
            {"name": "Meta", "target_cents": 1000, "start_date": "2099-02-01", "end_date": "2099-01-01"},
            {"name": "Meta", "target_cents": 1000, "goal_type": "VANITY", **FUTURE},
            {"name": "Meta", "target_cents": 0, **FUTURE},
            {"name": "Me", "target_cents": 1000, **FUTURE},
            {"name": "Meta", **FUTURE},
        ],
    )
    def test_invalid_goals(self, client, owner_headers, payload):
        resp = client.post("/api/goals", json=payload, headers=owner_headers)
        assert resp.status_code == 400

    def test_progress_updates_status_and_alerts_once(self, client, owner_headers, shop_a):
        goal_id = client.post(
            "/api/goals",
            json={"name": "Vendas do ano", "target_cents": 100000, **FUTURE},
            headers=owner_headers,
        ).json["id"]

        half = client.post(f"/api/goals/{goal_id}/progress", json={"value_cents": 50000}, headers=owner_headers)
        assert half.status_code == 201
        assert half.json["goal"]["percent_complete"] == 50.0
        assert half.json["goal"]["status"] == "IN_PROGRESS"

        over = client.post(f"/api/goals/{goal_id}/progress", json={"value_cents": 120000}, headers=owner_headers)
        assert over.json["goal"]["status"] == "ACHIEVED"
        assert over.json["goal"]["percent_complete"] == 100.0

        client.post(f"/api/goals/{goal_id}/progress", json={"value_cents": 130000}, headers=owner_headers)
        assert len(_alerts(shop_a.id, "GOAL_ACHIEVED")) == 1

        history = client.get(f"/api/goals/{goal_id}/progress", headers=owner_headers)
        assert [row["value_cents"] for row in history.json["items"]] == [50000, 120000, 130000]

    def test_negative_progress_rejected(self, client, owner_headers, shop_a):
        goal = _march_goal(shop_a.id)
        resp = client.post(f"/api/goals/{goal.id}/progress", json={"value_cents": -1}, headers=owner_headers)
        assert resp.status_code == 400

    def test_past_goal_not_achieved(self, shop_a):
        goal = goal_service.create_goal(
            shop_id=shop_a.id,
            patch={
                "name": "Fevereiro",
                "target_cents": 100000,
                "start_date": date(2026, 2, 1),
                "end_date": date(2026, 2, 28),
            },
            today=date(2026, 3, 5),
        )
        assert goal.status == "NOT_ACHIEVED"

    def test_update_rejects_inverted_dates(self, client, owner_headers, shop_a):
        goal = _march_goal(shop_a.id)
        resp = client.put(f"/api/goals/{goal.id}", json={"end_date": "2026-02-01"}, headers=owner_headers)
        assert resp.status_code == 400

    def test_delete_removes_progress_and_alerts(self, client, owner_headers, shop_a):
        goal = _march_goal(shop_a.id)
        goal_service.add_progress(shop_id=shop_a.id, goal_id=goal.id, value_cents=100000, today=date(2026, 3, 10))
        assert len(_alerts(shop_a.id, "GOAL_ACHIEVED")) == 1

        resp = client.delete(f"/api/goals/{goal.id}", headers=owner_headers)
        assert resp.status_code == 200
        assert db.session.query(Goal).count() == 0
        assert _alerts(shop_a.id, "GOAL_ACHIEVED") == []

    def test_list_by_status(self, client, owner_headers, shop_a):
        _march_goal(shop_a.id)
        resp = client.get("/api/goals?status=in_progress", headers=owner_headers)
        assert resp.json["count"] == 1

    def test_seller_cannot_see_goals(self, client, seller_headers):
        assert client.get("/api/goals", headers=seller_headers).status_code == 403


# =============================================================================
# ALERT SWEEP
# =============================================================================


class TestCheckAlerts:
    """Deadline, overdue and low-stock checks."""

    def test_deadline_alert_deduplicated(self, shop_a):
        goal = _march_goal(shop_a.id)

        result = goal_service.check_alerts(shop_id=shop_a.id, today=date(2026, 3, 27))
        assert result["goal_deadline"] == 1
        [alert] = _alerts(shop_a.id, "GOAL_DEADLINE")
        assert alert.goal_id == goal.id
        assert "termina em 4 dia(s)" in alert.message

        again = goal_service.check_alerts(shop_id=shop_a.id, today=date(2026, 3, 28))
        assert again["goal_deadline"] == 0

    def test_outside_horizon_no_alert(self, shop_a):
        _march_goal(shop_a.id)
        result = goal_service.check_alerts(shop_id=shop_a.id, today=date(2026, 3, 10))
        assert result["goal_deadline"] == 0

    def test_overdue_goal_closed(self, shop_a):
        goal = _march_goal(shop_a.id, end=date(2026, 3, 20))
        result = goal_service.check_alerts(shop_id=shop_a.id, today=date(2026, 3, 27))
        assert result["goals_not_achieved"] == 1
        assert db.session.get(Goal, goal.id).status == "NOT_ACHIEVED"

    def test_low_stock(self, shop_a, product_a, product_stack):
        result = goal_service.check_alerts(shop_id=shop_a.id, today=date(2026, 3, 10))
        assert result["low_stock"] == 1
        [alert] = _alerts(shop_a.id, "LOW_STOCK")
        assert alert.product_id == product_a.id

    def test_low_stock_skips_sold_and_inactive(self, shop_a, product_a, product_stack):
        product_service.set_quantity(shop_id=shop_a.id, product_id=product_a.id, quantity=0)
        product_service.reserve(shop_id=shop_a.id, product_id=product_stack.id, quantity=5)
        product_service.delete_product(shop_id=shop_a.id, product_id=product_stack.id)

        result = goal_service.check_alerts(shop_id=shop_a.id, today=date(2026, 3, 10))
        assert result["low_stock"] == 0

    def test_low_stock_disabled(self, shop_a, product_a):
        goal_service.update_alert_config(shop_id=shop_a.id, patch={"notify_low_stock": False})
        result = goal_service.check_alerts(shop_id=shop_a.id, today=date(2026, 3, 10))
        assert result["low_stock"] == 0


# =============================================================================
# ALERTS API
# =============================================================================


class TestAlertsApi:
    """Reading alerts and preferences."""

    def test_read_one_and_all(self, client, owner_headers, shop_a, product_a):
        _march_goal(shop_a.id)
        goal_service.check_alerts(shop_id=shop_a.id, today=date(2026, 3, 27))

        listed = client.get("/api/alerts", headers=owner_headers)
        assert listed.json["count"] == 2
        assert listed.json["unread"] == 2

        first_id = listed.json["items"][0]["id"]
        read = client.post(f"/api/alerts/{first_id}/read", headers=owner_headers)
        assert read.status_code == 200
        assert read.json["is_read"] is True
        assert read.json["read_at"] is not None

        assert client.get("/api/alerts", headers=owner_headers).json["count"] == 1

        resp = client.post("/api/alerts/read-all", headers=owner_headers)
        assert resp.json["updated"] == 1
        everything = client.get("/api/alerts?all=true", headers=owner_headers)
        assert everything.json["count"] == 2
        assert everything.json["unread"] == 0

    def test_unknown_alert(self, client, owner_headers):
        assert client.post("/api/alerts/9999/read", headers=owner_headers).status_code == 404

    def test_config_defaults_and_update(self, client, owner_headers):
        resp = client.get("/api/alerts/config", headers=owner_headers)
        assert resp.status_code == 200
        assert resp.json["goal_deadline_days"] == 7
        assert resp.json["low_stock_threshold"] == 1

        updated = client.put(
            "/api/alerts/config",
            json={"low_stock_threshold": 3, "notify_goal_achieved": False},
            headers=owner_headers,
        )
        assert updated.status_code == 200
        assert updated.json["low_stock_threshold"] == 3
        assert updated.json["notify_goal_achieved"] is False

    @pytest.mark.parametrize(
        "payload",
        [{"low_stock_threshold": -1}, {"goal_deadline_days": "7"}, {"notify_low_stock": "yes"}],
    )
    def test_config_rejects_bad_values(self, client, owner_headers, payload):
        resp = client.put("/api/alerts/config", json=payload, headers=owner_headers)
        assert resp.status_code == 400

    def test_check_route(self, client, owner_headers, product_a):
        resp = client.post("/api/alerts/check", headers=owner_headers)
        assert resp.status_code == 200
        assert resp.json["low_stock"] == 1
