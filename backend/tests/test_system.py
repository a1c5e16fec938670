"""
System surface: health/version, leads, the audit ledger and CLI commands.
"""

import pytest

from brecho.extensions import db
from brecho.models import Lead, Shop, User
from brecho.services import permission_service


LEAD = {
    "shop_name": "Brechó Vintage Sul",
    "email": "contato@vintagesul.com",
    "phone": "(51) 99876-5432",
    "contact_name": "Lúcia",
    "city": "Porto Alegre",
}


# =============================================================================
# HEALTH / VERSION
# =============================================================================


class TestSystemEndpoints:
    """Public operational endpoints."""

    def test_health(self, client, shop_a):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json["status"] == "healthy"
        assert resp.json["checks"]["database"]["details"]["shops"] == 1

    def test_version(self, client):
        resp = client.get("/version")
        assert resp.status_code == 200
        assert resp.json["name"] == "brecho-manager"
        assert "version" in resp.json


# =============================================================================
# LEADS
# =============================================================================


class TestLeads:
    """Public interest form."""

    def test_submit_is_public(self, client, db_session):
        resp = client.post("/api/leads", json=LEAD)
        assert resp.status_code == 201
        lead = db.session.get(Lead, resp.json["id"])
        assert lead.city == "Porto Alegre"

    def test_duplicate_email_conflicts(self, client, db_session):
        client.post("/api/leads", json=LEAD)
        resp = client.post("/api/leads", json={**LEAD, "email": "CONTATO@vintagesul.com"})
        assert resp.status_code == 409

    @pytest.mark.parametrize(
        "change",
        [
            {"email": None},
            {"email": "contato@"},
            {"shop_name": "  "},
            {"shop_name": "x" * 121},
            {"phone": None},
            {"phone": "51 9"},
            {"city": 123},
        ],
    )
    def test_invalid_submissions(self, client, db_session, change):
        resp = client.post("/api/leads", json={**LEAD, **change})
        assert resp.status_code == 400
        assert db.session.query(Lead).count() == 0

    def test_list_requires_view_leads(self, client, owner_headers, manager_headers, owner_b_headers):
        client.post("/api/leads", json=LEAD)

        resp = client.get("/api/leads", headers=owner_headers)
        assert resp.status_code == 200
        assert resp.json["items"][0]["email"] == "contato@vintagesul.com"

        # leads belong to the platform, not to a shop
        assert client.get("/api/leads", headers=owner_b_headers).json["count"] == 1
        assert client.get("/api/leads", headers=manager_headers).status_code == 403


# =============================================================================
# LEDGER
# =============================================================================


class TestLedger:
    """Audit trail queries."""

    def test_filter_by_entity(self, client, owner_headers, product_a):
        client.post(f"/api/products/{product_a.id}/quantity", json={"quantity": 3}, headers=owner_headers)

        resp = client.get(
            f"/api/ledger?entity_type=product&entity_id={product_a.id}", headers=owner_headers
        )
        assert resp.status_code == 200
        event_types = [row["event_type"] for row in resp.json["items"]]
        assert event_types[0] == "product.quantity_changed"
        assert "product.created" in event_types

        only = client.get("/api/ledger?event_type=product.quantity_changed", headers=owner_headers)
        assert only.json["count"] == 1

    def test_as_of(self, client, owner_headers, product_a):
        early = client.get("/api/ledger?as_of=2000-01-01T00:00:00Z", headers=owner_headers)
        assert early.json["count"] == 0

        bad = client.get("/api/ledger?as_of=ontem", headers=owner_headers)
        assert bad.status_code == 400

    def test_scoped_to_shop(self, client, owner_b_headers, product_a):
        resp = client.get("/api/ledger?entity_type=product", headers=owner_b_headers)
        assert resp.json["count"] == 0

    def test_manager_cannot_read(self, client, manager_headers):
        assert client.get("/api/ledger", headers=manager_headers).status_code == 403


# =============================================================================
# CLI
# =============================================================================


class TestCli:
    """Flask CLI command groups."""

    @pytest.fixture
    def runner(self, app):
        return app.test_cli_runner()

    def test_system_init_is_idempotent(self, runner, db_session):
        first = runner.invoke(args=["system", "init"])
        assert first.exit_code == 0
        assert "PASS" in first.output

        second = runner.invoke(args=["system", "init"])
        assert second.exit_code == 0
        assert "Created 0 permissions, 0 role assignments" in second.output

    def test_shops_create_and_list(self, runner, db_session):
        result = runner.invoke(args=[
            "shops", "create",
            "--name", "Brechó Nova Era",
            "--username", "novaera",
            "--email", "dona@novaera.com",
            "--password", "Password123!",
        ])
        assert result.exit_code == 0, result.output
        assert "PASS Created shop: Brechó Nova Era" in result.output
        assert db.session.query(Shop).filter_by(name="Brechó Nova Era").count() == 1

        listed = runner.invoke(args=["shops", "list"])
        assert "Brechó Nova Era" in listed.output

    def test_shops_create_weak_password(self, runner, db_session):
        result = runner.invoke(args=[
            "shops", "create",
            "--name", "Brechó Nova Era",
            "--username", "novaera",
            "--email", "dona@novaera.com",
            "--password", "fraca",
        ])
        assert result.exit_code != 0
        assert db.session.query(Shop).count() == 0

    def test_users_create(self, runner, shop_a):
        result = runner.invoke(args=[
            "users", "create",
            "--shop-id", str(shop_a.id),
            "--username", "caixa01",
            "--email", "caixa01@brecho-a.com",
            "--password", "Password123!",
            "--role", "seller",
        ])
        assert result.exit_code == 0, result.output
        user = db.session.query(User).filter_by(username="caixa01").one()
        assert permission_service.get_user_role_names(user.id) == ["seller"]

        listed = runner.invoke(args=["users", "list", "--shop-id", str(shop_a.id)])
        assert "caixa01" in listed.output

    def test_users_create_unknown_shop(self, runner, db_session):
        result = runner.invoke(args=[
            "users", "create",
            "--shop-id", "9999",
            "--username", "caixa01",
            "--email", "caixa01@brecho-a.com",
            "--password", "Password123!",
        ])
        assert result.exit_code != 0
        assert "Shop not found" in result.output

    def test_scheduled_jobs(self, runner, shop_a, product_a):
        recurring = runner.invoke(args=["recurring", "process", "--shop-id", str(shop_a.id)])
        assert f"Shop {shop_a.id}: 0 revenues, 0 expenses created" in recurring.output

        alerts = runner.invoke(args=["alerts", "check"])
        assert "1 low stock" in alerts.output

    def test_cleanup_sessions(self, runner, db_session):
        result = runner.invoke(args=["maintenance", "cleanup-sessions", "--retention-days", "7"])
        assert result.exit_code == 0
        assert "Deleted 0 sessions older than 7 days." in result.output
