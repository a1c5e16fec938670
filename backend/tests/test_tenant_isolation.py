"""
Tenant isolation tests.

Verifies:
- Every query is scoped to the caller's shop
- Ids of another shop behave exactly like ids that do not exist
- Per-shop uniqueness (SKU, username) does not leak across shops
- Deactivating a shop ends its sessions
"""

import pytest

from brecho.extensions import db
from brecho.models import Category, Product, SecurityEvent
from brecho.services import auth_service, category_service, product_service, session_service
from brecho.services.tenant_service import require_reference
from brecho.validation import ValidationError

from conftest import PASSWORD


# =============================================================================
# TENANT SERVICE HELPERS
# =============================================================================


class TestTenantServiceHelpers:
    """require_reference only resolves rows of the given shop."""

    def test_reference_in_same_shop(self, db_session, shop_a):
        category = category_service.create_category(shop_id=shop_a.id, patch={"name": "Roupas"})
        assert require_reference(Category, category.id, shop_a.id, "category_id").id == category.id

    def test_reference_cross_tenant(self, db_session, shop_a, shop_b):
        category = category_service.create_category(shop_id=shop_b.id, patch={"name": "Roupas"})
        with pytest.raises(ValidationError, match="category_id not found"):
            require_reference(Category, category.id, shop_a.id, "category_id")

    def test_reference_nonexistent(self, db_session, shop_a):
        with pytest.raises(ValidationError, match="category_id not found"):
            require_reference(Category, 99999, shop_a.id, "category_id")

    def test_blank_reference_allowed(self, db_session, shop_a):
        assert require_reference(Category, None, shop_a.id, "category_id") is None


# =============================================================================
# SESSION TENANT CONTEXT
# =============================================================================


class TestSessionTenantContext:
    """Sessions carry the user's shop."""

    def test_session_captures_shop_id(self, db_session, owner_a, shop_a):
        session, _ = session_service.create_session(user_id=owner_a.id)
        assert session.shop_id == shop_a.id

    def test_validate_session_returns_shop_context(self, db_session, owner_a, shop_a):
        _, token = session_service.create_session(user_id=owner_a.id)
        context = session_service.validate_session(token)
        assert context is not None
        assert context.shop_id == shop_a.id
        assert context.user.id == owner_a.id

    def test_session_invalid_when_shop_deactivated(self, db_session, owner_a, shop_a):
        _, token = session_service.create_session(user_id=owner_a.id)
        shop_a.is_active = False
        db.session.commit()

        assert session_service.validate_session(token) is None


# =============================================================================
# PRODUCT ISOLATION
# =============================================================================


class TestProductTenantIsolation:
    """Products of one shop are invisible to the other."""

    def test_list_only_own_products(self, client, owner_headers, product_a, product_b):
        resp = client.get("/api/products", headers=owner_headers)
        assert resp.status_code == 200
        ids = {row["id"] for row in resp.json["items"]}
        assert ids == {product_a.id}

    def test_cross_tenant_read_is_404(self, client, owner_headers, product_b):
        resp = client.get(f"/api/products/{product_b.id}", headers=owner_headers)
        assert resp.status_code == 404

    def test_cross_tenant_update_is_404(self, client, owner_headers, product_b):
        resp = client.put(
            f"/api/products/{product_b.id}",
            json={"name": "Hijacked"},
            headers=owner_headers,
        )
        assert resp.status_code == 404
        assert db.session.get(Product, product_b.id).name == "Vestido floral"

    def test_sku_unique_per_shop_not_global(self, db_session, shop_a, shop_b, product_b):
        same_sku = product_service.create_product(
            shop_id=shop_a.id,
            patch={"name": "Outro vestido", "sku": product_b.sku, "sale_price_cents": 1000},
        )
        assert same_sku.sku == product_b.sku

    def test_foreign_category_rejected(self, client, owner_headers, shop_b):
        category = category_service.create_category(shop_id=shop_b.id, patch={"name": "Calçados"})
        resp = client.post(
            "/api/products",
            json={"name": "Sapato", "sale_price_cents": 5000, "category_id": category.id},
            headers=owner_headers,
        )
        assert resp.status_code == 400
        assert resp.json["error"] == "category_id not found"


# =============================================================================
# SALES ACROSS SHOPS
# =============================================================================


class TestSaleTenantIsolation:
    """A sale can only reference rows of the seller's own shop."""

    def test_foreign_product_cannot_be_sold(self, client, owner_headers, cash_method, product_b):
        resp = client.post(
            "/api/sales",
            json={
                "payment_method_id": cash_method.id,
                "items": [{"product_id": product_b.id, "quantity": 1}],
            },
            headers=owner_headers,
        )
        assert resp.status_code == 400
        assert resp.json["details"]["items"][0]["error"] == "Product not found"
        assert db.session.get(Product, product_b.id).quantity == 1

    def test_foreign_payment_method_rejected(self, client, owner_b_headers, cash_method, product_b):
        resp = client.post(
            "/api/sales",
            json={
                "payment_method_id": cash_method.id,
                "items": [{"product_id": product_b.id, "quantity": 1}],
            },
            headers=owner_b_headers,
        )
        assert resp.status_code == 400
        assert resp.json["error"] == "payment_method_id not found"


# =============================================================================
# USER ISOLATION
# =============================================================================


class TestUserTenantIsolation:
    """Usernames are unique per shop only."""

    def test_same_username_different_shops(self, db_session, shop_a, shop_b):
        user_a = auth_service.create_user(
            shop_id=shop_a.id, username="maria", email="maria@a.com", password=PASSWORD
        )
        user_b = auth_service.create_user(
            shop_id=shop_b.id, username="maria", email="maria@b.com", password=PASSWORD
        )
        assert user_a.shop_id != user_b.shop_id

    def test_login_disambiguated_by_shop(self, client, shop_a, shop_b):
        auth_service.create_user(shop_id=shop_a.id, username="maria", email="maria@a.com", password=PASSWORD)
        auth_service.create_user(shop_id=shop_b.id, username="maria", email="maria@b.com", password=PASSWORD)

        resp = client.post(
            "/api/auth/login",
            json={"username": "maria", "password": PASSWORD, "shop_id": shop_b.id},
        )
        assert resp.status_code == 200
        assert resp.json["shop_id"] == shop_b.id

    def test_user_list_scoped(self, client, owner_headers, owner_b):
        resp = client.get("/api/auth/users", headers=owner_headers)
        usernames = {row["username"] for row in resp.json["items"]}
        assert "owner_b" not in usernames


# =============================================================================
# SECURITY EVENT SCOPING
# =============================================================================


class TestSecurityEventTenantScoping:
    """Security events carry the shop of the request."""

    def test_denied_events_filtered_by_shop(self, client, seller_headers, shop_a, shop_b):
        client.get("/api/ledger", headers=seller_headers)

        assert db.session.query(SecurityEvent).filter_by(shop_id=shop_a.id).count() == 1
        assert db.session.query(SecurityEvent).filter_by(shop_id=shop_b.id).count() == 0
