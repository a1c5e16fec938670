"""
Authorization tests for the brecho back office.

Verifies:
- Unauthenticated requests return 401
- Seller role denied back-office operations (403)
- Owner and manager roles can perform privileged operations
- Sign-up, login, logout and password change flows
"""

import pytest

from brecho.extensions import db
from brecho.models import SecurityEvent
from brecho.services import session_service

from conftest import PASSWORD, auth_headers, get_auth_token


# =============================================================================
# UNAUTHENTICATED ACCESS — 401
# =============================================================================


class TestUnauthenticatedAccess:
    """All protected endpoints return 401 without a token."""

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/auth/validate"),
            ("GET", "/api/auth/users"),
            ("GET", "/api/products"),
            ("GET", "/api/categories"),
            ("GET", "/api/customers"),
            ("GET", "/api/suppliers"),
            ("GET", "/api/sellers"),
            ("GET", "/api/sales"),
            ("POST", "/api/sales"),
            ("GET", "/api/expenses"),
            ("GET", "/api/revenues"),
            ("GET", "/api/cash-flow/period"),
            ("GET", "/api/goals"),
            ("GET", "/api/alerts"),
            ("GET", "/api/commissions"),
            ("GET", "/api/reports/balance-sheet"),
            ("GET", "/api/dashboard"),
            ("GET", "/api/ledger"),
            ("POST", "/api/assistant/messages"),
            ("GET", "/api/leads"),
        ],
    )
    def test_requires_auth(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"

    def test_malformed_header_rejected(self, client, db_session):
        resp = client.get("/api/products", headers={"Authorization": "Token abc"})
        assert resp.status_code == 401

    def test_unknown_token_rejected(self, client, db_session):
        resp = client.get("/api/products", headers=auth_headers("not-a-real-token"))
        assert resp.status_code == 401
        assert resp.json["error"] == "Invalid or expired token"

    def test_public_endpoints_open(self, client, db_session):
        assert client.get("/health").status_code == 200
        resp = client.get("/version")
        assert resp.status_code == 200
        assert resp.json["name"] == "brecho-manager"


# =============================================================================
# SELLER DENIED BACK-OFFICE OPERATIONS — 403
# =============================================================================


class TestSellerDeniedBackOffice:
    """Seller role can sell but cannot touch finance, catalog edits or users."""

    @pytest.mark.parametrize(
        "method,path,body",
        [
            ("GET", "/api/auth/users", None),
            ("POST", "/api/auth/users", {"username": "x", "email": "x@x.com", "password": PASSWORD}),
            ("POST", "/api/products", {"name": "Bolsa", "sale_price_cents": 1000}),
            ("POST", "/api/categories", {"name": "Bolsas"}),
            ("GET", "/api/expenses", None),
            ("POST", "/api/expenses", {"description": "Aluguel", "amount_cents": 100000}),
            ("GET", "/api/cash-flow/period", None),
            ("GET", "/api/reports/balance-sheet", None),
            ("GET", "/api/dashboard", None),
            ("GET", "/api/commissions", None),
            ("GET", "/api/goals", None),
            ("GET", "/api/ledger", None),
            ("GET", "/api/leads", None),
            ("GET", "/api/suppliers", None),
        ],
    )
    def test_denied(self, client, seller_headers, method, path, body):
        kwargs = {"headers": seller_headers}
        if body is not None:
            kwargs["json"] = body
        resp = getattr(client, method.lower())(path, **kwargs)
        assert resp.status_code == 403, f"{method} {path} returned {resp.status_code}"
        assert resp.json["error"] == "Permission denied"

    def test_denial_logged_as_security_event(self, client, seller_headers, seller_user_a, shop_a):
        client.get("/api/expenses", headers=seller_headers)

        event = (
            db.session.query(SecurityEvent)
            .filter_by(user_id=seller_user_a.id, event_type="PERMISSION_DENIED")
            .first()
        )
        assert event is not None
        assert event.shop_id == shop_a.id
        assert event.success is False

    def test_seller_can_sell_and_browse(self, client, seller_headers, product_a):
        assert client.get("/api/products", headers=seller_headers).status_code == 200
        assert client.get("/api/sales", headers=seller_headers).status_code == 200
        assert client.get("/api/customers", headers=seller_headers).status_code == 200
        assert client.get("/api/payment-methods", headers=seller_headers).status_code == 200


# =============================================================================
# PRIVILEGED ROLES
# =============================================================================


class TestPrivilegedAccess:
    """Owner has everything; manager everything except user administration."""

    def test_owner_lists_users(self, client, owner_headers, seller_user_a):
        resp = client.get("/api/auth/users", headers=owner_headers)
        assert resp.status_code == 200
        usernames = {row["username"] for row in resp.json["items"]}
        assert usernames == {"owner_a", "seller_a"}

    def test_owner_creates_user(self, client, owner_headers):
        resp = client.post(
            "/api/auth/users",
            json={"username": "caixa", "email": "caixa@brecho-a.com", "password": PASSWORD, "role": "seller"},
            headers=owner_headers,
        )
        assert resp.status_code == 201
        assert resp.json["roles"] == ["seller"]

    def test_duplicate_username_conflicts(self, client, owner_headers, seller_user_a):
        resp = client.post(
            "/api/auth/users",
            json={"username": "seller_a", "email": "outro@brecho-a.com", "password": PASSWORD},
            headers=owner_headers,
        )
        assert resp.status_code == 409

    def test_manager_cannot_manage_users(self, client, manager_headers):
        resp = client.get("/api/auth/users", headers=manager_headers)
        assert resp.status_code == 403

    def test_manager_sees_finance(self, client, manager_headers):
        assert client.get("/api/expenses", headers=manager_headers).status_code == 200
        assert client.get("/api/reports/balance-sheet", headers=manager_headers).status_code == 200


# =============================================================================
# SIGN-UP AND SESSIONS
# =============================================================================


class TestRegisterAndLogin:
    """Shop sign-up and session lifecycle."""

    def test_register_creates_shop_and_logs_in(self, client, db_session):
        resp = client.post("/api/auth/register", json={
            "shop_name": "Brechó da Esquina",
            "username": "dona",
            "email": "dona@esquina.com",
            "password": PASSWORD,
        })
        assert resp.status_code == 201
        assert resp.json["roles"] == ["owner"]
        assert "MANAGE_USERS" in resp.json["permissions"]
        assert resp.json["shop"]["name"] == "Brechó da Esquina"

        token = resp.json["token"]
        methods = client.get("/api/payment-methods", headers=auth_headers(token))
        assert methods.status_code == 200
        names = {row["name"] for row in methods.json["items"]}
        assert {"Dinheiro", "PIX", "Crediário"} <= names

    @pytest.mark.parametrize(
        "password",
        ["short1!", "alllowercase123!", "ALLUPPERCASE123!", "NoDigitsHere!", "NoSpecial123"],
    )
    def test_register_rejects_weak_password(self, client, db_session, password):
        resp = client.post("/api/auth/register", json={
            "shop_name": "Brechó Fraco",
            "username": "fraco",
            "email": "fraco@brecho.com",
            "password": password,
        })
        assert resp.status_code == 400

    def test_register_rejects_short_shop_name(self, client, db_session):
        resp = client.post("/api/auth/register", json={
            "shop_name": "AB",
            "username": "ab",
            "email": "ab@brecho.com",
            "password": PASSWORD,
        })
        assert resp.status_code == 400

    def test_login_with_username_and_email(self, client, owner_a):
        assert get_auth_token(client, "owner_a", PASSWORD)
        resp = client.post("/api/auth/login", json={"email": "owner_a@brecho-a.com", "password": PASSWORD})
        assert resp.status_code == 200
        assert resp.json["shop_id"] == owner_a.shop_id

    def test_login_wrong_password(self, client, owner_a):
        resp = client.post("/api/auth/login", json={"username": "owner_a", "password": "Wrong123!"})
        assert resp.status_code == 401
        failed = db.session.query(SecurityEvent).filter_by(event_type="LOGIN_FAILED").count()
        assert failed == 1

    def test_login_missing_fields(self, client, db_session):
        resp = client.post("/api/auth/login", json={"username": "owner_a"})
        assert resp.status_code == 400

    def test_logout_revokes_token(self, client, owner_a):
        token = get_auth_token(client, "owner_a", PASSWORD)
        assert client.post("/api/auth/logout", headers=auth_headers(token)).status_code == 200
        assert client.get("/api/auth/validate", headers=auth_headers(token)).status_code == 401

    def test_validate_returns_context(self, client, owner_headers, shop_a):
        resp = client.get("/api/auth/validate", headers=owner_headers)
        assert resp.status_code == 200
        assert resp.json["valid"] is True
        assert resp.json["shop_id"] == shop_a.id

    def test_change_password_revokes_other_sessions(self, client, owner_a):
        first = get_auth_token(client, "owner_a", PASSWORD)
        second = get_auth_token(client, "owner_a", PASSWORD)

        resp = client.post(
            "/api/auth/change-password",
            json={"current_password": PASSWORD, "new_password": "NewPassword456!"},
            headers=auth_headers(second),
        )
        assert resp.status_code == 200
        assert client.get("/api/auth/validate", headers=auth_headers(first)).status_code == 401
        assert client.get("/api/auth/validate", headers=auth_headers(second)).status_code == 200
        assert get_auth_token(client, "owner_a", "NewPassword456!")

    def test_change_password_wrong_current(self, client, owner_headers):
        resp = client.post(
            "/api/auth/change-password",
            json={"current_password": "Nope1234!", "new_password": "NewPassword456!"},
            headers=owner_headers,
        )
        assert resp.status_code == 401

    def test_deactivated_user_loses_session(self, client, seller_user_a):
        _, token = session_service.create_session(user_id=seller_user_a.id)
        seller_user_a.is_active = False
        db.session.commit()
        assert client.get("/api/auth/validate", headers=auth_headers(token)).status_code == 401
