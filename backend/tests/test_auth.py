"""Tests for authentication, organization membership and role checks."""

from datetime import timedelta

from app.core.rbac import OrgRole
from app.core.security import (
    create_access_token,
    decode_access_token,
    extract_token,
    get_password_hash,
    verify_password,
)
from app.models.organization import OrganizationMember


API = "/api/v1"


# ============== Password hashing ==============

class TestPasswordHashing:
    def test_hash_and_verify(self):
        h = get_password_hash("secret123")
        assert verify_password("secret123", h)

    def test_wrong_password_rejected(self):
        h = get_password_hash("secret123")
        assert not verify_password("wrong", h)

    def test_hash_is_unique(self):
        assert get_password_hash("same") != get_password_hash("same")

    def test_invalid_hash_returns_false(self):
        assert not verify_password("test", "not-a-hash")


# ============== JWT tokens ==============

class TestJWTTokens:
    def test_create_and_decode(self):
        token = create_access_token({"sub": "7", "email": "a@b.co", "organization_id": 3, "role": "ADMIN"})
        payload = decode_access_token(token)
        assert payload["sub"] == "7"
        assert payload["organization_id"] == 3
        assert payload["role"] == "ADMIN"
        assert "exp" in payload

    def test_expired_token(self):
        token = create_access_token({"sub": "1"}, expires_delta=timedelta(seconds=-1))
        assert decode_access_token(token) is None

    def test_tampered_token(self):
        token = create_access_token({"sub": "1"})
        assert decode_access_token(token[:-2] + "xx") is None

    def test_extract_prefers_header(self):
        token = create_access_token({"sub": "1"})
        assert extract_token(f"Bearer {token}")["sub"] == "1"
        assert extract_token("", cookie_token=token)["sub"] == "1"
        assert extract_token("Basic abc") is None


# ============== Register / login ==============

class TestRegisterLogin:
    def test_register_with_organization(self, client, db_session):
        response = client.post(
            f"{API}/auth/register",
            json={
                "email": "nuevo@dispensario.co",
                "password": "clave-segura",
                "name": "Nuevo",
                "organization_name": "Dispensario Sur",
            },
        )

        assert response.status_code == 201
        data = response.json()
        assert data["role"] == "OWNER"
        payload = decode_access_token(data["access_token"])
        assert payload["organization_id"] == data["organization_id"]
        member = db_session.query(OrganizationMember).one()
        assert member.role == OrgRole.OWNER

    def test_register_without_organization(self, client):
        data = client.post(
            f"{API}/auth/register",
            json={"email": "solo@dispensario.co", "password": "clave-segura", "name": "Solo"},
        ).json()
        assert data["organization_id"] is None
        assert data["role"] is None

    def test_duplicate_email(self, client, test_user):
        response = client.post(
            f"{API}/auth/register",
            json={"email": test_user.email, "password": "clave-segura", "name": "Otro"},
        )
        assert response.status_code == 409

    def test_short_password_rejected(self, client):
        response = client.post(
            f"{API}/auth/register", json={"email": "x@dispensario.co", "password": "corta", "name": "X"}
        )
        assert response.status_code == 400
        assert response.json()["errors"]

    def test_login(self, client, test_user, organization):
        response = client.post(f"{API}/auth/login", json={"email": test_user.email, "password": "testpass123"})

        assert response.status_code == 200
        data = response.json()
        assert data["organization_id"] == organization.id
        assert data["role"] == "OWNER"

    def test_login_wrong_password(self, client, test_user):
        response = client.post(f"{API}/auth/login", json={"email": test_user.email, "password": "mala"})
        assert response.status_code == 401

    def test_login_unknown_email(self, client):
        response = client.post(f"{API}/auth/login", json={"email": "nadie@x.co", "password": "x"})
        assert response.status_code == 401

    def test_login_foreign_organization(self, client, test_user, other_organization):
        response = client.post(
            f"{API}/auth/login",
            json={"email": test_user.email, "password": "testpass123", "organization_id": other_organization.id},
        )
        assert response.status_code == 403

    def test_inactive_user(self, client, db_session, test_user):
        test_user.is_active = False
        db_session.commit()
        response = client.post(f"{API}/auth/login", json={"email": test_user.email, "password": "testpass123"})
        assert response.status_code == 401

    def test_me(self, client, auth_headers, organization):
        data = client.get(f"{API}/auth/me", headers=auth_headers).json()
        assert data["email"] == "owner@dispensario.co"
        assert data["organizations"] == [{"id": organization.id, "name": organization.name, "role": "OWNER"}]


# ============== Enforcement and roles ==============

class TestAccessControl:
    def test_missing_token(self, client):
        response = client.get(f"{API}/products/")
        assert response.status_code == 401
        assert response.json()["detail"] == "No autenticado"

    def test_garbage_token(self, client):
        response = client.get(f"{API}/products/", headers={"Authorization": "Bearer nope"})
        assert response.status_code == 401

    def test_user_without_organization(self, client, make_user, make_headers):
        user = make_user("libre@dispensario.co")
        response = client.get(f"{API}/products/", headers=make_headers(user))
        assert response.status_code == 400
        assert response.json()["detail"] == "Usuario sin organización"

    def test_dispenser_cannot_manage_warehouses(self, client, make_user, make_headers, organization):
        user = make_user("disp@dispensario.co", organization, OrgRole.DISPENSER)
        response = client.post(
            f"{API}/warehouses/",
            json={"code": "W-9", "name": "Nueva"},
            headers=make_headers(user, organization, OrgRole.DISPENSER),
        )
        assert response.status_code == 403

    def test_health_is_public(self, client):
        assert client.get("/health").status_code == 200


class TestMembers:
    def test_add_member(self, client, auth_headers, make_user):
        make_user("colega@dispensario.co")

        response = client.post(
            f"{API}/organizations/members",
            json={"email": "colega@dispensario.co", "role": "OPERATOR"},
            headers=auth_headers,
        )

        assert response.status_code == 201
        assert response.json()["role"] == "OPERATOR"
        members = client.get(f"{API}/organizations/members", headers=auth_headers).json()["items"]
        assert {m["email"] for m in members} == {"owner@dispensario.co", "colega@dispensario.co"}

    def test_add_unknown_user(self, client, auth_headers):
        response = client.post(
            f"{API}/organizations/members", json={"email": "fantasma@x.co"}, headers=auth_headers
        )
        assert response.status_code == 404

    def test_add_existing_member(self, client, auth_headers, test_user):
        response = client.post(
            f"{API}/organizations/members", json={"email": test_user.email}, headers=auth_headers
        )
        assert response.status_code == 409

    def test_admin_cannot_grant_owner(self, client, make_user, make_headers, organization):
        admin = make_user("admin@dispensario.co", organization, OrgRole.ADMIN)
        make_user("futuro@dispensario.co")

        response = client.post(
            f"{API}/organizations/members",
            json={"email": "futuro@dispensario.co", "role": "OWNER"},
            headers=make_headers(admin, organization, OrgRole.ADMIN),
        )
        assert response.status_code == 403

    def test_create_organization(self, client, make_user, make_headers):
        user = make_user("fundador@dispensario.co")
        response = client.post(f"{API}/organizations/", json={"name": "Dispensario Este"}, headers=make_headers(user))

        assert response.status_code == 201
        token = response.json()["token"]
        assert token["role"] == "OWNER"
        assert decode_access_token(token["access_token"])["organization_id"] == response.json()["id"]
        orgs = client.get(f"{API}/organizations/", headers=make_headers(user)).json()["items"]
        assert [o["name"] for o in orgs] == ["Dispensario Este"]


class TestOrganizationIsolation:
    def test_products_are_scoped(self, client, auth_headers, test_product, make_user, make_headers, other_organization):
        outsider = make_user("ajeno@otro.co", other_organization, OrgRole.OWNER)
        headers = make_headers(outsider, other_organization)

        assert client.get(f"{API}/products/", headers=headers).json()["total"] == 0
        assert client.get(f"{API}/products/{test_product.id}", headers=headers).status_code == 404
        assert client.get(f"{API}/products/", headers=auth_headers).json()["total"] == 1
