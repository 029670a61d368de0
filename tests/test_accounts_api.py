"""
Customer accounts: registration, cookie sessions and login lockout
"""
from app.models import User

NEW_USER = {
    "name": "Ana Costa",
    "email": "Ana.Costa@Example.com",
    "password": "senha-forte-123",
    "phone": "(11) 91234-5678",
}


class TestRegister:

    def test_register_logs_in(self, client, db_session):
        response = client.post("/auth/register", json=NEW_USER)
        assert response.status_code == 201
        data = response.json()
        assert data["email"] == "ana.costa@example.com"
        assert data["phone"] == "11912345678"
        assert data["role"] == "CUSTOMER"
        assert "session_token" in response.cookies

        user = db_session.query(User).filter(User.email == "ana.costa@example.com").one()
        assert user.password_hash and user.password_hash != NEW_USER["password"]

        me = client.get("/auth/me")
        assert me.status_code == 200
        assert me.json()["id"] == user.id

    def test_weak_password(self, client):
        response = client.post("/auth/register", json={**NEW_USER, "password": "somenteletras"})
        assert response.status_code == 400
        data = response.json()
        assert data["code"] == "VALIDATION_ERROR"
        assert "números" in data["error"]

    def test_duplicate_email(self, client):
        client.post("/auth/register", json=NEW_USER)
        client.post("/auth/logout")
        response = client.post("/auth/register", json={**NEW_USER, "phone": None})
        assert response.status_code == 409
        assert response.json()["code"] == "DUPLICATE_ENTRY"

    def test_guest_email_cannot_be_claimed(self, client, db_session, customer):
        response = client.post(
            "/auth/register",
            json={"name": "Outra Pessoa", "email": "maria@example.com", "password": "nova-senha-99"},
        )
        assert response.status_code == 409
        assert response.json()["code"] == "DUPLICATE_ENTRY"
        assert "session_token" not in response.cookies
        assert client.get("/me/bookings").status_code == 401

        db_session.refresh(customer)
        assert customer.name == "Maria Silva"
        assert customer.password_hash is None
        assert db_session.query(User).count() == 1

    def test_duplicate_phone(self, client, customer):
        response = client.post(
            "/auth/register", json={**NEW_USER, "email": "nova@example.com", "phone": "(11) 98765-4321"}
        )
        assert response.status_code == 409
        assert response.json()["code"] == "DUPLICATE_ENTRY"

    def test_invalid_email(self, client):
        response = client.post("/auth/register", json={**NEW_USER, "email": "sem-arroba"})
        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"


class TestLogin:

    def test_login_and_logout(self, client):
        client.post("/auth/register", json=NEW_USER)
        client.post("/auth/logout")
        client.cookies.clear()
        assert client.get("/auth/me").status_code == 401

        login = client.post("/auth/login", json={"email": "ana.costa@example.com", "password": "senha-forte-123"})
        assert login.status_code == 200
        assert client.get("/auth/me").status_code == 200

    def test_wrong_password(self, client):
        client.post("/auth/register", json=NEW_USER)
        client.cookies.clear()
        response = client.post("/auth/login", json={"email": "ana.costa@example.com", "password": "errada-123"})
        assert response.status_code == 401
        assert response.json()["code"] == "UNAUTHORIZED"

    def test_unknown_email(self, client):
        response = client.post("/auth/login", json={"email": "ninguem@example.com", "password": "qualquer-1"})
        assert response.status_code == 401

    def test_lockout_after_five_failures(self, client, db_session):
        client.post("/auth/register", json=NEW_USER)
        client.cookies.clear()
        wrong = {"email": "ana.costa@example.com", "password": "errada-123"}
        for _ in range(5):
            assert client.post("/auth/login", json=wrong).status_code == 401

        locked = client.post("/auth/login", json={**wrong, "password": "senha-forte-123"})
        assert locked.status_code == 429
        assert locked.json()["code"] == "ACCOUNT_LOCKED"

        user = db_session.query(User).filter(User.email == "ana.costa@example.com").one()
        assert user.locked_until is not None

    def test_admin_token_is_not_a_customer_session(self, client, admin_headers):
        assert client.get("/auth/me", headers=admin_headers).status_code == 401
