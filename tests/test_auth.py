from storefront.models.user import User


def test_register_claims_guest_profile(client, db, make_product, place_order):
    place_order(make_product(), email="guest@example.com")
    guest = db.query(User).filter(User.email == "guest@example.com").one()

    resp = client.post(
        "/api/v1/auth/register", json={"email": "Guest@example.com", "password": "hunter22", "full_name": "G"}
    )

    assert resp.status_code == 201
    assert resp.json()["user"]["id"] == guest.id
    assert client.post(
        "/api/v1/auth/register", json={"email": "guest@example.com", "password": "another1"}
    ).status_code == 409

    token = resp.json()["token"]
    orders = client.get("/api/v1/checkout/orders", headers={"Authorization": f"Bearer {token}"}).json()
    assert len(orders) == 1


def test_login_and_admin_login(client, customer):
    assert client.post("/api/v1/auth/login", json={"email": customer.email, "password": "wrong"}).status_code == 401
    resp = client.post("/api/v1/auth/login", json={"email": customer.email, "password": "secret-pass"})
    assert resp.status_code == 200
    assert resp.json()["user"]["role"] == "user"

    resp = client.post("/api/v1/auth/admin-login", json={"email": customer.email, "password": "secret-pass"})
    assert resp.status_code == 403


def test_profile_update_and_email_conflict(client, admin, customer_headers):
    resp = client.put("/api/v1/auth/profile", json={"city": "Braga"}, headers=customer_headers)
    assert resp.status_code == 200
    assert resp.json()["city"] == "Braga"

    resp = client.put("/api/v1/auth/profile", json={"email": admin.email}, headers=customer_headers)
    assert resp.status_code == 409


def test_change_password_requires_current(client, customer, customer_headers):
    bad = client.post(
        "/api/v1/auth/change-password",
        json={"current_password": "nope", "new_password": "fresh-pass"},
        headers=customer_headers,
    )
    assert bad.status_code == 400

    ok = client.post(
        "/api/v1/auth/change-password",
        json={"current_password": "secret-pass", "new_password": "fresh-pass"},
        headers=customer_headers,
    )
    assert ok.status_code == 200
    assert client.post("/api/v1/auth/login", json={"email": customer.email, "password": "fresh-pass"}).status_code == 200


def test_admin_user_management(client, admin, admin_headers, customer, make_product, place_order):
    place_order(make_product(), email=customer.email)

    users = client.get("/api/v1/admin/users", headers=admin_headers).json()
    assert [u["email"] for u in users] == [customer.email]
    assert len(users[0]["orders"]) == 1
    assert client.get(f"/api/v1/admin/users/{customer.email}", headers=admin_headers).status_code == 200

    assert client.delete(f"/api/v1/admin/users/{admin.id}", headers=admin_headers).status_code == 400
    assert client.delete(f"/api/v1/admin/users/{customer.id}", headers=admin_headers).status_code == 204
    assert client.get(f"/api/v1/admin/users/{customer.id}", headers=admin_headers).status_code == 404
