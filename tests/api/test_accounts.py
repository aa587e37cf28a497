"""
Tests for user, account and category API endpoints.
"""


class TestUsers:

    def test_create_user_returns_201(self, client):
        response = client.post("/users", json={
            "name": "Carol",
            "email": "carol@example.com",
        })
        assert response.status_code == 201
        assert response.json()["is_active"] is True

    def test_duplicate_email_returns_400(self, client, user):
        response = client.post("/users", json={
            "name": "Alice",
            "email": "alice@example.com",
        })
        assert response.status_code == 400

    def test_me(self, client, headers, user):
        response = client.get("/users/me", headers=headers)
        assert response.status_code == 200
        assert response.json()["email"] == "alice@example.com"


class TestAccounts:

    def test_create_with_opening_balance(self, client, headers):
        response = client.post("/accounts", json={
            "name": "Checking",
            "account_type": "checking",
            "opening_balance": 1000,
        }, headers=headers)

        assert response.status_code == 201
        data = response.json()
        assert data["balance"] == 1000
        assert data["account_category"] == "bank"

        txns = client.get(f"/transactions?account_id={data['id']}", headers=headers).json()
        assert txns["items"][0]["category"] == "Opening Balance"

    def test_list_returns_total(self, client, headers, make_account):
        make_account("Wallet", opening_balance=100)
        make_account("Visa", account_type="credit_card", opening_balance=-30)

        data = client.get("/accounts", headers=headers).json()

        assert len(data["accounts"]) == 2
        assert data["total_balance"] == 70

    def test_get_other_users_account_returns_404(self, client, headers, other_user, make_account):
        theirs = make_account("Theirs", owner=other_user)
        response = client.get(f"/accounts/{theirs.id}", headers=headers)
        assert response.status_code == 404

    def test_patch_renames(self, client, headers, checking):
        response = client.patch(
            f"/accounts/{checking.id}", json={"name": "Everyday"}, headers=headers,
        )
        assert response.status_code == 200
        assert response.json()["name"] == "Everyday"

    def test_delete_deactivates(self, client, headers, checking):
        response = client.delete(f"/accounts/{checking.id}", headers=headers)

        assert response.status_code == 200
        assert response.json()["is_active"] is False
        assert client.get("/accounts", headers=headers).json()["accounts"] == []

    def test_verify_and_rebuild(self, client, headers, make_account):
        account = make_account("Wallet", opening_balance=100)

        report = client.get(f"/accounts/{account.id}/verify", headers=headers).json()
        assert report["is_consistent"] is True
        assert report["replayed_balance"] == 100
        assert report["mismatches"] == []

        rebuilt = client.post("/accounts/rebuild", headers=headers).json()
        assert rebuilt == {str(account.id): 100}


class TestCategories:

    def test_list_builtins(self, client, headers):
        data = client.get("/categories", headers=headers).json()
        assert "Food & Dining" in data["expense"]
        assert "Salary & Wages" in data["income"]

    def test_create_custom(self, client, headers):
        response = client.post("/categories", json={
            "name": "Pets",
            "type": "expense",
        }, headers=headers)

        assert response.status_code == 201
        assert "Pets" in client.get("/categories", headers=headers).json()["expense"]

    def test_duplicate_builtin_returns_400(self, client, headers):
        response = client.post("/categories", json={
            "name": "Shopping",
            "type": "expense",
        }, headers=headers)
        assert response.status_code == 400
