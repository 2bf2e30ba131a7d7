"""
API endpoint tests
"""
import pytest

from chitfund.core.config import settings

from tests.conftest import ROOT_ADMIN_EMAIL, ROOT_ADMIN_PASSWORD


async def login(client, email, password):
    return await client.post("/api/v1/auth/login", json={"email": email, "password": password})


async def invite_and_login_agent(client, admin_headers, email="agent.two@chitfund.test"):
    """Invite an agent and claim the invite; returns (uid, headers)"""
    response = await client.post(
        "/api/v1/users/invite",
        json={"email": email, "role": "AGENT", "name": "Agent Two", "initialPassword": email},
        headers=admin_headers
    )
    assert response.status_code == 201

    response = await login(client, email, email)
    assert response.status_code == 200
    data = response.json()
    return data["session"]["uid"], {"Authorization": f"Bearer {data['access_token']}"}


class TestHealthEndpoints:
    """Tests for health check endpoints"""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_health_check(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert "version" in data

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_root_endpoint(self, client):
        response = await client.get("/")

        assert response.status_code == 200
        assert settings.APP_NAME in response.json()["message"]


class TestAuthRequired:
    """Tests that verify auth is required"""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_customers_requires_auth(self, client):
        response = await client.get("/api/v1/customers/")

        assert response.status_code == 401

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_garbage_token_rejected(self, client):
        response = await client.get("/api/v1/loans/", headers={"Authorization": "Bearer not-a-jwt"})

        assert response.status_code == 401


@pytest.mark.integration
class TestAuthFlow:
    """Tests for login, session and logout over HTTP"""

    @pytest.mark.asyncio
    async def test_root_admin_session(self, client, admin_headers):
        response = await client.get("/api/v1/auth/session", headers=admin_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["role"] == "ADMIN"
        assert data["email"] == ROOT_ADMIN_EMAIL

    @pytest.mark.asyncio
    async def test_invalid_credentials(self, client, admin_headers):
        response = await login(client, ROOT_ADMIN_EMAIL, "not-" + ROOT_ADMIN_PASSWORD)

        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid Credentials"

    @pytest.mark.asyncio
    async def test_missing_password(self, client):
        response = await login(client, "a@x.com", "")

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_logout_revokes_token(self, client, admin_headers):
        response = await client.post("/api/v1/auth/logout", headers=admin_headers)
        assert response.status_code == 200

        response = await client.get("/api/v1/auth/session", headers=admin_headers)
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_invite_claim_over_http(self, client, admin_headers):
        uid, headers = await invite_and_login_agent(client, admin_headers)

        response = await client.get("/api/v1/auth/session", headers=headers)
        assert response.json()["role"] == "AGENT"

        response = await client.get("/api/v1/users/", headers=admin_headers)
        users = {u["email"]: u for u in response.json()}
        assert users["agent.two@chitfund.test"]["uid"] == uid
        assert not users["agent.two@chitfund.test"]["pendingInvite"]
        assert all("initialPassword" not in u for u in users.values())

    @pytest.mark.asyncio
    async def test_duplicate_invite_conflicts(self, client, admin_headers):
        payload = {"email": "dup@chitfund.test", "role": "AGENT", "name": "Dup"}

        first = await client.post("/api/v1/users/invite", json=payload, headers=admin_headers)
        second = await client.post("/api/v1/users/invite", json=payload, headers=admin_headers)

        assert first.status_code == 201
        assert second.status_code == 409

    @pytest.mark.asyncio
    async def test_deactivated_user_loses_access(self, client, admin_headers):
        uid, headers = await invite_and_login_agent(client, admin_headers)

        response = await client.put(
            f"/api/v1/users/{uid}/status", json={"status": "INACTIVE"}, headers=admin_headers
        )
        assert response.status_code == 204

        response = await client.get("/api/v1/auth/session", headers=headers)
        assert response.status_code == 401


@pytest.mark.integration
class TestRoleChecks:
    """Tests for admin-only routes"""

    @pytest.mark.asyncio
    async def test_agent_cannot_use_admin_routes(self, client, admin_headers):
        _, headers = await invite_and_login_agent(client, admin_headers)

        assert (await client.get("/api/v1/users/", headers=headers)).status_code == 403
        assert (await client.post("/api/v1/admin/purge", headers=headers)).status_code == 403
        assert (await client.get("/api/v1/investors/", headers=headers)).status_code == 403

    @pytest.mark.asyncio
    async def test_agent_sees_only_own_customers(self, client, admin_headers):
        _, headers = await invite_and_login_agent(client, admin_headers)
        response = await client.post(
            "/api/v1/customers/", json={"name": "Lakshmi", "phone": "9000000001"}, headers=admin_headers
        )
        customer_id = response.json()["id"]

        assert (await client.get("/api/v1/customers/", headers=headers)).json() == []
        assert (await client.get(f"/api/v1/customers/{customer_id}", headers=headers)).status_code == 404


@pytest.mark.integration
class TestLoanLifecycle:
    """Tests for registration, loans and collections over HTTP"""

    @pytest.mark.asyncio
    async def test_register_loan_and_collect(self, client, admin_headers):
        response = await client.post(
            "/api/v1/customers/register",
            json={"name": "Meena", "phone": "9000000003", "loanAmount": 10000, "disbursedAmount": 9500},
            headers=admin_headers
        )
        assert response.status_code == 201
        registered = response.json()
        customer_id = registered["customerId"]

        response = await client.post(
            "/api/v1/loans/",
            json={"customerId": customer_id, "amount": 4000},
            headers=admin_headers
        )
        assert response.status_code == 201

        customer = (await client.get(f"/api/v1/customers/{customer_id}", headers=admin_headers)).json()
        assert customer["totalLoanAmount"] == 14000
        assert customer["currentDueAmount"] == 14000
        assert customer["activeLoansCount"] == 2

        response = await client.post(
            "/api/v1/collections/record",
            json={"loanId": registered["loanId"], "amount": 10000},
            headers=admin_headers
        )
        assert response.status_code == 201
        assert response.json()["loanStatus"] == "CLOSED"

        customer = (await client.get(f"/api/v1/customers/{customer_id}", headers=admin_headers)).json()
        assert customer["currentDueAmount"] == 4000
        assert customer["totalPaidAmount"] == 10000
        assert customer["activeLoansCount"] == 1

        response = await client.get(f"/api/v1/payments/customer/{customer_id}", headers=admin_headers)
        assert len(response.json()) == 1

    @pytest.mark.asyncio
    async def test_recompute_endpoint(self, client, admin_headers):
        response = await client.post(
            "/api/v1/customers/", json={"name": "Ravi", "phone": "9000000002"}, headers=admin_headers
        )
        customer_id = response.json()["id"]

        response = await client.post(f"/api/v1/loans/customers/{customer_id}/recompute", headers=admin_headers)
        assert response.status_code == 200
        assert response.json()["activeLoansCount"] == 0

        response = await client.post("/api/v1/loans/customers/missing/recompute", headers=admin_headers)
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_collect_on_missing_loan(self, client, admin_headers):
        response = await client.post(
            "/api/v1/collections/record", json={"loanId": "missing", "amount": 100}, headers=admin_headers
        )

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_agent_limited_to_assigned_loans(self, client, admin_headers):
        agent_uid, headers = await invite_and_login_agent(client, admin_headers)
        response = await client.post(
            "/api/v1/customers/", json={"name": "Kavya", "phone": "9000000004"}, headers=admin_headers
        )
        customer_id = response.json()["id"]
        response = await client.post(
            "/api/v1/loans/", json={"customerId": customer_id, "amount": 2000}, headers=admin_headers
        )
        loan_id = response.json()["id"]

        assert (await client.get(f"/api/v1/loans/customer/{customer_id}", headers=headers)).json() == []
        assert (await client.get(f"/api/v1/loans/{loan_id}", headers=headers)).status_code == 404
        assert (await client.get(f"/api/v1/collections/customer/{customer_id}", headers=headers)).json() == []

        response = await client.post(
            "/api/v1/collections/record", json={"loanId": loan_id, "amount": 2000}, headers=headers
        )
        assert response.status_code == 404
        loan = (await client.get(f"/api/v1/loans/{loan_id}", headers=admin_headers)).json()
        assert loan["status"] == "ACTIVE"
        assert loan["outstandingAmount"] == 2000

        response = await client.post(
            f"/api/v1/users/agents/{agent_uid}/loans", json={"loanId": loan_id}, headers=admin_headers
        )
        assert response.status_code == 204

        response = await client.post(
            "/api/v1/collections/record", json={"loanId": loan_id, "amount": 500}, headers=headers
        )
        assert response.status_code == 201
        assert len((await client.get(f"/api/v1/loans/customer/{customer_id}", headers=headers)).json()) == 1
        assert len((await client.get(f"/api/v1/payments/customer/{customer_id}", headers=headers)).json()) == 1


@pytest.mark.integration
class TestUserAdministration:
    """Tests for user removal and root sign-in over HTTP"""

    @pytest.mark.asyncio
    async def test_delete_user_with_customers_conflicts(self, client, admin_headers):
        agent_uid, _ = await invite_and_login_agent(client, admin_headers)
        await client.post(
            "/api/v1/customers/",
            json={"name": "Kavya", "phone": "9000000004", "agentId": agent_uid},
            headers=admin_headers
        )

        response = await client.delete(f"/api/v1/users/{agent_uid}", headers=admin_headers)

        assert response.status_code == 409
        users = (await client.get("/api/v1/users/", headers=admin_headers)).json()
        assert agent_uid in {u["uid"] for u in users}

    @pytest.mark.asyncio
    async def test_delete_user_without_customers(self, client, admin_headers):
        agent_uid, _ = await invite_and_login_agent(client, admin_headers)

        response = await client.delete(f"/api/v1/users/{agent_uid}", headers=admin_headers)

        assert response.status_code == 204
        users = (await client.get("/api/v1/users/", headers=admin_headers)).json()
        assert agent_uid not in {u["uid"] for u in users}

    @pytest.mark.asyncio
    async def test_short_wrong_root_password(self, client, admin_headers):
        response = await login(client, ROOT_ADMIN_EMAIL, "abc")

        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid Credentials"
