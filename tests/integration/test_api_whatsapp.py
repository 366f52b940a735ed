"""
Integration Tests for WhatsApp API Endpoints
"""

import json

import pytest


async def link_account(client, headers):
    response = await client.post(
        "/api/whatsapp/embedded-signup/callback",
        json={"code": "auth-code"},
        headers=headers,
    )
    assert response.status_code == 200
    return response.json()["data"]


class TestEmbeddedSignupEndpoint:
    """Tests for the embedded signup callback."""

    @pytest.mark.asyncio
    async def test_links_account(self, client, auth_headers, organization, fake_graph):
        data = await link_account(client, auth_headers)

        assert data["organizationId"] == organization.id
        assert data["wabaId"] == fake_graph.waba_id
        assert data["phoneNumberId"] == fake_graph.phone_number_id
        assert data["displayPhoneNumber"] == "+1 555-010-0200"
        assert data["displayName"] == "Acme Support"
        assert data["qualityRating"] == "GREEN"
        assert data["status"] == "ACTIVE"
        assert data["messagingLimit"] == 1000

    @pytest.mark.asyncio
    async def test_token_never_returned(self, client, auth_headers, fake_graph):
        response = await client.post(
            "/api/whatsapp/embedded-signup/callback",
            json={"code": "auth-code"},
            headers=auth_headers,
        )

        assert "accessToken" not in response.json()["data"]
        assert "access_token" not in response.json()["data"]
        assert fake_graph.access_token not in response.text

        listing = await client.get("/api/whatsapp/accounts", headers=auth_headers)
        assert fake_graph.access_token not in listing.text
        assert "accessToken" not in listing.json()["data"][0]

    @pytest.mark.asyncio
    async def test_empty_code(self, client, auth_headers):
        response = await client.post(
            "/api/whatsapp/embedded-signup/callback",
            json={"code": ""},
            headers=auth_headers,
        )

        assert response.status_code == 422
        assert response.json()["error"]["field"] == "code"

    @pytest.mark.asyncio
    async def test_upstream_failure(self, client, auth_headers, fake_graph):
        fake_graph.set("POST", "/oauth/access_token", 400, {
            "error": {"message": "Invalid verification code format."},
        })

        response = await client.post(
            "/api/whatsapp/embedded-signup/callback",
            json={"code": "bad"},
            headers=auth_headers,
        )

        assert response.status_code == 502
        error = response.json()["error"]
        assert error["code"] == "SRV_5003"
        assert error["message"] == "Failed to exchange code for access token"
        assert error["details"]["upstream_message"] == "Invalid verification code format."

        listing = await client.get("/api/whatsapp/accounts", headers=auth_headers)
        assert listing.json()["data"] == []

    @pytest.mark.asyncio
    async def test_malformed_upstream_body(self, client, auth_headers, fake_graph):
        fake_graph.set("GET", f"/{fake_graph.waba_id}/phone_numbers", json=[
            {"display_phone_number": "+1 555-000-0001"},
        ])

        response = await client.post(
            "/api/whatsapp/embedded-signup/callback",
            json={"code": "auth-code"},
            headers=auth_headers,
        )

        assert response.status_code == 502
        error = response.json()["error"]
        assert error["code"] == "SRV_5003"
        assert error["message"] == "Failed to get phone numbers"

        listing = await client.get("/api/whatsapp/accounts", headers=auth_headers)
        assert listing.json()["data"] == []

    @pytest.mark.asyncio
    async def test_requires_token(self, client):
        response = await client.post(
            "/api/whatsapp/embedded-signup/callback", json={"code": "auth-code"}
        )

        assert response.status_code == 401


class TestAccountEndpoints:
    """Tests for account management endpoints."""

    @pytest.mark.asyncio
    async def test_list_is_tenant_scoped(self, client, auth_headers, other_org_headers):
        account = await link_account(client, auth_headers)

        mine = await client.get("/api/whatsapp/accounts", headers=auth_headers)
        theirs = await client.get("/api/whatsapp/accounts", headers=other_org_headers)

        assert [a["id"] for a in mine.json()["data"]] == [account["id"]]
        assert theirs.json()["data"] == []

    @pytest.mark.asyncio
    async def test_get_other_organization(self, client, auth_headers, other_org_headers):
        account = await link_account(client, auth_headers)

        response = await client.get(
            f"/api/whatsapp/accounts/{account['id']}", headers=other_org_headers
        )

        assert response.status_code == 404
        assert response.json()["error"]["message"] == "WhatsApp account not found"

    @pytest.mark.asyncio
    async def test_update_account(self, client, auth_headers):
        account = await link_account(client, auth_headers)

        response = await client.patch(
            f"/api/whatsapp/accounts/{account['id']}",
            json={"displayName": "Support Line", "status": "SUSPENDED"},
            headers=auth_headers,
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["displayName"] == "Support Line"
        assert data["status"] == "SUSPENDED"

    @pytest.mark.asyncio
    async def test_update_invalid_status(self, client, auth_headers):
        account = await link_account(client, auth_headers)

        response = await client.patch(
            f"/api/whatsapp/accounts/{account['id']}",
            json={"status": "DELETED"},
            headers=auth_headers,
        )

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_admin_deletes_account(self, client, auth_headers):
        account = await link_account(client, auth_headers)

        response = await client.delete(
            f"/api/whatsapp/accounts/{account['id']}", headers=auth_headers
        )

        assert response.status_code == 200
        assert response.json()["data"] == {"deleted": True, "id": account["id"]}
        listing = await client.get("/api/whatsapp/accounts", headers=auth_headers)
        assert listing.json()["data"] == []

    @pytest.mark.asyncio
    async def test_agent_cannot_delete(self, client, auth_headers, agent_headers):
        account = await link_account(client, auth_headers)

        response = await client.delete(
            f"/api/whatsapp/accounts/{account['id']}", headers=agent_headers
        )

        assert response.status_code == 403
        assert response.json()["error"]["message"] == "Only admins can delete WhatsApp accounts"

    @pytest.mark.asyncio
    async def test_delete_detaches_bot(self, client, auth_headers):
        account = await link_account(client, auth_headers)
        bot = (await client.post(
            "/api/bots",
            json={"name": "Linked", "whatsappAccountId": account["id"]},
            headers=auth_headers,
        )).json()["data"]
        assert bot["whatsappAccountId"] == account["id"]

        await client.delete(f"/api/whatsapp/accounts/{account['id']}", headers=auth_headers)

        current = (await client.get(f"/api/bots/{bot['id']}", headers=auth_headers)).json()["data"]
        assert current["whatsappAccountId"] is None

    @pytest.mark.asyncio
    async def test_bot_cannot_use_account_of_other_organization(
        self, client, auth_headers, other_org_headers
    ):
        foreign = await link_account(client, other_org_headers)

        response = await client.post(
            "/api/bots",
            json={"name": "Hijack", "whatsappAccountId": foreign["id"]},
            headers=auth_headers,
        )

        assert response.status_code == 422
        error = response.json()["error"]
        assert error["code"] == "VAL_2001"
        assert error["field"] == "whatsappAccountId"
        listing = await client.get("/api/bots", headers=auth_headers)
        assert listing.json()["data"] == []


class TestSendMessageEndpoint:
    """Tests for sending messages."""

    @pytest.mark.asyncio
    async def test_send(self, client, auth_headers, fake_graph):
        await link_account(client, auth_headers)

        response = await client.post(
            "/api/whatsapp/messages/send",
            json={
                "phoneNumberId": fake_graph.phone_number_id,
                "to": "+15551234567",
                "message": "Your order has shipped",
            },
            headers=auth_headers,
        )

        assert response.status_code == 200
        assert response.json()["data"]["messages"][0]["id"].startswith("wamid.")
        request = fake_graph.requests_to("POST", f"/{fake_graph.phone_number_id}/messages")[0]
        assert json.loads(request.content)["to"] == "15551234567"

    @pytest.mark.asyncio
    async def test_foreign_phone_number(self, client, auth_headers, other_org_headers, fake_graph):
        await link_account(client, auth_headers)

        response = await client.post(
            "/api/whatsapp/messages/send",
            json={"phoneNumberId": fake_graph.phone_number_id, "to": "15551234567", "message": "Hi"},
            headers=other_org_headers,
        )

        assert response.status_code == 403
        assert response.json()["error"]["message"] == "Phone number not found or access denied"
        assert fake_graph.requests_to("POST", f"/{fake_graph.phone_number_id}/messages") == []

    @pytest.mark.asyncio
    async def test_upstream_rejection(self, client, auth_headers, fake_graph):
        await link_account(client, auth_headers)
        fake_graph.set("POST", f"/{fake_graph.phone_number_id}/messages", 400, {
            "error": {"message": "Recipient phone number not in allowed list"},
        })

        response = await client.post(
            "/api/whatsapp/messages/send",
            json={"phoneNumberId": fake_graph.phone_number_id, "to": "15551234567", "message": "Hi"},
            headers=auth_headers,
        )

        assert response.status_code == 502
        assert response.json()["error"]["details"]["upstream_status"] == 400

    @pytest.mark.asyncio
    async def test_missing_message(self, client, auth_headers, fake_graph):
        response = await client.post(
            "/api/whatsapp/messages/send",
            json={"phoneNumberId": fake_graph.phone_number_id, "to": "15551234567"},
            headers=auth_headers,
        )

        assert response.status_code == 422
        assert response.json()["error"]["field"] == "message"
