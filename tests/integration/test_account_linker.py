"""
Integration Tests for the WhatsApp Account Linker

Graph API calls go to the scripted fake; accounts are stored in SQLite.
"""

import json

import pytest
from sqlalchemy import func, select

from botpe_core.database import Bot, WhatsAppAccount
from botpe_core.security import DecryptionError
from botpe_core.whatsapp import (
    AccountNotFoundError,
    ExternalServiceError,
    ForbiddenError,
    WhatsAppAccountLinker,
)
from botpe_core.whatsapp.base import AccountStatus
from botpe_core.whatsapp.service import normalize_recipient


@pytest.fixture
def linker(db_session, graph_client, encryptor):
    return WhatsAppAccountLinker(db_session, graph_client, encryptor)


async def _count_accounts(session) -> int:
    result = await session.execute(select(func.count(WhatsAppAccount.id)))
    return result.scalar_one()


async def _link(linker, organization):
    account = await linker.handle_embedded_signup_callback("auth-code", organization.id)
    await linker.session.commit()
    return account


# =============================================================================
# Embedded Signup
# =============================================================================


class TestEmbeddedSignup:
    """Tests for turning an OAuth code into a stored account."""

    @pytest.mark.asyncio
    async def test_links_first_phone_number(self, linker, organization, fake_graph, encryptor):
        account = await _link(linker, organization)

        assert account.organization_id == organization.id
        assert account.waba_id == fake_graph.waba_id
        assert account.phone_number_id == fake_graph.phone_number_id
        assert account.display_phone_number == "+1 555-010-0200"
        assert account.display_name == "Acme Support"
        assert account.verified_name == "Acme"
        assert account.quality_rating == "GREEN"
        assert account.status == "ACTIVE"
        assert account.messaging_limit == 1000

    @pytest.mark.asyncio
    async def test_token_stored_encrypted(self, linker, organization, fake_graph, encryptor):
        account = await _link(linker, organization)

        assert account.access_token != fake_graph.access_token
        assert fake_graph.access_token not in account.access_token
        assert encryptor.decrypt(account.access_token) == fake_graph.access_token

    @pytest.mark.asyncio
    async def test_calls_graph_in_order(self, linker, organization, fake_graph):
        await _link(linker, organization)

        paths = [r.url.path.removeprefix(fake_graph.prefix) for r in fake_graph.requests]
        assert paths == [
            "/oauth/access_token",
            "/debug_token",
            f"/{fake_graph.waba_id}",
            f"/{fake_graph.waba_id}/phone_numbers",
            f"/{fake_graph.waba_id}/subscribed_apps",
        ]

    @pytest.mark.asyncio
    async def test_several_numbers_links_first(self, linker, organization, fake_graph):
        fake_graph.set("GET", f"/{fake_graph.waba_id}/phone_numbers", json={"data": [
            {"id": "first-number", "display_phone_number": "+1 555-000-0001", "quality_rating": "YELLOW"},
            {"id": "second-number", "display_phone_number": "+1 555-000-0002", "quality_rating": "GREEN"},
        ]})

        account = await _link(linker, organization)

        assert account.phone_number_id == "first-number"
        assert account.quality_rating == "YELLOW"
        assert await _count_accounts(linker.session) == 1

    @pytest.mark.asyncio
    async def test_unknown_quality_rating(self, linker, organization, fake_graph):
        fake_graph.set("GET", f"/{fake_graph.waba_id}/phone_numbers", json={"data": [
            {"id": "n1", "display_phone_number": "+1 555-000-0001", "quality_rating": "NA"},
        ]})

        account = await _link(linker, organization)

        assert account.quality_rating == "UNKNOWN"

    @pytest.mark.asyncio
    async def test_no_phone_numbers(self, linker, organization, fake_graph):
        fake_graph.set("GET", f"/{fake_graph.waba_id}/phone_numbers", json={"data": []})

        with pytest.raises(ExternalServiceError, match="No phone numbers found for this WABA"):
            await linker.handle_embedded_signup_callback("auth-code", organization.id)

        assert await _count_accounts(linker.session) == 0

    @pytest.mark.asyncio
    async def test_code_exchange_failure(self, linker, organization, fake_graph):
        fake_graph.set("POST", "/oauth/access_token", 400, {
            "error": {"message": "This authorization code has been used."},
        })

        with pytest.raises(ExternalServiceError) as exc_info:
            await linker.handle_embedded_signup_callback("used-code", organization.id)

        assert exc_info.value.message == "Failed to exchange code for access token"
        assert await _count_accounts(linker.session) == 0
        assert len(fake_graph.requests) == 1

    @pytest.mark.asyncio
    async def test_token_without_waba_scope(self, linker, organization, fake_graph):
        fake_graph.set("GET", "/debug_token", json={"data": {"granular_scopes": []}})

        with pytest.raises(ExternalServiceError, match="No WABA ID found in token"):
            await linker.handle_embedded_signup_callback("auth-code", organization.id)

        assert await _count_accounts(linker.session) == 0

    @pytest.mark.asyncio
    async def test_token_info_not_an_object(self, linker, organization, fake_graph):
        fake_graph.set("GET", "/debug_token", json={"data": ["whatsapp_business_management"]})

        with pytest.raises(ExternalServiceError, match="No WABA ID found in token"):
            await linker.handle_embedded_signup_callback("auth-code", organization.id)

        assert await _count_accounts(linker.session) == 0

    @pytest.mark.asyncio
    async def test_waba_without_id(self, linker, organization, fake_graph):
        fake_graph.set("GET", f"/{fake_graph.waba_id}", json={"name": "Acme Support"})

        with pytest.raises(ExternalServiceError) as exc_info:
            await linker.handle_embedded_signup_callback("auth-code", organization.id)

        assert exc_info.value.message == "Failed to get WABA information"
        assert await _count_accounts(linker.session) == 0

    @pytest.mark.asyncio
    async def test_phone_number_without_id(self, linker, organization, fake_graph):
        fake_graph.set("GET", f"/{fake_graph.waba_id}/phone_numbers", json={"data": [
            {"display_phone_number": "+1 555-000-0001"},
        ]})

        with pytest.raises(ExternalServiceError) as exc_info:
            await linker.handle_embedded_signup_callback("auth-code", organization.id)

        assert exc_info.value.message == "Failed to get phone numbers"
        assert await _count_accounts(linker.session) == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [
        [],
        [{"id": "n1"}],
        {"data": {"id": "n1"}},
        {"data": ["n1"]},
    ])
    async def test_phone_numbers_wrong_shape(self, linker, organization, fake_graph, body):
        fake_graph.set("GET", f"/{fake_graph.waba_id}/phone_numbers", json=body)

        with pytest.raises(ExternalServiceError) as exc_info:
            await linker.handle_embedded_signup_callback("auth-code", organization.id)

        assert exc_info.value.message == "Failed to get phone numbers"
        assert await _count_accounts(linker.session) == 0

    @pytest.mark.asyncio
    async def test_webhook_subscription_failure_still_links(self, linker, organization, fake_graph):
        fake_graph.set("POST", f"/{fake_graph.waba_id}/subscribed_apps", 500, {
            "error": {"message": "An unknown error has occurred."},
        })

        account = await _link(linker, organization)

        assert account.status == "ACTIVE"
        assert await _count_accounts(linker.session) == 1


# =============================================================================
# Messaging
# =============================================================================


class TestSendTextMessage:
    """Tests for sending through a linked number."""

    @pytest.mark.parametrize("raw,expected", [
        ("+15551234567", "15551234567"),
        ("15551234567", "15551234567"),
        ("+1+555", "1555"),
    ])
    def test_normalize_recipient(self, raw, expected):
        assert normalize_recipient(raw) == expected

    @pytest.mark.asyncio
    async def test_sends_with_decrypted_token(self, linker, organization, fake_graph):
        await _link(linker, organization)

        result = await linker.send_text_message(
            fake_graph.phone_number_id, "+15551234567", "Hello", organization_id=organization.id
        )

        assert result["messages"][0]["id"].startswith("wamid.")
        request = fake_graph.requests_to("POST", f"/{fake_graph.phone_number_id}/messages")[0]
        assert request.headers["Authorization"] == f"Bearer {fake_graph.access_token}"
        body = json.loads(request.content)
        assert body["to"] == "15551234567"
        assert body["text"] == {"preview_url": False, "body": "Hello"}

    @pytest.mark.asyncio
    async def test_unknown_phone_number(self, linker, organization):
        with pytest.raises(AccountNotFoundError):
            await linker.send_text_message("unknown", "15551234567", "Hello")

    @pytest.mark.asyncio
    async def test_other_organization_number(self, linker, organization, other_organization, fake_graph):
        await _link(linker, organization)

        with pytest.raises(AccountNotFoundError):
            await linker.send_text_message(
                fake_graph.phone_number_id, "15551234567", "Hello",
                organization_id=other_organization.id,
            )

    @pytest.mark.asyncio
    async def test_corrupted_token(self, linker, organization, fake_graph):
        account = await _link(linker, organization)
        account.access_token = "00:00:00"
        await linker.session.commit()

        with pytest.raises(DecryptionError):
            await linker.send_text_message(fake_graph.phone_number_id, "15551234567", "Hello")

        assert fake_graph.requests_to("POST", f"/{fake_graph.phone_number_id}/messages") == []

    @pytest.mark.asyncio
    async def test_upstream_rejection(self, linker, organization, fake_graph):
        await _link(linker, organization)
        fake_graph.set("POST", f"/{fake_graph.phone_number_id}/messages", 400, {
            "error": {"message": "Message failed to send because more than 24 hours have passed"},
        })

        with pytest.raises(ExternalServiceError) as exc_info:
            await linker.send_text_message(fake_graph.phone_number_id, "15551234567", "Hello")

        assert "more than 24 hours" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_owns_phone_number(self, linker, organization, other_organization, fake_graph):
        await _link(linker, organization)

        assert await linker.owns_phone_number(fake_graph.phone_number_id, organization.id)
        assert not await linker.owns_phone_number(fake_graph.phone_number_id, other_organization.id)


# =============================================================================
# Account Management
# =============================================================================


class TestAccountManagement:
    """Tests for listing, updating and deleting accounts."""

    @pytest.mark.asyncio
    async def test_list_is_tenant_scoped(self, linker, organization, other_organization):
        account = await _link(linker, organization)

        assert [a.id for a in await linker.list_accounts(organization.id)] == [account.id]
        assert await linker.list_accounts(other_organization.id) == []

    @pytest.mark.asyncio
    async def test_get_other_organization(self, linker, organization, other_organization):
        account = await _link(linker, organization)

        with pytest.raises(AccountNotFoundError):
            await linker.get_account(account.id, other_organization.id)

    @pytest.mark.asyncio
    async def test_update_name_and_status(self, linker, organization):
        account = await _link(linker, organization)

        updated = await linker.update_account(
            account.id, organization.id,
            display_name="Support Line", status=AccountStatus.SUSPENDED,
        )

        assert updated.display_name == "Support Line"
        assert updated.status == "SUSPENDED"

    @pytest.mark.asyncio
    async def test_update_ignores_empty_name(self, linker, organization):
        account = await _link(linker, organization)

        updated = await linker.update_account(account.id, organization.id, display_name="")

        assert updated.display_name == "Acme Support"

    @pytest.mark.asyncio
    async def test_delete_detaches_bots(self, linker, organization):
        account = await _link(linker, organization)
        bot = Bot(
            organization_id=organization.id,
            name="Linked Bot",
            whatsapp_account_id=account.id,
        )
        linker.session.add(bot)
        await linker.session.commit()

        await linker.delete_account(account.id, organization.id, role="ADMIN")
        await linker.session.commit()

        assert await _count_accounts(linker.session) == 0
        await linker.session.refresh(bot)
        assert bot.whatsapp_account_id is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("role", ["AGENT", "VIEWER", ""])
    async def test_non_admin_cannot_delete(self, linker, organization, role):
        account = await _link(linker, organization)

        with pytest.raises(ForbiddenError):
            await linker.delete_account(account.id, organization.id, role=role)

        assert await _count_accounts(linker.session) == 1

    @pytest.mark.asyncio
    async def test_delete_missing_account_reports_not_found(self, linker, organization):
        with pytest.raises(AccountNotFoundError):
            await linker.delete_account("missing", organization.id, role="AGENT")
