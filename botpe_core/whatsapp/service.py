"""
WhatsApp Account Linker

Runs the embedded-signup flow that turns an OAuth code into a stored
WhatsApp account, sends text messages through linked numbers, and
manages the organization's accounts.
"""

from typing import Any, Dict, List, Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from ..database.models import DEFAULT_MESSAGING_LIMIT, WhatsAppAccount
from ..database.repositories import WhatsAppAccountRepository
from ..security.encryption import TokenEncryptor
from ..security.roles import is_admin_role
from .base import (
    AccountNotFoundError,
    AccountStatus,
    ExternalServiceError,
    ForbiddenError,
    QualityRating,
    SignupAttempt,
    SignupState,
)
from .client import WhatsAppGraphClient

logger = structlog.get_logger(__name__)


def normalize_recipient(to: str) -> str:
    """Graph API wants the number with country code and no ``+``."""
    return to.replace("+", "")


class WhatsAppAccountLinker:
    """
    WhatsApp account service.

    Args:
        session: Request-scoped session; the account row is only added
            once every Graph API step has succeeded.
        graph_client: Graph API client.
        encryptor: Encrypts tokens before storage and decrypts them for sends.
    """

    def __init__(
        self,
        session: AsyncSession,
        graph_client: WhatsAppGraphClient,
        encryptor: TokenEncryptor,
    ):
        self.session = session
        self.graph = graph_client
        self.encryptor = encryptor
        self.accounts = WhatsAppAccountRepository(session)

    # -------------------------------------------------------------------------
    # Embedded signup
    # -------------------------------------------------------------------------

    async def handle_embedded_signup_callback(
        self,
        code: str,
        organization_id: str,
    ) -> WhatsAppAccount:
        """
        Link a WhatsApp Business phone number from an OAuth code.

        Raises:
            ExternalServiceError: Any required Graph API step failed, the
                token grants no WABA, or the WABA has no phone numbers.
                Nothing is persisted in that case.
        """
        attempt = SignupAttempt(organization_id=organization_id)
        log = logger.bind(organization_id=organization_id)
        log.info("embedded_signup_started")

        try:
            access_token = await self.graph.exchange_code_for_token(code)
            attempt.advance(SignupState.TOKEN_EXCHANGED)

            waba_id = await self.graph.resolve_waba_id(access_token)
            waba = await self.graph.get_waba_info(waba_id, access_token)
            attempt.waba_id = waba.id
            attempt.advance(SignupState.WABA_RESOLVED)

            phone_numbers = await self.graph.get_phone_numbers(waba.id, access_token)
            if not phone_numbers:
                raise ExternalServiceError("No phone numbers found for this WABA")
            # Only the first number is linked, even when the WABA has several
            phone_number = phone_numbers[0]
            attempt.phone_number_id = phone_number.id
            attempt.advance(SignupState.PHONE_NUMBER_RESOLVED)
        except ExternalServiceError as e:
            log.error(
                "embedded_signup_failed",
                state=attempt.state.value,
                error=e.message,
                status_code=e.status_code,
            )
            raise

        try:
            await self.graph.subscribe_app(waba.id, access_token)
            attempt.webhook_subscribed = True
            attempt.advance(SignupState.WEBHOOK_SUBSCRIBED)
        except ExternalServiceError as e:
            # The account is still usable; webhooks can be subscribed later
            log.warning(
                "webhook_subscription_failed",
                waba_id=waba.id,
                error=e.message,
                upstream_message=e.upstream_message,
            )

        account = WhatsAppAccount(
            organization_id=organization_id,
            waba_id=waba.id,
            phone_number_id=phone_number.id,
            display_phone_number=phone_number.display_phone_number,
            display_name=waba.name,
            verified_name=phone_number.verified_name,
            access_token=self.encryptor.encrypt(access_token),
            quality_rating=QualityRating.parse(phone_number.quality_rating).value,
            status=AccountStatus.ACTIVE.value,
            messaging_limit=DEFAULT_MESSAGING_LIMIT,
        )
        self.session.add(account)
        await self.session.flush()
        await self.session.refresh(account)
        attempt.advance(SignupState.PERSISTED)

        log.info(
            "whatsapp_account_created",
            account_id=account.id,
            waba_id=waba.id,
            webhook_subscribed=attempt.webhook_subscribed,
        )
        return account

    # -------------------------------------------------------------------------
    # Messaging
    # -------------------------------------------------------------------------

    async def send_text_message(
        self,
        phone_number_id: str,
        to: str,
        message: str,
        organization_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Send a text message from a linked phone number.

        Raises:
            AccountNotFoundError: No account uses ``phone_number_id``.
            DecryptionError: The stored token cannot be decrypted.
            ExternalServiceError: The Graph API rejected the send.
        """
        account = await self.accounts.get_by_phone_number_id(
            phone_number_id, organization_id=organization_id
        )
        if account is None:
            raise AccountNotFoundError(phone_number_id)

        access_token = self.encryptor.decrypt(account.access_token)
        recipient = normalize_recipient(to)

        result = await self.graph.send_text_message(
            phone_number_id, recipient, message, access_token
        )

        message_ids = [m.get("id") for m in result.get("messages") or []]
        logger.info(
            "whatsapp_message_sent",
            phone_number_id=phone_number_id,
            message_ids=message_ids,
        )
        return result

    # -------------------------------------------------------------------------
    # Account management
    # -------------------------------------------------------------------------

    async def list_accounts(self, organization_id: str) -> List[WhatsAppAccount]:
        return await self.accounts.list_by_organization(organization_id)

    async def get_account(self, account_id: str, organization_id: str) -> WhatsAppAccount:
        account = await self.accounts.get_for_organization(account_id, organization_id)
        if account is None:
            raise AccountNotFoundError(account_id)
        return account

    async def owns_phone_number(self, phone_number_id: str, organization_id: str) -> bool:
        account = await self.accounts.get_by_phone_number_id(
            phone_number_id, organization_id=organization_id
        )
        return account is not None

    async def update_account(
        self,
        account_id: str,
        organization_id: str,
        display_name: Optional[str] = None,
        status: Optional[AccountStatus] = None,
    ) -> WhatsAppAccount:
        """Rename an account or change its status. Empty names are ignored."""
        account = await self.get_account(account_id, organization_id)

        if display_name:
            account.display_name = display_name
        if status is not None:
            account.status = AccountStatus(status).value

        await self.session.flush()
        await self.session.refresh(account)
        logger.info("whatsapp_account_updated", account_id=account_id)
        return account

    async def delete_account(
        self,
        account_id: str,
        organization_id: str,
        role: str,
    ) -> None:
        """
        Delete an account; bots that used it are detached, not deleted.

        Raises:
            AccountNotFoundError: Account is not in the organization.
            ForbiddenError: ``role`` is not an admin role.
        """
        await self.get_account(account_id, organization_id)

        if not is_admin_role(role):
            raise ForbiddenError("Only admins can delete WhatsApp accounts")

        await self.accounts.delete_account(account_id)
        logger.info(
            "whatsapp_account_deleted",
            account_id=account_id,
            organization_id=organization_id,
        )


__all__ = [
    "normalize_recipient",
    "WhatsAppAccountLinker",
]
