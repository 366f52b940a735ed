"""
WhatsApp API Routes

This module provides REST API endpoints for linking WhatsApp Business
accounts through embedded signup and sending messages with them.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Path
from pydantic import Field
from sqlalchemy.ext.asyncio import AsyncSession

from ...database.models import WhatsAppAccount
from ...flows.base import CamelModel
from ...whatsapp.base import AccountStatus
from ...whatsapp.service import WhatsAppAccountLinker
from ..auth import AuthContext
from ..base import AuthorizationError, success_response
from ..dependencies import (
    get_account_linker,
    get_db_session,
    get_organization_context,
)


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/whatsapp", tags=["WhatsApp"])


# =============================================================================
# Request/Response Models
# =============================================================================


class EmbeddedSignupCallbackRequest(CamelModel):
    """OAuth code returned by Meta's embedded signup popup."""

    code: str = Field(..., min_length=1, description="Authorization code")


class AccountUpdateRequest(CamelModel):
    display_name: Optional[str] = Field(default=None, description="Display name")
    status: Optional[AccountStatus] = Field(default=None, description="Account status")


class SendMessageRequest(CamelModel):
    """Text message to send from a linked number."""

    phone_number_id: str = Field(..., min_length=1, description="Sending phone number id")
    to: str = Field(..., min_length=1, description="Recipient number with country code")
    message: str = Field(..., min_length=1, description="Message body")


# =============================================================================
# Helper Functions
# =============================================================================


def account_to_response(account: WhatsAppAccount) -> Dict[str, Any]:
    """Public view of an account; the access token is never included."""
    return {
        "id": account.id,
        "organizationId": account.organization_id,
        "wabaId": account.waba_id,
        "phoneNumberId": account.phone_number_id,
        "displayPhoneNumber": account.display_phone_number,
        "displayName": account.display_name,
        "verifiedName": account.verified_name,
        "qualityRating": account.quality_rating,
        "status": account.status,
        "messagingLimit": account.messaging_limit,
        "createdAt": account.created_at,
        "updatedAt": account.updated_at,
    }


# =============================================================================
# Routes
# =============================================================================


@router.post("/embedded-signup/callback", summary="Embedded Signup Callback")
async def embedded_signup_callback(
    request: EmbeddedSignupCallbackRequest,
    auth: AuthContext = Depends(get_organization_context),
    linker: WhatsAppAccountLinker = Depends(get_account_linker),
    db: AsyncSession = Depends(get_db_session),
):
    """Exchange the signup code and link the WABA's phone number."""
    logger.info(
        "Processing embedded signup callback",
        extra={"user_id": auth.user_id, "organization_id": auth.organization_id},
    )

    account = await linker.handle_embedded_signup_callback(
        request.code, auth.organization_id
    )
    await db.commit()

    return success_response(account_to_response(account))


@router.get("/accounts", summary="List WhatsApp Accounts")
async def list_accounts(
    auth: AuthContext = Depends(get_organization_context),
    linker: WhatsAppAccountLinker = Depends(get_account_linker),
):
    accounts = await linker.list_accounts(auth.organization_id)
    return success_response([account_to_response(a) for a in accounts])


@router.get("/accounts/{account_id}", summary="Get WhatsApp Account")
async def get_account(
    account_id: str = Path(...),
    auth: AuthContext = Depends(get_organization_context),
    linker: WhatsAppAccountLinker = Depends(get_account_linker),
):
    account = await linker.get_account(account_id, auth.organization_id)
    return success_response(account_to_response(account))


@router.patch("/accounts/{account_id}", summary="Update WhatsApp Account")
async def update_account(
    request: AccountUpdateRequest,
    account_id: str = Path(...),
    auth: AuthContext = Depends(get_organization_context),
    linker: WhatsAppAccountLinker = Depends(get_account_linker),
    db: AsyncSession = Depends(get_db_session),
):
    account = await linker.update_account(
        account_id,
        auth.organization_id,
        display_name=request.display_name,
        status=request.status,
    )
    await db.commit()

    return success_response(account_to_response(account))


@router.delete("/accounts/{account_id}", summary="Delete WhatsApp Account")
async def delete_account(
    account_id: str = Path(...),
    auth: AuthContext = Depends(get_organization_context),
    linker: WhatsAppAccountLinker = Depends(get_account_linker),
    db: AsyncSession = Depends(get_db_session),
):
    """Delete an account. Admins only."""
    await linker.delete_account(
        account_id,
        auth.organization_id,
        role=auth.role.value if auth.role else "",
    )
    await db.commit()

    return success_response({"deleted": True, "id": account_id})


@router.post("/messages/send", summary="Send Text Message")
async def send_message(
    request: SendMessageRequest,
    auth: AuthContext = Depends(get_organization_context),
    linker: WhatsAppAccountLinker = Depends(get_account_linker),
):
    """Send a text message from one of the organization's numbers."""
    if not await linker.owns_phone_number(request.phone_number_id, auth.organization_id):
        raise AuthorizationError(message="Phone number not found or access denied")

    result = await linker.send_text_message(
        request.phone_number_id,
        request.to,
        request.message,
        organization_id=auth.organization_id,
    )
    return success_response(result)
