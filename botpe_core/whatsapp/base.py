"""
WhatsApp Base Types

Enums, Graph API payload records, the embedded-signup state machine,
and the exceptions raised while linking or using an account.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


DEFAULT_GRAPH_API_VERSION = "v18.0"
GRAPH_API_BASE_URL = "https://graph.facebook.com"
WABA_MANAGEMENT_SCOPE = "whatsapp_business_management"
WABA_FIELDS = "id,name,timezone_id,message_template_namespace"


# =============================================================================
# Enums
# =============================================================================


class QualityRating(str, Enum):
    """Meta's phone number quality rating."""

    GREEN = "GREEN"
    YELLOW = "YELLOW"
    RED = "RED"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def parse(cls, value: Optional[str]) -> "QualityRating":
        try:
            return cls(str(value).upper())
        except ValueError:
            return cls.UNKNOWN


class AccountStatus(str, Enum):
    """Lifecycle of a linked account."""

    ACTIVE = "ACTIVE"
    PENDING = "PENDING"
    SUSPENDED = "SUSPENDED"


class SignupState(str, Enum):
    """Steps of one embedded-signup attempt, in order."""

    AWAITING_CODE = "awaiting_code"
    TOKEN_EXCHANGED = "token_exchanged"
    WABA_RESOLVED = "waba_resolved"
    PHONE_NUMBER_RESOLVED = "phone_number_resolved"
    WEBHOOK_SUBSCRIBED = "webhook_subscribed"
    PERSISTED = "persisted"


# Allowed transitions; subscription is optional, so PHONE_NUMBER_RESOLVED
# may go straight to PERSISTED
SIGNUP_TRANSITIONS: Dict[SignupState, List[SignupState]] = {
    SignupState.AWAITING_CODE: [SignupState.TOKEN_EXCHANGED],
    SignupState.TOKEN_EXCHANGED: [SignupState.WABA_RESOLVED],
    SignupState.WABA_RESOLVED: [SignupState.PHONE_NUMBER_RESOLVED],
    SignupState.PHONE_NUMBER_RESOLVED: [
        SignupState.WEBHOOK_SUBSCRIBED,
        SignupState.PERSISTED,
    ],
    SignupState.WEBHOOK_SUBSCRIBED: [SignupState.PERSISTED],
    SignupState.PERSISTED: [],
}


# =============================================================================
# Graph API Records
# =============================================================================


@dataclass
class WABAInfo:
    """WhatsApp Business Account metadata."""

    id: str
    name: Optional[str] = None
    timezone_id: Optional[str] = None
    message_template_namespace: Optional[str] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "WABAInfo":
        return cls(
            id=str(data["id"]),
            name=data.get("name"),
            timezone_id=data.get("timezone_id"),
            message_template_namespace=data.get("message_template_namespace"),
        )


@dataclass
class PhoneNumberInfo:
    """A phone number registered under a WABA."""

    id: str
    display_phone_number: str
    verified_name: Optional[str] = None
    code_verification_status: Optional[str] = None
    quality_rating: Optional[str] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "PhoneNumberInfo":
        return cls(
            id=str(data["id"]),
            display_phone_number=data.get("display_phone_number", ""),
            verified_name=data.get("verified_name"),
            code_verification_status=data.get("code_verification_status"),
            quality_rating=data.get("quality_rating"),
        )


@dataclass
class SignupAttempt:
    """Progress of one embedded-signup callback."""

    organization_id: str
    state: SignupState = SignupState.AWAITING_CODE
    waba_id: Optional[str] = None
    phone_number_id: Optional[str] = None
    webhook_subscribed: bool = False
    history: List[SignupState] = field(default_factory=lambda: [SignupState.AWAITING_CODE])
    started_at: datetime = field(default_factory=datetime.utcnow)

    def advance(self, state: SignupState) -> None:
        if state not in SIGNUP_TRANSITIONS[self.state]:
            raise InvalidSignupTransition(self.state, state)
        self.state = state
        self.history.append(state)


# =============================================================================
# Exceptions
# =============================================================================


class WhatsAppError(Exception):
    """Base exception for WhatsApp errors."""
    pass


class ExternalServiceError(WhatsAppError):
    """The Graph API call failed or returned an unusable response."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        upstream_message: Optional[str] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.upstream_message = upstream_message
        super().__init__(message)


class AccountNotFoundError(WhatsAppError):
    """No account matches within the caller's scope."""

    def __init__(self, identifier: str):
        self.identifier = identifier
        super().__init__("WhatsApp account not found")


class ForbiddenError(WhatsAppError):
    """The caller is authenticated but lacks the required role."""
    pass


class InvalidSignupTransition(WhatsAppError):
    """Signup steps were run out of order."""

    def __init__(self, current: SignupState, requested: SignupState):
        self.current = current
        self.requested = requested
        super().__init__(f"Cannot move signup from {current.value} to {requested.value}")


__all__ = [
    "DEFAULT_GRAPH_API_VERSION",
    "GRAPH_API_BASE_URL",
    "WABA_MANAGEMENT_SCOPE",
    "WABA_FIELDS",
    "QualityRating",
    "AccountStatus",
    "SignupState",
    "SIGNUP_TRANSITIONS",
    "WABAInfo",
    "PhoneNumberInfo",
    "SignupAttempt",
    "WhatsAppError",
    "ExternalServiceError",
    "AccountNotFoundError",
    "ForbiddenError",
    "InvalidSignupTransition",
]
