"""
WhatsApp Module

Embedded-signup account linking and messaging over the Meta Graph API.
"""

from .base import (
    AccountNotFoundError,
    AccountStatus,
    ExternalServiceError,
    ForbiddenError,
    InvalidSignupTransition,
    PhoneNumberInfo,
    QualityRating,
    SignupAttempt,
    SignupState,
    WABAInfo,
    WhatsAppError,
)
from .client import GraphAPIConfig, WhatsAppGraphClient
from .service import WhatsAppAccountLinker, normalize_recipient

__all__ = [
    "AccountNotFoundError",
    "AccountStatus",
    "ExternalServiceError",
    "ForbiddenError",
    "InvalidSignupTransition",
    "PhoneNumberInfo",
    "QualityRating",
    "SignupAttempt",
    "SignupState",
    "WABAInfo",
    "WhatsAppError",
    "GraphAPIConfig",
    "WhatsAppGraphClient",
    "WhatsAppAccountLinker",
    "normalize_recipient",
]
