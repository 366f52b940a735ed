"""
Database Module

SQLAlchemy models, repositories and session management.
"""

from .base import Base, DatabaseManager, TimestampMixin
from .models import Bot, BotEdge, BotNode, Organization, WhatsAppAccount
from .repositories import (
    BotRepository,
    OrganizationRepository,
    WhatsAppAccountRepository,
)

__all__ = [
    "Base",
    "DatabaseManager",
    "TimestampMixin",
    "Bot",
    "BotEdge",
    "BotNode",
    "Organization",
    "WhatsAppAccount",
    "BotRepository",
    "OrganizationRepository",
    "WhatsAppAccountRepository",
]
