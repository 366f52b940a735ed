"""
Database Models

SQLAlchemy ORM models for organizations, bots, their flow graphs,
and linked WhatsApp Business accounts.
"""

from typing import Any, Dict, List, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, TimestampMixin

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in development and tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


DEFAULT_WELCOME_MESSAGE = "Hello! How can I help you today?"
DEFAULT_FALLBACK_MESSAGE = "I didn't understand that. Can you please rephrase?"
DEFAULT_MESSAGING_LIMIT = 1000


# =============================================================================
# Organization Models
# =============================================================================


class Organization(Base, TimestampMixin):
    """Tenant that owns bots and WhatsApp accounts."""

    __tablename__ = "organizations"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    bots = relationship("Bot", back_populates="organization")
    whatsapp_accounts = relationship("WhatsAppAccount", back_populates="organization")


# =============================================================================
# WhatsApp Models
# =============================================================================


class WhatsAppAccount(Base, TimestampMixin):
    """WhatsApp Business phone number linked through embedded signup."""

    __tablename__ = "whatsapp_accounts"

    organization_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
    )

    # Meta identifiers
    waba_id: Mapped[str] = mapped_column(String(64), nullable=False)
    phone_number_id: Mapped[str] = mapped_column(String(64), nullable=False)
    display_phone_number: Mapped[str] = mapped_column(String(32), nullable=False)
    display_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    verified_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Encrypted iv:tag:ciphertext, never returned to API callers
    access_token: Mapped[str] = mapped_column(Text, nullable=False)

    quality_rating: Mapped[str] = mapped_column(String(20), default="UNKNOWN")
    status: Mapped[str] = mapped_column(String(20), default="PENDING")
    messaging_limit: Mapped[int] = mapped_column(Integer, default=DEFAULT_MESSAGING_LIMIT)

    organization = relationship("Organization", back_populates="whatsapp_accounts")
    bots = relationship("Bot", back_populates="whatsapp_account", passive_deletes=True)

    __table_args__ = (
        Index("ix_whatsapp_accounts_org", "organization_id"),
        Index("ix_whatsapp_accounts_phone_number_id", "phone_number_id"),
    )


# =============================================================================
# Bot Models
# =============================================================================


class Bot(Base, TimestampMixin):
    """Conversational bot and the header row of its flow graph."""

    __tablename__ = "bots"

    organization_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
    )
    whatsapp_account_id: Mapped[Optional[str]] = mapped_column(
        String(36),
        ForeignKey("whatsapp_accounts.id", ondelete="SET NULL"),
        nullable=True,
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    welcome_message: Mapped[str] = mapped_column(
        Text, default=DEFAULT_WELCOME_MESSAGE, nullable=False
    )
    fallback_message: Mapped[str] = mapped_column(
        Text, default=DEFAULT_FALLBACK_MESSAGE, nullable=False
    )

    organization = relationship("Organization", back_populates="bots")
    whatsapp_account = relationship("WhatsAppAccount", back_populates="bots")
    nodes: Mapped[List["BotNode"]] = relationship(
        "BotNode",
        back_populates="bot",
        order_by=lambda: (BotNode.created_at, BotNode.node_id),
        passive_deletes=True,
    )
    edges: Mapped[List["BotEdge"]] = relationship(
        "BotEdge",
        back_populates="bot",
        order_by="BotEdge.edge_id",
        passive_deletes=True,
    )

    __table_args__ = (
        Index("ix_bots_org", "organization_id"),
        Index("ix_bots_org_updated", "organization_id", "updated_at"),
    )


class BotNode(Base, TimestampMixin):
    """Node in a bot's flow graph."""

    __tablename__ = "bot_nodes"

    bot_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("bots.id", ondelete="CASCADE"),
        nullable=False,
    )

    # Editor-assigned id, unique only within one bot
    node_id: Mapped[str] = mapped_column(String(100), nullable=False)
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    label: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    data: Mapped[Dict[str, Any]] = mapped_column(JSONType, default=dict, nullable=False)
    position: Mapped[Dict[str, Any]] = mapped_column(JSONType, default=dict, nullable=False)

    bot = relationship("Bot", back_populates="nodes")

    __table_args__ = (
        UniqueConstraint("bot_id", "node_id", name="uq_bot_nodes_bot_node"),
        Index("ix_bot_nodes_bot", "bot_id"),
    )


class BotEdge(Base, TimestampMixin):
    """Directed edge between two nodes of the same bot."""

    __tablename__ = "bot_edges"

    bot_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("bots.id", ondelete="CASCADE"),
        nullable=False,
    )

    edge_id: Mapped[str] = mapped_column(String(100), nullable=False)
    source: Mapped[str] = mapped_column(String(100), nullable=False)
    target: Mapped[str] = mapped_column(String(100), nullable=False)
    condition: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    bot = relationship("Bot", back_populates="edges")

    __table_args__ = (
        UniqueConstraint("bot_id", "edge_id", name="uq_bot_edges_bot_edge"),
        Index("ix_bot_edges_bot", "bot_id"),
    )


__all__ = [
    "JSONType",
    "DEFAULT_WELCOME_MESSAGE",
    "DEFAULT_FALLBACK_MESSAGE",
    "DEFAULT_MESSAGING_LIMIT",
    "Organization",
    "WhatsAppAccount",
    "Bot",
    "BotNode",
    "BotEdge",
]
