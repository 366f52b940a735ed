"""
Database Repositories

Repository pattern implementation for data access. Every lookup that
takes an organization id is tenant-scoped: rows of other organizations
behave as if they did not exist.
"""

from typing import Any, Dict, Generic, Iterable, List, Optional, Tuple, Type, TypeVar

from sqlalchemy import delete, desc, func, insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from .base import Base
from .models import Bot, BotEdge, BotNode, Organization, WhatsAppAccount


ModelType = TypeVar("ModelType", bound=Base)


# =============================================================================
# Base Repository
# =============================================================================


class BaseRepository(Generic[ModelType]):
    """Base repository with common CRUD operations."""

    model: Type[ModelType]

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, **kwargs) -> ModelType:
        """Create a new entity."""
        instance = self.model(**kwargs)
        self.session.add(instance)
        await self.session.flush()
        await self.session.refresh(instance)
        return instance


# =============================================================================
# Organization Repository
# =============================================================================


class OrganizationRepository(BaseRepository[Organization]):
    """Repository for Organization entities."""

    model = Organization


# =============================================================================
# Bot Repository
# =============================================================================


class BotRepository(BaseRepository[Bot]):
    """Repository for bots and their flow graphs."""

    model = Bot

    async def get_for_organization(
        self,
        bot_id: str,
        organization_id: str,
        with_graph: bool = False,
        refresh: bool = False,
    ) -> Optional[Bot]:
        """Get a bot scoped to its organization."""
        query = select(Bot).where(
            Bot.id == bot_id,
            Bot.organization_id == organization_id,
        )
        if with_graph:
            query = query.options(
                selectinload(Bot.nodes),
                selectinload(Bot.edges),
            )
        if refresh:
            query = query.execution_options(populate_existing=True)

        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def list_with_node_counts(
        self,
        organization_id: str,
    ) -> List[Tuple[Bot, int]]:
        """List an organization's bots, most recently updated first."""
        node_counts = (
            select(BotNode.bot_id, func.count(BotNode.id).label("node_count"))
            .group_by(BotNode.bot_id)
            .subquery()
        )
        result = await self.session.execute(
            select(Bot, func.coalesce(node_counts.c.node_count, 0))
            .outerjoin(node_counts, node_counts.c.bot_id == Bot.id)
            .where(Bot.organization_id == organization_id)
            .order_by(desc(Bot.updated_at))
        )
        return [(bot, int(count)) for bot, count in result.all()]

    async def replace_nodes(
        self,
        bot_id: str,
        nodes: Iterable[Dict[str, Any]],
    ) -> int:
        """Delete every node of the bot and bulk insert ``nodes``."""
        await self.session.execute(
            delete(BotNode).where(BotNode.bot_id == bot_id)
        )
        rows = [dict(node, bot_id=bot_id) for node in nodes]
        if rows:
            await self.session.execute(insert(BotNode), rows)
        return len(rows)

    async def replace_edges(
        self,
        bot_id: str,
        edges: Iterable[Dict[str, Any]],
    ) -> int:
        """Delete every edge of the bot and bulk insert ``edges``."""
        await self.session.execute(
            delete(BotEdge).where(BotEdge.bot_id == bot_id)
        )
        rows = [dict(edge, bot_id=bot_id) for edge in edges]
        if rows:
            await self.session.execute(insert(BotEdge), rows)
        return len(rows)

    async def bump_version(self, bot_id: str, expected: Optional[int] = None) -> bool:
        """Increment the graph version, optionally only from ``expected``.

        Returns False when ``expected`` no longer matches the stored version.
        """
        query = update(Bot).where(Bot.id == bot_id)
        if expected is not None:
            query = query.where(Bot.version == expected)
        result = await self.session.execute(
            query.values(version=Bot.version + 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0

    async def delete_with_graph(self, bot_id: str) -> None:
        """Remove a bot together with its edges and nodes."""
        await self.session.execute(delete(BotEdge).where(BotEdge.bot_id == bot_id))
        await self.session.execute(delete(BotNode).where(BotNode.bot_id == bot_id))
        await self.session.execute(delete(Bot).where(Bot.id == bot_id))


# =============================================================================
# WhatsApp Account Repository
# =============================================================================


class WhatsAppAccountRepository(BaseRepository[WhatsAppAccount]):
    """Repository for linked WhatsApp Business accounts."""

    model = WhatsAppAccount

    async def get_for_organization(
        self,
        account_id: str,
        organization_id: str,
    ) -> Optional[WhatsAppAccount]:
        result = await self.session.execute(
            select(WhatsAppAccount).where(
                WhatsAppAccount.id == account_id,
                WhatsAppAccount.organization_id == organization_id,
            )
        )
        return result.scalar_one_or_none()

    async def get_by_phone_number_id(
        self,
        phone_number_id: str,
        organization_id: Optional[str] = None,
    ) -> Optional[WhatsAppAccount]:
        """Look up an account by Meta phone number id.

        The same number can be linked more than once; the newest row wins.
        """
        query = select(WhatsAppAccount).where(
            WhatsAppAccount.phone_number_id == phone_number_id
        )
        if organization_id is not None:
            query = query.where(WhatsAppAccount.organization_id == organization_id)
        result = await self.session.execute(
            query.order_by(desc(WhatsAppAccount.created_at)).limit(1)
        )
        return result.scalar_one_or_none()

    async def list_by_organization(self, organization_id: str) -> List[WhatsAppAccount]:
        result = await self.session.execute(
            select(WhatsAppAccount)
            .where(WhatsAppAccount.organization_id == organization_id)
            .order_by(desc(WhatsAppAccount.created_at))
        )
        return list(result.scalars().all())

    async def delete_account(self, account_id: str) -> None:
        """Delete an account and detach the bots that used it."""
        await self.session.execute(
            update(Bot)
            .where(Bot.whatsapp_account_id == account_id)
            .values(whatsapp_account_id=None)
        )
        await self.session.execute(
            delete(WhatsAppAccount).where(WhatsAppAccount.id == account_id)
        )


__all__ = [
    "BaseRepository",
    "OrganizationRepository",
    "BotRepository",
    "WhatsAppAccountRepository",
]
