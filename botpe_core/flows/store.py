"""
Flow Graph Store

Authoritative storage of a bot's node/edge graph. Saves replace the
whole node set and/or edge set inside the caller's transaction, so a
failure anywhere rolls the bot back to its previous graph.
"""

import logging
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from ..database.models import (
    DEFAULT_FALLBACK_MESSAGE,
    DEFAULT_WELCOME_MESSAGE,
    Bot,
    BotNode,
)
from ..database.repositories import BotRepository, WhatsAppAccountRepository
from .base import (
    CLONE_NAME_SUFFIX,
    START_NODE_ID,
    START_NODE_LABEL,
    START_NODE_POSITION,
    BotCreate,
    BotGraphUpdate,
    BotNotFoundError,
    BotSummary,
    EdgeDescriptor,
    GraphValidationError,
    NodeDescriptor,
    NodeType,
    VersionConflictError,
)
from .validation import (
    coerce_edges,
    coerce_nodes,
    find_duplicate_ids,
    raise_for_issues,
    validate_graph,
)


logger = logging.getLogger(__name__)


def _node_row(node: NodeDescriptor) -> dict:
    return {
        "node_id": node.node_id,
        "type": node.type,
        "label": node.label,
        "data": node.data,
        "position": node.position.model_dump(),
    }


def _edge_row(edge: EdgeDescriptor) -> dict:
    return {
        "edge_id": edge.edge_id,
        "source": edge.source,
        "target": edge.target,
        "condition": edge.condition,
    }


class FlowGraphStore:
    """
    Request-scoped service over a bot's flow graph.

    Args:
        session: Session whose transaction the store writes in. The
            caller commits; any exception raised here must lead to a
            rollback.
        strict_validation: Reject dangling edges, a missing start node
            and malformed CONDITION branches on full-graph saves.
    """

    def __init__(self, session: AsyncSession, strict_validation: bool = False):
        self.session = session
        self.strict_validation = strict_validation
        self.bots = BotRepository(session)
        self.accounts = WhatsAppAccountRepository(session)

    async def _require_bot(
        self,
        bot_id: str,
        organization_id: str,
        with_graph: bool = False,
        refresh: bool = False,
    ) -> Bot:
        bot = await self.bots.get_for_organization(
            bot_id, organization_id, with_graph=with_graph, refresh=refresh
        )
        if bot is None:
            raise BotNotFoundError(bot_id)
        return bot

    async def _owns_account(self, account_id: str, organization_id: str) -> bool:
        account = await self.accounts.get_for_organization(account_id, organization_id)
        return account is not None

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def get_bot(self, bot_id: str, organization_id: str) -> Bot:
        """Get a bot with its nodes and edges loaded."""
        return await self._require_bot(bot_id, organization_id, with_graph=True)

    async def list_bots(self, organization_id: str) -> List[BotSummary]:
        rows = await self.bots.list_with_node_counts(organization_id)
        return [
            BotSummary(
                id=bot.id,
                name=bot.name,
                description=bot.description,
                is_active=bot.is_active,
                version=bot.version,
                whatsapp_account_id=bot.whatsapp_account_id,
                node_count=count,
                created_at=bot.created_at,
                updated_at=bot.updated_at,
            )
            for bot, count in rows
        ]

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    async def create_bot(
        self,
        organization_id: str,
        name: str,
        description: Optional[str] = None,
        welcome_message: Optional[str] = None,
        fallback_message: Optional[str] = None,
        whatsapp_account_id: Optional[str] = None,
    ) -> Bot:
        """
        Create an inactive bot at version 1 with its seed start node.

        Raises:
            GraphValidationError: The name is blank, or
                ``whatsapp_account_id`` is not an account of this
                organization.
        """
        if not name or not name.strip():
            raise GraphValidationError("Bot name is required", field="name")
        if whatsapp_account_id and not await self._owns_account(
            whatsapp_account_id, organization_id
        ):
            raise GraphValidationError(
                "WhatsApp account not found", field="whatsappAccountId"
            )

        bot = Bot(
            organization_id=organization_id,
            name=name,
            description=description,
            whatsapp_account_id=whatsapp_account_id,
            welcome_message=welcome_message or DEFAULT_WELCOME_MESSAGE,
            fallback_message=fallback_message or DEFAULT_FALLBACK_MESSAGE,
            is_active=False,
            version=1,
        )
        self.session.add(bot)
        await self.session.flush()

        self.session.add(BotNode(
            bot_id=bot.id,
            node_id=START_NODE_ID,
            type=NodeType.START.value,
            label=START_NODE_LABEL,
            data={},
            position=dict(START_NODE_POSITION),
        ))
        await self.session.flush()

        logger.info(
            f"Bot created: {bot.id}",
            extra={"organization_id": organization_id},
        )
        return await self._require_bot(bot.id, organization_id, with_graph=True, refresh=True)

    async def create_bot_from(self, organization_id: str, request: BotCreate) -> Bot:
        return await self.create_bot(
            organization_id,
            request.name,
            description=request.description,
            welcome_message=request.welcome_message,
            fallback_message=request.fallback_message,
            whatsapp_account_id=request.whatsapp_account_id,
        )

    async def replace_graph(
        self,
        bot_id: str,
        organization_id: str,
        update: BotGraphUpdate,
    ) -> Bot:
        """
        Patch scalar fields and replace the node and/or edge sets.

        ``update.nodes``/``update.edges`` set to ``None`` leave the stored
        set untouched; a list (even empty) replaces it wholesale. All
        validation runs before the first write.

        Raises:
            BotNotFoundError: Bot is not in the organization.
            GraphValidationError: A descriptor is missing a required field,
                ids repeat, or strict checks fail.
            VersionConflictError: ``expected_version`` is stale.
        """
        nodes = coerce_nodes(update.nodes) if update.nodes is not None else None
        edges = coerce_edges(update.edges) if update.edges is not None else None

        raise_for_issues(find_duplicate_ids(nodes, edges))

        bot = await self._require_bot(bot_id, organization_id)

        if update.expected_version is not None and update.expected_version != bot.version:
            raise VersionConflictError(bot_id, update.expected_version, bot.version)

        if self.strict_validation and update.is_structural:
            current = None
            if nodes is None or edges is None:
                current = await self._require_bot(bot_id, organization_id, with_graph=True)
            check_nodes = nodes if nodes is not None else [
                NodeDescriptor(
                    node_id=n.node_id, type=n.type, label=n.label,
                    data=n.data or {}, position=n.position or {},
                )
                for n in current.nodes
            ]
            check_edges = edges if edges is not None else [
                EdgeDescriptor(
                    edge_id=e.edge_id, source=e.source,
                    target=e.target, condition=e.condition,
                )
                for e in current.edges
            ]
            raise_for_issues(validate_graph(check_nodes, check_edges))

        # Empty strings do not overwrite name or messages
        if update.name:
            bot.name = update.name
        if update.description is not None:
            bot.description = update.description
        if update.welcome_message:
            bot.welcome_message = update.welcome_message
        if update.fallback_message:
            bot.fallback_message = update.fallback_message
        if update.is_active is not None:
            bot.is_active = update.is_active

        if nodes is not None:
            await self.bots.replace_nodes(bot_id, [_node_row(n) for n in nodes])
        if edges is not None:
            await self.bots.replace_edges(bot_id, [_edge_row(e) for e in edges])

        await self.session.flush()

        if update.is_structural:
            bumped = await self.bots.bump_version(bot_id, expected=update.expected_version)
            if not bumped:
                current = await self._require_bot(bot_id, organization_id, refresh=True)
                raise VersionConflictError(bot_id, update.expected_version, current.version)

        logger.info(
            f"Bot updated: {bot_id}",
            extra={
                "organization_id": organization_id,
                "nodes_replaced": nodes is not None,
                "edges_replaced": edges is not None,
            },
        )
        return await self._require_bot(bot_id, organization_id, with_graph=True, refresh=True)

    async def clone_bot(self, bot_id: str, organization_id: str) -> Bot:
        """Copy a bot and its whole graph, keeping node and edge ids."""
        source = await self._require_bot(bot_id, organization_id, with_graph=True)

        # A link to an account outside the organization is not copied
        account_id = source.whatsapp_account_id
        if account_id and not await self._owns_account(account_id, organization_id):
            logger.warning(
                f"Clone of {bot_id} dropped foreign WhatsApp account {account_id}",
                extra={"organization_id": organization_id},
            )
            account_id = None

        clone = Bot(
            organization_id=organization_id,
            name=f"{source.name}{CLONE_NAME_SUFFIX}",
            description=source.description,
            whatsapp_account_id=account_id,
            welcome_message=source.welcome_message,
            fallback_message=source.fallback_message,
            is_active=False,
            version=1,
        )
        self.session.add(clone)
        await self.session.flush()

        await self.bots.replace_nodes(clone.id, [
            {
                "node_id": node.node_id,
                "type": node.type,
                "label": node.label,
                "data": node.data,
                "position": node.position,
            }
            for node in source.nodes
        ])
        await self.bots.replace_edges(clone.id, [
            {
                "edge_id": edge.edge_id,
                "source": edge.source,
                "target": edge.target,
                "condition": edge.condition,
            }
            for edge in source.edges
        ])

        logger.info(
            f"Bot cloned: {source.id} -> {clone.id}",
            extra={"organization_id": organization_id},
        )
        return await self._require_bot(clone.id, organization_id, with_graph=True, refresh=True)

    async def delete_bot(self, bot_id: str, organization_id: str) -> None:
        """Delete a bot with all of its nodes and edges."""
        await self._require_bot(bot_id, organization_id)
        await self.bots.delete_with_graph(bot_id)
        logger.info(
            f"Bot deleted: {bot_id}",
            extra={"organization_id": organization_id},
        )


__all__ = ["FlowGraphStore"]
