"""
Bot API Routes

This module provides REST API endpoints for bots and their flow graphs.
"""

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, Path
from sqlalchemy.ext.asyncio import AsyncSession

from ...database.models import Bot, BotEdge, BotNode
from ...flows.base import BotCreate, BotGraphUpdate, BotSummary
from ...flows.store import FlowGraphStore
from ..auth import AuthContext
from ..base import success_response
from ..dependencies import get_db_session, get_flow_store, get_organization_context


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/bots", tags=["Bots"])


# =============================================================================
# Helper Functions
# =============================================================================


def node_to_response(node: BotNode) -> Dict[str, Any]:
    return {
        "nodeId": node.node_id,
        "type": node.type,
        "label": node.label,
        "data": node.data or {},
        "position": node.position or {},
    }


def edge_to_response(edge: BotEdge) -> Dict[str, Any]:
    return {
        "edgeId": edge.edge_id,
        "source": edge.source,
        "target": edge.target,
        "condition": edge.condition,
    }


def bot_to_response(bot: Bot) -> Dict[str, Any]:
    """Convert a bot with its loaded graph to the editor's JSON shape."""
    return {
        "id": bot.id,
        "organizationId": bot.organization_id,
        "whatsappAccountId": bot.whatsapp_account_id,
        "name": bot.name,
        "description": bot.description,
        "isActive": bot.is_active,
        "version": bot.version,
        "welcomeMessage": bot.welcome_message,
        "fallbackMessage": bot.fallback_message,
        "nodes": [node_to_response(n) for n in bot.nodes],
        "edges": [edge_to_response(e) for e in bot.edges],
        "createdAt": bot.created_at,
        "updatedAt": bot.updated_at,
    }


def summary_to_response(summary: BotSummary) -> Dict[str, Any]:
    return {
        "id": summary.id,
        "name": summary.name,
        "description": summary.description,
        "isActive": summary.is_active,
        "version": summary.version,
        "whatsappAccountId": summary.whatsapp_account_id,
        "nodeCount": summary.node_count,
        "createdAt": summary.created_at,
        "updatedAt": summary.updated_at,
    }


# =============================================================================
# Routes
# =============================================================================


@router.get("", summary="List Bots")
async def list_bots(
    auth: AuthContext = Depends(get_organization_context),
    store: FlowGraphStore = Depends(get_flow_store),
):
    """List the organization's bots, most recently updated first."""
    summaries = await store.list_bots(auth.organization_id)
    return success_response([summary_to_response(s) for s in summaries])


@router.post("", status_code=201, summary="Create Bot")
async def create_bot(
    request: BotCreate,
    auth: AuthContext = Depends(get_organization_context),
    store: FlowGraphStore = Depends(get_flow_store),
    db: AsyncSession = Depends(get_db_session),
):
    """Create a bot seeded with a start node."""
    bot = await store.create_bot_from(auth.organization_id, request)
    await db.commit()

    logger.info(f"Created bot {bot.id} for org {auth.organization_id}")

    return success_response(bot_to_response(bot))


@router.get("/{bot_id}", summary="Get Bot")
async def get_bot(
    bot_id: str = Path(...),
    auth: AuthContext = Depends(get_organization_context),
    store: FlowGraphStore = Depends(get_flow_store),
):
    """Get a bot with its full flow graph."""
    bot = await store.get_bot(bot_id, auth.organization_id)
    return success_response(bot_to_response(bot))


@router.patch("/{bot_id}", summary="Update Bot")
async def update_bot(
    request: BotGraphUpdate,
    bot_id: str = Path(...),
    auth: AuthContext = Depends(get_organization_context),
    store: FlowGraphStore = Depends(get_flow_store),
    db: AsyncSession = Depends(get_db_session),
):
    """Patch bot fields and replace whichever of nodes/edges are sent."""
    bot = await store.replace_graph(bot_id, auth.organization_id, request)
    await db.commit()

    return success_response(bot_to_response(bot))


@router.delete("/{bot_id}", summary="Delete Bot")
async def delete_bot(
    bot_id: str = Path(...),
    auth: AuthContext = Depends(get_organization_context),
    store: FlowGraphStore = Depends(get_flow_store),
    db: AsyncSession = Depends(get_db_session),
):
    await store.delete_bot(bot_id, auth.organization_id)
    await db.commit()

    return success_response({"deleted": True, "id": bot_id})


@router.post("/{bot_id}/clone", status_code=201, summary="Clone Bot")
async def clone_bot(
    bot_id: str = Path(...),
    auth: AuthContext = Depends(get_organization_context),
    store: FlowGraphStore = Depends(get_flow_store),
    db: AsyncSession = Depends(get_db_session),
):
    """Copy a bot and its graph into a new inactive bot."""
    bot = await store.clone_bot(bot_id, auth.organization_id)
    await db.commit()

    return success_response(bot_to_response(bot))
