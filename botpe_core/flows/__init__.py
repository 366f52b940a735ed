"""
Flow Graph Module

Persistence and validation of bot conversation flows.
"""

from .base import (
    CLONE_NAME_SUFFIX,
    START_NODE_ID,
    ActionType,
    BotCreate,
    BotGraphUpdate,
    BotNotFoundError,
    BotSummary,
    BranchLabel,
    ConditionBranches,
    ConditionOperator,
    EdgeDescriptor,
    FlowError,
    GraphValidationError,
    NodeDescriptor,
    NodeType,
    Position,
    VersionConflictError,
    parse_node_data,
)
from .store import FlowGraphStore
from .validation import (
    GraphIssue,
    coerce_edges,
    coerce_nodes,
    condition_branches,
    validate_graph,
)

__all__ = [
    "CLONE_NAME_SUFFIX",
    "START_NODE_ID",
    "ActionType",
    "BotCreate",
    "BotGraphUpdate",
    "BotNotFoundError",
    "BotSummary",
    "BranchLabel",
    "ConditionBranches",
    "ConditionOperator",
    "EdgeDescriptor",
    "FlowError",
    "GraphValidationError",
    "NodeDescriptor",
    "NodeType",
    "Position",
    "VersionConflictError",
    "parse_node_data",
    "FlowGraphStore",
    "GraphIssue",
    "coerce_edges",
    "coerce_nodes",
    "condition_branches",
    "validate_graph",
]
