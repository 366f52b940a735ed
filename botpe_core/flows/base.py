"""
Flow Graph Base Types

Node/edge descriptors exchanged with the bot editor, typed views over
node configuration, and the exceptions raised by the flow store.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


START_NODE_ID = "start"
START_NODE_LABEL = "Start"
START_NODE_POSITION = {"x": 250, "y": 100}

CLONE_NAME_SUFFIX = " (Copy)"


# =============================================================================
# Enums
# =============================================================================


class NodeType(str, Enum):
    """Known node types. Stored as plain strings so the set can grow."""

    START = "START"
    MESSAGE = "MESSAGE"
    CONDITION = "CONDITION"
    AI = "AI"
    API = "API"
    ACTION = "ACTION"


class BranchLabel(str, Enum):
    """Edge labels that select a CONDITION node's outgoing branch."""

    TRUE = "true"
    FALSE = "false"


class ConditionOperator(str, Enum):
    EQUALS = "equals"
    CONTAINS = "contains"
    STARTS_WITH = "starts_with"
    ENDS_WITH = "ends_with"
    REGEX = "regex"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"


class ActionType(str, Enum):
    SET_VARIABLE = "set_variable"
    ADD_TAG = "add_tag"
    REMOVE_TAG = "remove_tag"
    ASSIGN_AGENT = "assign_agent"
    ESCALATE = "escalate"
    END_CONVERSATION = "end_conversation"


# =============================================================================
# Graph Descriptors
# =============================================================================


class CamelModel(BaseModel):
    """Accepts and emits the editor's camelCase field names."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )


class Position(CamelModel):
    """Editor layout position. Has no execution meaning."""

    x: float = 0
    y: float = 0


class NodeDescriptor(CamelModel):
    """A node as sent by the editor on save."""

    node_id: str = Field(..., min_length=1, max_length=100, description="Node id, unique within the bot")
    type: str = Field(..., min_length=1, max_length=32, description="Node type tag")
    label: Optional[str] = Field(default=None, max_length=255, description="Display label")
    data: Dict[str, Any] = Field(default_factory=dict, description="Type-specific configuration")
    position: Position = Field(default_factory=Position)

    @field_validator("data", mode="before")
    @classmethod
    def _none_data_is_empty(cls, v):
        return {} if v is None else v


class EdgeDescriptor(CamelModel):
    """A directed edge as sent by the editor on save."""

    edge_id: str = Field(..., min_length=1, max_length=100, description="Edge id, unique within the bot")
    source: str = Field(..., min_length=1, max_length=100, description="Source node id")
    target: str = Field(..., min_length=1, max_length=100, description="Target node id")
    condition: Optional[str] = Field(
        default=None, max_length=100, description="Branch label for CONDITION sources"
    )


class BotCreate(CamelModel):
    """Fields accepted when creating a bot."""

    name: str = Field(..., max_length=255, description="Bot name")
    description: Optional[str] = None
    welcome_message: Optional[str] = None
    fallback_message: Optional[str] = None
    whatsapp_account_id: Optional[str] = Field(default=None, max_length=36)


class BotGraphUpdate(CamelModel):
    """
    Partial bot update carrying an optional full graph.

    ``nodes``/``edges`` left as ``None`` mean "keep the stored set";
    an empty list means "replace with nothing".
    """

    name: Optional[str] = Field(default=None, max_length=255)
    description: Optional[str] = None
    welcome_message: Optional[str] = None
    fallback_message: Optional[str] = None
    is_active: Optional[bool] = None
    nodes: Optional[List[Dict[str, Any]]] = None
    edges: Optional[List[Dict[str, Any]]] = None
    expected_version: Optional[int] = Field(default=None, ge=1)

    @property
    def is_structural(self) -> bool:
        return self.nodes is not None or self.edges is not None


@dataclass
class BotSummary:
    """Row returned by bot listings."""

    id: str
    name: str
    description: Optional[str]
    is_active: bool
    version: int
    whatsapp_account_id: Optional[str]
    node_count: int
    created_at: Any
    updated_at: Any


# =============================================================================
# Typed Node Configuration
# =============================================================================


class MessageNodeData(CamelModel):
    message: str = ""
    delay: int = Field(default=0, ge=0)


class ConditionNodeData(CamelModel):
    field: str = ""
    operator: ConditionOperator = ConditionOperator.EQUALS
    value: str = ""
    condition: Optional[str] = None


class AINodeData(CamelModel):
    prompt: str = ""
    temperature: float = Field(default=0.7, ge=0, le=2)
    max_tokens: int = Field(default=1000, ge=1)


class APINodeData(CamelModel):
    method: Literal["GET", "POST", "PUT", "PATCH", "DELETE"] = "GET"
    url: str = ""
    headers: Optional[Union[str, Dict[str, str]]] = None
    body: Optional[Union[str, Dict[str, Any]]] = None
    response_variable: Optional[str] = None


class ActionNodeData(CamelModel):
    action_type: ActionType = ActionType.SET_VARIABLE
    action: Optional[str] = None
    variable_name: Optional[str] = None
    variable_value: Optional[str] = None
    tag_name: Optional[str] = None


NODE_DATA_MODELS = {
    NodeType.MESSAGE.value: MessageNodeData,
    NodeType.CONDITION.value: ConditionNodeData,
    NodeType.AI.value: AINodeData,
    NodeType.API.value: APINodeData,
    NodeType.ACTION.value: ActionNodeData,
}


def parse_node_data(node_type: str, data: Optional[Dict[str, Any]]) -> Optional[CamelModel]:
    """Parse a node's opaque config into its typed model, if the type has one."""
    model = NODE_DATA_MODELS.get(node_type)
    if model is None:
        return None
    return model.model_validate(data or {})


@dataclass(frozen=True)
class ConditionBranches:
    """Resolved targets of a CONDITION node's two outgoing branches."""

    node_id: str
    true_target: Optional[str]
    false_target: Optional[str]


# =============================================================================
# Exceptions
# =============================================================================


class FlowError(Exception):
    """Base exception for flow graph errors."""
    pass


class BotNotFoundError(FlowError):
    """Bot does not exist within the caller's organization."""

    def __init__(self, bot_id: str):
        self.bot_id = bot_id
        super().__init__(f"Bot with ID '{bot_id}' not found")


class GraphValidationError(FlowError):
    """A required field is missing or the graph is structurally invalid."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        issues: Optional[List[Dict[str, Any]]] = None,
    ):
        self.message = message
        self.field = field
        self.issues = issues or []
        super().__init__(message)


class VersionConflictError(FlowError):
    """The bot changed since the caller last read it."""

    def __init__(self, bot_id: str, expected: int, actual: int):
        self.bot_id = bot_id
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Bot '{bot_id}' is at version {actual}, expected {expected}"
        )


__all__ = [
    "START_NODE_ID",
    "START_NODE_LABEL",
    "START_NODE_POSITION",
    "CLONE_NAME_SUFFIX",
    "NodeType",
    "BranchLabel",
    "ConditionOperator",
    "ActionType",
    "CamelModel",
    "Position",
    "NodeDescriptor",
    "EdgeDescriptor",
    "BotCreate",
    "BotGraphUpdate",
    "BotSummary",
    "MessageNodeData",
    "ConditionNodeData",
    "AINodeData",
    "APINodeData",
    "ActionNodeData",
    "NODE_DATA_MODELS",
    "parse_node_data",
    "ConditionBranches",
    "FlowError",
    "BotNotFoundError",
    "GraphValidationError",
    "VersionConflictError",
]
