"""
Flow Graph Validation

Descriptor coercion plus the structural checks that can be switched on
for full-graph saves: duplicate ids, dangling edges, a missing start node,
and CONDITION nodes without exactly one true/false branch.
"""

from collections import Counter
from dataclasses import asdict, dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

from pydantic import ValidationError as PydanticValidationError

from .base import (
    START_NODE_ID,
    BranchLabel,
    ConditionBranches,
    EdgeDescriptor,
    GraphValidationError,
    NodeDescriptor,
    NodeType,
)


NodeInput = Union[NodeDescriptor, Mapping[str, Any]]
EdgeInput = Union[EdgeDescriptor, Mapping[str, Any]]


@dataclass
class GraphIssue:
    """A single structural problem found in a graph."""

    code: str
    message: str
    field: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _field_path(collection: str, index: int, loc: Sequence[Any]) -> str:
    path = f"{collection}[{index}]"
    if loc:
        path += "." + ".".join(str(part) for part in loc)
    return path


def coerce_nodes(nodes: Iterable[NodeInput]) -> List[NodeDescriptor]:
    """Validate raw node mappings, naming the first offending field."""
    result = []
    for index, node in enumerate(nodes):
        if isinstance(node, NodeDescriptor):
            result.append(node)
            continue
        try:
            result.append(NodeDescriptor.model_validate(node))
        except PydanticValidationError as e:
            error = e.errors()[0]
            field = _field_path("nodes", index, error.get("loc", ()))
            raise GraphValidationError(
                f"Invalid node at {field}: {error.get('msg')}",
                field=field,
            ) from e
    return result


def coerce_edges(edges: Iterable[EdgeInput]) -> List[EdgeDescriptor]:
    """Validate raw edge mappings, naming the first offending field."""
    result = []
    for index, edge in enumerate(edges):
        if isinstance(edge, EdgeDescriptor):
            result.append(edge)
            continue
        try:
            result.append(EdgeDescriptor.model_validate(edge))
        except PydanticValidationError as e:
            error = e.errors()[0]
            field = _field_path("edges", index, error.get("loc", ()))
            raise GraphValidationError(
                f"Invalid edge at {field}: {error.get('msg')}",
                field=field,
            ) from e
    return result


def find_duplicate_ids(
    nodes: Optional[Sequence[NodeDescriptor]],
    edges: Optional[Sequence[EdgeDescriptor]],
) -> List[GraphIssue]:
    """Report node or edge ids used more than once."""
    issues = []
    if nodes is not None:
        counts = Counter(node.node_id for node in nodes)
        for node_id, count in sorted(counts.items()):
            if count > 1:
                issues.append(GraphIssue(
                    code="duplicate_node_id",
                    message=f"Node id '{node_id}' appears {count} times",
                    field="nodes",
                ))
    if edges is not None:
        counts = Counter(edge.edge_id for edge in edges)
        for edge_id, count in sorted(counts.items()):
            if count > 1:
                issues.append(GraphIssue(
                    code="duplicate_edge_id",
                    message=f"Edge id '{edge_id}' appears {count} times",
                    field="edges",
                ))
    return issues


def validate_graph(
    nodes: Sequence[NodeDescriptor],
    edges: Sequence[EdgeDescriptor],
) -> List[GraphIssue]:
    """Run every structural check and return the issues found."""
    issues = find_duplicate_ids(nodes, edges)

    node_types = {node.node_id: node.type for node in nodes}

    if START_NODE_ID not in node_types:
        issues.append(GraphIssue(
            code="missing_start_node",
            message=f"Graph has no '{START_NODE_ID}' node",
            field="nodes",
        ))

    for index, edge in enumerate(edges):
        for end in ("source", "target"):
            node_id = getattr(edge, end)
            if node_id not in node_types:
                issues.append(GraphIssue(
                    code="dangling_edge",
                    message=f"Edge '{edge.edge_id}' {end} '{node_id}' is not a node of this bot",
                    field=f"edges[{index}].{end}",
                ))

    for node_id, node_type in node_types.items():
        if node_type != NodeType.CONDITION.value:
            continue
        labels = Counter(
            edge.condition for edge in edges if edge.source == node_id
        )
        for label in BranchLabel:
            if labels.get(label.value, 0) != 1:
                issues.append(GraphIssue(
                    code="condition_branch",
                    message=(
                        f"Condition node '{node_id}' needs exactly one "
                        f"'{label.value}' edge, found {labels.get(label.value, 0)}"
                    ),
                    field="edges",
                ))

    return issues


def raise_for_issues(issues: List[GraphIssue]) -> None:
    if not issues:
        return
    first = issues[0]
    raise GraphValidationError(
        first.message,
        field=first.field,
        issues=[issue.to_dict() for issue in issues],
    )


def condition_branches(
    node_id: str,
    edges: Iterable[Union[EdgeDescriptor, Any]],
) -> ConditionBranches:
    """Resolve the true/false targets of a CONDITION node.

    Works with descriptors and ORM edges alike. When a label is used
    more than once the first edge wins.
    """
    true_target = None
    false_target = None
    for edge in edges:
        if edge.source != node_id:
            continue
        if edge.condition == BranchLabel.TRUE.value and true_target is None:
            true_target = edge.target
        elif edge.condition == BranchLabel.FALSE.value and false_target is None:
            false_target = edge.target
    return ConditionBranches(
        node_id=node_id,
        true_target=true_target,
        false_target=false_target,
    )


__all__ = [
    "GraphIssue",
    "coerce_nodes",
    "coerce_edges",
    "find_duplicate_ids",
    "validate_graph",
    "raise_for_issues",
    "condition_branches",
]
