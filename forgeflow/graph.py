# forgeflow/graph.py
import logging
from collections import defaultdict
from enum import Enum
from typing import Dict, Iterable, List, Optional, Type

from .errors import GraphValidationError
from .models import FlowEdge, FlowNode

logger = logging.getLogger(__name__)


class BoolPort(str, Enum):
    TRUE = "true"
    FALSE = "false"


class LoopPort(str, Enum):
    LOOP = "loop"
    DONE = "done"


class GuardPort(str, Enum):
    TRY = "try"
    CATCH = "catch"


class FilterPort(str, Enum):
    MATCH = "match"
    NOMATCH = "nomatch"


BOOLEAN_CONDITIONS = frozenset({
    "condition_if",
    "condition_type_check",
    "condition_is_empty",
    "condition_date_compare",
    "condition_array_contains",
})
LOOP_TYPES = frozenset({"loop_foreach", "loop_repeat", "loop_while", "loop_parallel_foreach"})

SWITCH = "condition_switch"
TRY_CATCH = "condition_try_catch"
FILTER = "condition_filter"
MANUAL_APPROVAL = "condition_manual_approval"


def port_family(node_type: str) -> Optional[Type[Enum]]:
    """Closed set of output ports for a branching node type. Sequential node
    types and the switch (whose ports are its case values) return None."""
    if node_type in BOOLEAN_CONDITIONS or node_type == MANUAL_APPROVAL:
        return BoolPort
    if node_type in LOOP_TYPES:
        return LoopPort
    if node_type == TRY_CATCH:
        return GuardPort
    if node_type == FILTER:
        return FilterPort
    return None


class Route:
    """An edge with its port resolved against the source node's family."""

    __slots__ = ("edge", "port")

    def __init__(self, edge: FlowEdge, port):
        self.edge = edge
        self.port = port

    @property
    def target(self) -> str:
        return self.edge.target


class FlowGraph:
    """Node/edge lookup for one execution. Edge ports are checked on construction."""

    def __init__(self, nodes: Iterable[FlowNode], edges: Iterable[FlowEdge]):
        self.nodes: List[FlowNode] = list(nodes)
        self.edges: List[FlowEdge] = list(edges)
        self._by_id: Dict[str, FlowNode] = {}
        for node in self.nodes:
            if node.id in self._by_id:
                raise GraphValidationError(f"Duplicate node id: {node.id}")
            self._by_id[node.id] = node
        self._routes: Dict[str, List[Route]] = defaultdict(list)
        for edge in self.edges:
            self._routes[edge.source].append(Route(edge, self._resolve_port(edge)))

    def _resolve_port(self, edge: FlowEdge):
        source = self._by_id.get(edge.source)
        if edge.target not in self._by_id:
            logger.debug("edge %s -> %s points at a missing node", edge.source, edge.target)
        if source is None:
            return edge.source_handle
        if source.node_type == SWITCH:
            if edge.source_handle is None:
                raise GraphValidationError(
                    f"Edge {edge.source} -> {edge.target} from a switch needs a case handle"
                )
            return edge.source_handle
        family = port_family(source.node_type)
        if family is None:
            return edge.source_handle
        try:
            return family(edge.source_handle)
        except ValueError:
            allowed = ", ".join(member.value for member in family)
            raise GraphValidationError(
                f"Edge {edge.source} -> {edge.target}: handle {edge.source_handle!r} is not valid "
                f"for {source.node_type} (expected one of: {allowed})"
            ) from None

    def get(self, node_id: str) -> Optional[FlowNode]:
        return self._by_id.get(node_id)

    def __contains__(self, node_id: str) -> bool:
        return node_id in self._by_id

    def outgoing(self, node_id: str, port=None) -> List[Route]:
        routes = self._routes.get(node_id, [])
        if port is None:
            return list(routes)
        return [route for route in routes if route.port == port]

    def trigger_nodes(self) -> List[FlowNode]:
        targets = {edge.target for edge in self.edges}
        return [node for node in self.nodes if node.id not in targets]
