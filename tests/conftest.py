from typing import Any, Dict, List, Optional

import pytest

from forgeflow.models import FlowEdge, FlowNode


def node(node_id: str, node_type: str, **config: Any) -> FlowNode:
    return FlowNode(id=node_id, node_type=node_type, config=config)


def edge(source: str, target: str, handle: Optional[str] = None) -> FlowEdge:
    return FlowEdge(source=source, target=target, source_handle=handle)


class Recorder:
    """Collects progress snapshots, log lines and handler calls."""

    def __init__(self):
        self.snapshots: List[list] = []
        self.logs: List[tuple] = []
        self.calls: List[Dict[str, Any]] = []

    def on_progress(self, results):
        self.snapshots.append(results)

    def on_log(self, level, message, node_id=None):
        self.logs.append((level, message, node_id))

    def handler(self, output: Any = None):
        """A handler that records its context and returns `output`."""
        async def _handler(ctx):
            self.calls.append({"node_id": ctx.node_id, "data": ctx.data, "vars": dict(ctx.variables)})
            return output
        return _handler

    def failing(self, message: str):
        async def _handler(ctx):
            self.calls.append({"node_id": ctx.node_id, "data": ctx.data, "vars": dict(ctx.variables)})
            raise RuntimeError(message)
        return _handler

    def called(self) -> List[str]:
        return [call["node_id"] for call in self.calls]

    def messages(self, level: Optional[str] = None) -> List[str]:
        return [message for lvl, message, _ in self.logs if level is None or lvl == level]


@pytest.fixture
def recorder():
    return Recorder()
