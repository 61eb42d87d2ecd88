# forgeflow/tracker.py
from typing import Any, Callable, Dict, List, Optional

from .models import NodeResult

ProgressCallback = Callable[[List[NodeResult]], None]


class ResultTracker:
    """One NodeResult per node id. Every update is pushed to the progress
    callback as a snapshot of all results, so the callback must be cheap."""

    def __init__(self, on_progress: Optional[ProgressCallback] = None):
        self._results: Dict[str, NodeResult] = {}
        self._on_progress = on_progress

    def update(self, node_id: str, **partial: Any) -> NodeResult:
        existing = self._results.get(node_id) or NodeResult(node_id=node_id)
        result = existing.model_copy(update=partial)
        self._results[node_id] = result
        if self._on_progress is not None:
            self._on_progress(self.snapshot())
        return result

    def get(self, node_id: str) -> Optional[NodeResult]:
        result = self._results.get(node_id)
        return result.model_copy() if result is not None else None

    def snapshot(self) -> List[NodeResult]:
        return [result.model_copy() for result in self._results.values()]

    def __contains__(self, node_id: str) -> bool:
        return node_id in self._results

    def __len__(self) -> int:
        return len(self._results)
