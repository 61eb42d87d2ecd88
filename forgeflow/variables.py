# forgeflow/variables.py
from collections import ChainMap
from typing import Any, Iterable, Optional

from .models import EnvVar

# every node output is written under these names too, so downstream
# nodes can say "{{output}}" without knowing who ran before them
OUTPUT_ALIASES = ("lastOutput", "result", "response", "output")


class VariableStore(ChainMap):
    """
    Workflow variables.

    The root store is the run-wide environment. `child()` opens a scope whose
    writes stay local while reads fall through to the parent; when the scope
    is dropped its writes are discarded. Values are not copied, so in-place
    mutation of a shared list or dict is still visible to everyone.
    """

    @classmethod
    def from_env(cls, env_vars: Optional[Iterable[EnvVar]] = None) -> "VariableStore":
        store = cls()
        for var in env_vars or ():
            if not var.key:
                continue
            store[var.key] = var.value
            store.setdefault("env", {})[var.key] = var.value
        return store

    def child(self, **local_vars: Any) -> "VariableStore":
        scope = self.new_child()
        scope.update(local_vars)
        return scope

    def record_output(self, node_id: str, output: Any) -> None:
        self[f"node_{node_id}"] = output
        for alias in OUTPUT_ALIASES:
            self[alias] = output
