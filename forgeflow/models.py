# forgeflow/models.py
import time
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

NodeCategory = Literal["trigger", "condition", "action", "loop", "utility", "ai", "apps"]
NodeStatus = Literal["idle", "running", "success", "error", "skipped"]
ResultStatus = Literal["pending", "running", "success", "error", "skipped"]
LogLevel = Literal["info", "success", "warn", "error"]
RunStatus = Literal["running", "success", "error", "aborted"]


def now_ms() -> int:
    return int(time.time() * 1000)


class FlowNode(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    node_type: str = Field(alias="nodeType")
    category: NodeCategory = "action"
    label: Optional[str] = None
    config: Dict[str, Any] = Field(default_factory=dict)
    status: NodeStatus = "idle"

    @model_validator(mode="before")
    @classmethod
    def _lift_editor_data(cls, value: Any) -> Any:
        # saved flows from the editor nest everything under "data"
        if isinstance(value, dict) and isinstance(value.get("data"), dict):
            data = value["data"]
            merged = {k: v for k, v in value.items() if k != "data"}
            for key in ("nodeType", "category", "label", "config", "status"):
                if key in data and key not in merged:
                    merged[key] = data[key]
            return merged
        return value

    @property
    def display_name(self) -> str:
        return self.label or self.id

    @property
    def disabled(self) -> bool:
        return self.config.get("disabled") is True


class FlowEdge(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: Optional[str] = None
    source: str
    target: str
    source_handle: Optional[str] = Field(default=None, alias="sourceHandle")


class NodeResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    node_id: str = Field(alias="nodeId")
    status: ResultStatus = "pending"
    started_at: Optional[int] = Field(default=None, alias="startedAt")
    ended_at: Optional[int] = Field(default=None, alias="endedAt")
    output: Any = None
    error: Optional[str] = None


class EnvVar(BaseModel):
    key: str
    value: Any = None
    secret: bool = False


class RuntimeSettings(BaseModel):
    """Read-only snapshot handed to handlers."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    environment_variables: List[EnvVar] = Field(default_factory=list, alias="environmentVariables")
    providers: Dict[str, Any] = Field(default_factory=dict)
    debug_mode: bool = Field(default=False, alias="debugMode")


class FlowSpec(BaseModel):
    id: Optional[str] = None
    name: str = "Untitled flow"
    nodes: List[FlowNode] = Field(default_factory=list)
    edges: List[FlowEdge] = Field(default_factory=list)


class LogEntry(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    level: LogLevel
    message: str
    node_id: Optional[str] = Field(default=None, alias="nodeId")
    timestamp: int = Field(default_factory=now_ms)


class ExecutionRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    flow_id: str = Field(alias="flowId")
    flow_name: str = Field(alias="flowName")
    status: RunStatus = "running"
    results: List[NodeResult] = Field(default_factory=list)
    logs: List[LogEntry] = Field(default_factory=list)
    started_at: int = Field(default_factory=now_ms, alias="startedAt")
    ended_at: Optional[int] = Field(default=None, alias="endedAt")
    error: Optional[str] = None
