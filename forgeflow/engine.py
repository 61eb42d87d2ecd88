# forgeflow/engine.py
import asyncio
import logging
import uuid
from typing import Dict, List, Optional

from .config import Settings, get_settings
from .executor import WorkflowExecutor
from .handlers import Handler
from .models import ExecutionRecord, FlowSpec, NodeResult, now_ms
from .runtime import ApprovalBroker, LogCollector, RuntimeApi, HttpApi

logger = logging.getLogger(__name__)

# In-memory stores (replace with DB if needed)
FLOWS: Dict[str, FlowSpec] = {}
RUNS: Dict[str, ExecutionRecord] = {}


class WorkflowEngine:
    def __init__(
        self,
        settings: Optional[Settings] = None,
        handlers: Optional[Dict[str, Handler]] = None,
        api: Optional[RuntimeApi] = None,
    ):
        self.settings = settings or get_settings()
        self.flows = FLOWS
        self.runs = RUNS
        self.approvals = ApprovalBroker(timeout=self.settings.approval_timeout_s)
        self.handlers = handlers
        self.api = api or RuntimeApi(http=HttpApi(timeout=self.settings.http_timeout_s))
        self._executors: Dict[str, WorkflowExecutor] = {}
        self._tasks: Dict[str, "asyncio.Task[None]"] = {}

    def create_flow(self, spec: FlowSpec) -> str:
        flow_id = spec.id or str(uuid.uuid4())
        self.flows[flow_id] = spec.model_copy(update={"id": flow_id})
        return flow_id

    def get_flow(self, flow_id: str) -> FlowSpec:
        if flow_id not in self.flows:
            raise KeyError("flow not found")
        return self.flows[flow_id]

    def get_run(self, run_id: str) -> ExecutionRecord:
        if run_id not in self.runs:
            raise KeyError("run not found")
        return self.runs[run_id]

    def build_executor(self, flow: FlowSpec, record: ExecutionRecord) -> WorkflowExecutor:
        """Raises GraphValidationError when the flow's edges are invalid."""

        def on_progress(results: List[NodeResult]) -> None:
            record.results = results

        return WorkflowExecutor(
            flow.nodes,
            flow.edges,
            on_progress=on_progress,
            on_log=LogCollector(record.logs),
            settings=self.settings.runtime_settings(),
            handlers=self.handlers,
            confirm=self.approvals.for_run(record.id),
            api=self.api,
            max_steps=self.settings.max_steps,
            default_concurrency=self.settings.default_concurrency,
            default_max_iterations=self.settings.default_max_iterations,
        )

    async def run_flow(self, flow_id: str, run_in_background: bool = False) -> str:
        flow = self.get_flow(flow_id)
        run_id = str(uuid.uuid4())
        record = ExecutionRecord(id=run_id, flow_id=flow_id, flow_name=flow.name)
        executor = self.build_executor(flow, record)
        self.runs[run_id] = record
        self._executors[run_id] = executor

        async def _runner():
            try:
                await executor.execute()
                record.status = "aborted" if executor.aborted else "success"
            except Exception as e:
                logger.info("run %s failed: %s", run_id, e)
                record.status = "error"
                record.error = str(e)
            finally:
                record.results = executor.results
                record.ended_at = now_ms()
                self._executors.pop(run_id, None)
                self._tasks.pop(run_id, None)

        if run_in_background:
            self._tasks[run_id] = asyncio.create_task(_runner())
        else:
            await _runner()

        return run_id

    def abort_run(self, run_id: str) -> bool:
        """Returns False when the run has already finished."""
        self.get_run(run_id)
        executor = self._executors.get(run_id)
        if executor is None:
            return False
        executor.abort()
        # a run parked on an approval would otherwise never notice
        self.approvals.cancel_run(run_id)
        return True

    async def wait(self, run_id: str) -> ExecutionRecord:
        task = self._tasks.get(run_id)
        if task is not None:
            await task
        return self.get_run(run_id)
