# forgeflow/executor.py
"""
Graph walker.

Nodes are visited depth-first from each trigger. Instead of recursing per
node, the walker keeps an explicit stack of frames: a frame is either a node
visit or a piece of control state (a loop's next step, a try block's catch
handler, an output to restore). Popping a frame may push more frames, so the
first outgoing edge of a node is fully explored before the second one starts.

Every visit carries its depth, the number of edges followed from the trigger
(loop bodies start again one level below their loop node). Only a cycle can
make a path longer than the graph, so `max_steps` bounds the depth rather
than the total number of visits.

A handler failure unwinds the stack to the nearest try frame. If there is
none, the failure ends the walk and `execute()` raises it.
"""
import asyncio
import inspect
from typing import Any, Callable, Iterable, List, Mapping, Optional

from .errors import ExecutionLimitError, ExpressionError, NodeExecutionError, NoTriggerError
from .expressions import evaluate_condition
from .graph import (
    BOOLEAN_CONDITIONS,
    FILTER,
    MANUAL_APPROVAL,
    SWITCH,
    TRY_CATCH,
    BoolPort,
    FilterPort,
    FlowGraph,
    GuardPort,
    LoopPort,
    Route,
)
from .handlers import Handler, get_handler
from .interpolation import MISSING, interpolate_config, interpolate_string, stringify
from .models import FlowEdge, FlowNode, NodeResult, RuntimeSettings, now_ms
from .runtime import Confirm, HandlerContext, LogCallback, LogSink, RuntimeApi
from .tracker import ProgressCallback, ResultTracker
from .variables import VariableStore


DEFAULT_MAX_STEPS = 10000
DEFAULT_CONCURRENCY = 5
DEFAULT_MAX_ITERATIONS = 100


def _to_int(value: Any, default: int = 0) -> int:
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return default


def switch_key(value: Any) -> str:
    """Text a switch output is matched against edge handles with.

    Mappings read as ``[object Object]`` and lists are joined with commas,
    with null entries left empty, as a flow editor written in JS shows them.
    """
    if isinstance(value, Mapping):
        return "[object Object]"
    if isinstance(value, (list, tuple)):
        return ",".join("" if item is None else switch_key(item) for item in value)
    return stringify(value)


class _Frame:
    async def run(self, executor: "WorkflowExecutor", stack: List["_Frame"]) -> None:
        raise NotImplementedError


class _Visit(_Frame):
    def __init__(self, node_id: str, scope: VariableStore, depth: int):
        self.node_id = node_id
        self.scope = scope
        self.depth = depth

    async def run(self, executor, stack):
        await executor._visit(self.node_id, self.scope, stack, self.depth)


class _TryFrame(_Frame):
    """Marks the end of a try block. Reached normally it does nothing; a
    failure inside the block unwinds to it and runs the catch branch."""

    def __init__(self, node: FlowNode, catch_routes: List[Route], continue_on_error: bool,
                 scope: VariableStore, depth: int):
        self.node = node
        self.catch_routes = catch_routes
        self.continue_on_error = continue_on_error
        self.scope = scope
        self.depth = depth

    async def run(self, executor, stack):
        return None

    def catch(self, executor: "WorkflowExecutor", stack: List[_Frame], error: Exception) -> None:
        message = str(error)
        self.scope["error"] = message
        executor._log("warn", f"Caught error: {message}. Routing to catch branch.", self.node.id)
        if not self.continue_on_error:
            stack.append(_Raise(error))
        executor._push_routes(stack, self.catch_routes, self.scope, self.depth)


class _Raise(_Frame):
    def __init__(self, error: Exception):
        self.error = error

    async def run(self, executor, stack):
        raise self.error


class _ScopedOutput(_Frame):
    """Runs `routes` with `output` temporarily bound to `value`."""

    def __init__(self, value: Any, routes: List[Route], scope: VariableStore, depth: int):
        self.value = value
        self.routes = routes
        self.scope = scope
        self.depth = depth

    async def run(self, executor, stack):
        stack.append(_RestoreOutput(self.scope.get("output", MISSING), self.scope))
        self.scope["output"] = self.value
        executor._push_routes(stack, self.routes, self.scope, self.depth)


class _RestoreOutput(_Frame):
    def __init__(self, previous: Any, scope: VariableStore):
        self.previous = previous
        self.scope = scope

    async def run(self, executor, stack):
        if self.previous is MISSING:
            self.scope.maps[0].pop("output", None)
        else:
            self.scope["output"] = self.previous


class _LoopFrame(_Frame):
    """One step of a foreach / repeat loop. `items` is None for repeat."""

    def __init__(self, node: FlowNode, items: Optional[list], count: int, item_var: str,
                 index_var: str, loop_routes: List[Route], done_routes: List[Route],
                 scope: VariableStore, label: str, depth: int):
        self.node = node
        self.items = items
        self.count = count
        self.item_var = item_var
        self.index_var = index_var
        self.loop_routes = loop_routes
        self.done_routes = done_routes
        self.scope = scope
        self.label = label
        self.depth = depth
        self.index = 0

    async def run(self, executor, stack):
        if executor.aborted or self.index >= self.count:
            executor._push_routes(stack, self.done_routes, self.scope, self.depth)
            return
        if self.items is not None:
            self.scope[self.item_var] = self.items[self.index]
        self.scope[self.index_var] = self.index
        executor._log("info", f"[{self.label}] Iteration {self.index + 1}/{self.count}", self.node.id)
        self.index += 1
        stack.append(self)
        executor._push_routes(stack, self.loop_routes, self.scope, self.depth)


class _WhileFrame(_Frame):
    def __init__(self, node: FlowNode, max_iterations: int, loop_routes: List[Route],
                 done_routes: List[Route], scope: VariableStore, depth: int):
        self.node = node
        self.max_iterations = max_iterations
        self.loop_routes = loop_routes
        self.done_routes = done_routes
        self.scope = scope
        self.depth = depth
        self.iteration = 0

    def _condition_holds(self, executor: "WorkflowExecutor") -> bool:
        # re-read from the raw config so each iteration sees current variables
        raw = self.node.config.get("condition") or ""
        try:
            if not isinstance(raw, str):
                raise ExpressionError("Loop condition must be a string")
            result = evaluate_condition(interpolate_string(raw, self.scope), self.scope)
        except ExpressionError as exc:
            executor._log("error", f"Loop condition error: {exc}", self.node.id)
            return False
        if not result:
            executor._log("info", "Loop condition is false, leaving loop", self.node.id)
        return result

    async def run(self, executor, stack):
        if executor.aborted or self.iteration >= self.max_iterations or not self._condition_holds(executor):
            executor._push_routes(stack, self.done_routes, self.scope, self.depth)
            return
        self.iteration += 1
        executor._log("info", f"[While] Iteration {self.iteration}", self.node.id)
        stack.append(self)
        executor._push_routes(stack, self.loop_routes, self.scope, self.depth)


class _ParallelFrame(_Frame):
    """
    One chunk of a parallel foreach. Every item of the chunk runs in its own
    child scope holding the item and index variables, so branches never see
    each other's loop variables. Writes made inside a branch are discarded
    when the branch ends. The chunk is awaited as a whole before the next one
    starts, even when one of its branches fails.
    """

    def __init__(self, node: FlowNode, items: list, chunk_size: int, item_var: str,
                 index_var: str, loop_routes: List[Route], done_routes: List[Route],
                 scope: VariableStore, depth: int):
        self.node = node
        self.items = items
        self.chunk_size = chunk_size
        self.item_var = item_var
        self.index_var = index_var
        self.loop_routes = loop_routes
        self.done_routes = done_routes
        self.scope = scope
        self.depth = depth
        self.start = 0

    async def run(self, executor, stack):
        if executor.aborted or self.start >= len(self.items):
            executor._push_routes(stack, self.done_routes, self.scope, self.depth)
            return
        chunk = self.items[self.start:self.start + self.chunk_size]
        branches = []
        for offset, item in enumerate(chunk):
            index = self.start + offset
            executor._log("info", f"[Parallel] Item {index + 1}/{len(self.items)}", self.node.id)
            scope = self.scope.child(**{self.item_var: item, self.index_var: index})
            branches.append(executor._walk(self.loop_routes, scope, self.depth))
        self.start += self.chunk_size
        outcomes = await asyncio.gather(*branches, return_exceptions=True)
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                raise outcome
        stack.append(self)


class WorkflowExecutor:
    """
    Runs one flow. Construct it with the flow's nodes and edges, then await
    `execute()`. Port names on edges are validated here, so an invalid graph
    fails at construction time.

    `max_steps` is the longest path a single walk may follow before it is
    treated as a runaway cycle.
    """

    def __init__(
        self,
        nodes: Iterable[FlowNode],
        edges: Iterable[FlowEdge],
        on_progress: Optional[ProgressCallback] = None,
        on_log: Optional[LogCallback] = None,
        settings: Optional[RuntimeSettings] = None,
        handlers: Optional[Mapping[str, Handler]] = None,
        confirm: Optional[Confirm] = None,
        api: Optional[RuntimeApi] = None,
        max_steps: int = DEFAULT_MAX_STEPS,
        default_concurrency: int = DEFAULT_CONCURRENCY,
        default_max_iterations: int = DEFAULT_MAX_ITERATIONS,
    ):
        self.graph = FlowGraph(nodes, edges)
        self.settings = settings or RuntimeSettings()
        self.variables = VariableStore.from_env(self.settings.environment_variables)
        self.tracker = ResultTracker(on_progress)
        self._log = LogSink(on_log)
        self._handlers = handlers
        self._confirm = confirm
        self.api = api or RuntimeApi()
        self.max_steps = max_steps
        self.default_concurrency = default_concurrency
        self.default_max_iterations = default_max_iterations
        self._aborted = False

    @property
    def aborted(self) -> bool:
        return self._aborted

    @property
    def results(self) -> List[NodeResult]:
        return self.tracker.snapshot()

    def abort(self) -> None:
        self._aborted = True
        self._log("warn", "Execution aborted by user")

    async def execute(self) -> None:
        try:
            triggers = self.graph.trigger_nodes()
            if not triggers:
                raise NoTriggerError()
            self._log("info", f"Found {len(triggers)} trigger node(s)")
            for trigger in triggers:
                await self._walk([trigger.id], self.variables, 0)
            if self._aborted:
                self._log("warn", "Workflow execution stopped after abort")
            else:
                self._log("success", "Workflow execution completed")
        except Exception as exc:
            self._log("error", f"Workflow execution failed: {exc}")
            raise

    # -- walking --

    async def _walk(self, start: Iterable, scope: VariableStore, depth: int) -> None:
        stack: List[_Frame] = []
        for item in reversed(list(start)):
            stack.append(_Visit(item.target if isinstance(item, Route) else item, scope, depth))
        while stack:
            frame = stack.pop()
            try:
                await frame.run(self, stack)
            except Exception as exc:
                guard = self._unwind(stack)
                if guard is None:
                    raise
                guard.catch(self, stack, exc)

    @staticmethod
    def _unwind(stack: List[_Frame]) -> Optional[_TryFrame]:
        while stack:
            frame = stack.pop()
            if isinstance(frame, _TryFrame):
                return frame
        return None

    def _push_routes(self, stack: List[_Frame], routes: List[Route], scope: VariableStore, depth: int) -> None:
        # reversed, so the first edge in the list is popped first
        for route in reversed(routes):
            stack.append(_Visit(route.target, scope, depth))

    async def _visit(self, node_id: str, scope: VariableStore, stack: List[_Frame], depth: int) -> None:
        if self._aborted:
            return
        node = self.graph.get(node_id)
        if node is None:
            return
        if depth >= self.max_steps:
            raise ExecutionLimitError(f"Execution exceeded {self.max_steps} steps along one path")
        child_depth = depth + 1

        if node.disabled:
            now = now_ms()
            self.tracker.update(node.id, status="skipped", started_at=now, ended_at=now)
            self._log("warn", f"Skipped (disabled): {node.display_name}", node.id)
            self._push_routes(stack, self.graph.outgoing(node.id), scope, child_depth)
            return

        self._log("info", f"Executing: {node.display_name}", node.id)
        self.tracker.update(node.id, status="running", started_at=now_ms(), ended_at=None, error=None)
        try:
            output = await self._run_node(node, scope)
        except Exception as exc:
            message = str(exc) or exc.__class__.__name__
            self.tracker.update(node.id, status="error", ended_at=now_ms(), error=message)
            self._log("error", f"Failed: {node.display_name} - {message}", node.id)
            raise NodeExecutionError(node.id, message, exc) from exc

        scope.record_output(node.id, output)
        self.tracker.update(node.id, status="success", ended_at=now_ms(), output=output)
        self._log("success", f"Completed: {node.display_name}", node.id)
        await self._dispatch(node, output, scope, stack, child_depth)

    async def _run_node(self, node: FlowNode, scope: VariableStore) -> Any:
        data = interpolate_config(node.config, scope)
        handler = self._resolve_handler(node.node_type)
        if handler is None:
            self._log("warn", f"Unknown node type: {node.node_type}", node.id)
            return None
        ctx = HandlerContext(
            data=data,
            variables=scope,
            on_log=self._log,
            node_id=node.id,
            settings=self.settings,
            api=self.api,
        )
        result = handler(ctx)
        if inspect.isawaitable(result):
            result = await result
        return result

    def _resolve_handler(self, node_type: str) -> Optional[Callable]:
        if self._handlers is not None and node_type in self._handlers:
            return self._handlers[node_type]
        return get_handler(node_type)

    # -- branching --

    async def _dispatch(self, node: FlowNode, output: Any, scope: VariableStore,
                        stack: List[_Frame], depth: int) -> None:
        node_type = node.node_type
        routes = self.graph.outgoing

        if node_type in BOOLEAN_CONDITIONS:
            port = BoolPort.TRUE if output is True else BoolPort.FALSE
            self._log("info", f"Taking {port.value} branch", node.id)
            self._push_routes(stack, routes(node.id, port), scope, depth)

        elif node_type == SWITCH:
            key = switch_key(output)
            matching = routes(node.id, key)
            if matching:
                self._log("info", f"Taking branch: {key}", node.id)
            else:
                matching = routes(node.id, "default")
                if matching:
                    self._log("info", "Taking default branch", node.id)
            self._push_routes(stack, matching, scope, depth)

        elif node_type == TRY_CATCH:
            continue_on_error = not (isinstance(output, dict) and output.get("continueOnError") is False)
            stack.append(_TryFrame(node, routes(node.id, GuardPort.CATCH), continue_on_error, scope, depth))
            self._push_routes(stack, routes(node.id, GuardPort.TRY), scope, depth)

        elif node_type == FILTER:
            output = output if isinstance(output, dict) else {}
            # pushed in reverse: the match branch runs first
            for key, port in (("notMatched", FilterPort.NOMATCH), ("matched", FilterPort.MATCH)):
                items = output.get(key)
                if items:
                    stack.append(_ScopedOutput(items, routes(node.id, port), scope, depth))

        elif node_type == MANUAL_APPROVAL:
            approved = await self._request_approval(node, output)
            port = BoolPort.TRUE if approved else BoolPort.FALSE
            self._push_routes(stack, routes(node.id, port), scope, depth)

        elif node_type in ("loop_foreach", "loop_repeat"):
            output = output if isinstance(output, dict) else {}
            if node_type == "loop_foreach":
                items = output.get("items")
                items = items if isinstance(items, list) else []
                count, label = len(items), "Loop"
            else:
                items, count, label = None, max(_to_int(output.get("count")), 0), "Repeat"
            stack.append(_LoopFrame(
                node, items, count,
                item_var=output.get("itemVar") or "item",
                index_var=output.get("indexVar") or "index",
                loop_routes=routes(node.id, LoopPort.LOOP),
                done_routes=routes(node.id, LoopPort.DONE),
                scope=scope,
                label=label,
                depth=depth,
            ))

        elif node_type == "loop_while":
            output = output if isinstance(output, dict) else {}
            max_iterations = _to_int(output.get("maxIterations")) or self.default_max_iterations
            stack.append(_WhileFrame(
                node, max_iterations,
                routes(node.id, LoopPort.LOOP), routes(node.id, LoopPort.DONE), scope, depth,
            ))

        elif node_type == "loop_parallel_foreach":
            output = output if isinstance(output, dict) else {}
            items = output.get("items")
            items = items if isinstance(items, list) else []
            concurrency = _to_int(output.get("concurrency")) or self.default_concurrency
            self._log("info", f"[Parallel] Processing {len(items)} items (concurrency: {concurrency})", node.id)
            stack.append(_ParallelFrame(
                node, items, max(concurrency, 1),
                item_var=output.get("itemVar") or "item",
                index_var=output.get("indexVar") or "index",
                loop_routes=routes(node.id, LoopPort.LOOP),
                done_routes=routes(node.id, LoopPort.DONE),
                scope=scope,
                depth=depth,
            ))

        else:
            self._push_routes(stack, routes(node.id), scope, depth)

    async def _request_approval(self, node: FlowNode, output: Any) -> bool:
        output = output if isinstance(output, dict) else {}
        title = output.get("title") or "Approval Required"
        message = output.get("message") or "Please approve to continue execution."
        self._log("info", f"Waiting for manual approval: {title}", node.id)
        self.tracker.update(node.id, status="pending")
        if self._confirm is None:
            self._log("warn", "No approval handler available, treating as denied", node.id)
            approved = False
        else:
            try:
                approved = bool(await self._confirm(title, message))
            except Exception as exc:
                self._log("error", f"Approval failed: {exc}", node.id)
                approved = False
        if approved:
            self._log("success", "Approved", node.id)
        else:
            self._log("warn", "Denied", node.id)
        self.tracker.update(
            node.id,
            status="success",
            ended_at=now_ms(),
            output={"title": title, "message": message, "approved": approved},
        )
        return approved
