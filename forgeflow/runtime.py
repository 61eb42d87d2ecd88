# forgeflow/runtime.py
"""
What handlers get to see of the outside world: the handler context, the
HTTP / notification surface, and the manual approval boundary.
"""
import asyncio
import json
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, MutableMapping, Optional

import httpx

from .models import LogEntry, LogLevel, RuntimeSettings

logger = logging.getLogger(__name__)

LogCallback = Callable[..., None]  # (level, message, node_id=None)
Confirm = Callable[[str, str], Awaitable[bool]]
Notifier = Callable[[str, str], Awaitable[None]]

_PY_LEVELS = {
    "info": logging.INFO,
    "success": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}


class LogSink:
    """Forwards engine log lines to the caller's callback and mirrors them to
    the python logger."""

    def __init__(self, on_log: Optional[LogCallback] = None, name: str = "forgeflow.run"):
        self._on_log = on_log
        self._logger = logging.getLogger(name)

    def __call__(self, level: LogLevel, message: str, node_id: Optional[str] = None) -> None:
        self._logger.log(_PY_LEVELS.get(level, logging.INFO), "%s%s", f"[{node_id}] " if node_id else "", message)
        if self._on_log is not None:
            self._on_log(level, message, node_id)


class LogCollector:
    """Log callback that keeps entries in a list (used for execution records)."""

    def __init__(self, entries: Optional[List[LogEntry]] = None):
        self.entries = entries if entries is not None else []

    def __call__(self, level: LogLevel, message: str, node_id: Optional[str] = None) -> None:
        self.entries.append(LogEntry(level=level, message=message, node_id=node_id))


class HttpApi:
    def __init__(self, timeout: float = 30.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._timeout = timeout
        self._transport = transport

    async def request(
        self,
        method: str,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        body: Any = None,
    ) -> Dict[str, Any]:
        content = None
        if body is not None:
            content = body if isinstance(body, (str, bytes)) else json.dumps(body)
        async with httpx.AsyncClient(
            timeout=self._timeout, follow_redirects=True, transport=self._transport
        ) as client:
            response = await client.request(method, url, headers=headers or {}, content=content)
        try:
            payload: Any = response.json()
        except ValueError:
            payload = response.text
        return {
            "status": response.status_code,
            "headers": dict(response.headers),
            "body": payload,
        }

    async def get(self, url: str, headers: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        return await self.request("GET", url, headers)

    async def post(self, url: str, body: Any = None, headers: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        return await self.request("POST", url, headers, body)


async def _log_notification(title: str, message: str) -> None:
    logger.info("notification: %s - %s", title, message)


class RuntimeApi:
    def __init__(self, http: Optional[HttpApi] = None, notifier: Optional[Notifier] = None):
        self.http = http or HttpApi()
        self._notifier = notifier or _log_notification

    async def notify(self, title: str, message: str) -> None:
        await self._notifier(title, message)

    async def sleep(self, ms: float) -> None:
        await asyncio.sleep(max(ms, 0) / 1000)


@dataclass
class HandlerContext:
    data: Dict[str, Any]
    variables: MutableMapping[str, Any]
    on_log: LogCallback
    node_id: str
    settings: RuntimeSettings = field(default_factory=RuntimeSettings)
    api: RuntimeApi = field(default_factory=RuntimeApi)

    def log(self, level: LogLevel, message: str) -> None:
        self.on_log(level, message, self.node_id)


@dataclass
class PendingApproval:
    id: str
    title: str
    message: str
    run_id: Optional[str] = None
    future: "asyncio.Future[bool]" = field(default=None, repr=False)

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "title": self.title, "message": self.message, "run_id": self.run_id}


class ApprovalBroker:
    """
    Manual approval over the API: `confirm()` parks a request until someone
    calls `resolve()`. With a timeout, an unanswered request counts as denied.
    """

    def __init__(self, timeout: Optional[float] = None):
        self.timeout = timeout
        self._pending: Dict[str, PendingApproval] = {}

    def pending(self) -> List[PendingApproval]:
        return list(self._pending.values())

    def for_run(self, run_id: str) -> Confirm:
        async def confirm(title: str, message: str) -> bool:
            return await self.confirm(title, message, run_id=run_id)

        return confirm

    async def confirm(self, title: str, message: str, run_id: Optional[str] = None) -> bool:
        approval = PendingApproval(
            id=str(uuid.uuid4()),
            title=title,
            message=message,
            run_id=run_id,
            future=asyncio.get_running_loop().create_future(),
        )
        self._pending[approval.id] = approval
        try:
            if self.timeout is None:
                return await approval.future
            return await asyncio.wait_for(approval.future, self.timeout)
        except asyncio.TimeoutError:
            logger.warning("approval %s timed out after %ss", approval.id, self.timeout)
            return False
        finally:
            self._pending.pop(approval.id, None)

    def resolve(self, approval_id: str, approved: bool) -> None:
        approval = self._pending.get(approval_id)
        if approval is None:
            raise KeyError(approval_id)
        if not approval.future.done():
            approval.future.set_result(bool(approved))

    def cancel_run(self, run_id: str) -> None:
        for approval in list(self._pending.values()):
            if approval.run_id == run_id and not approval.future.done():
                approval.future.set_result(False)
