# forgeflow/errors.py
from typing import Optional


class WorkflowError(Exception):
    """Base class for everything the engine raises."""


class NoTriggerError(WorkflowError):
    def __init__(self, message: str = "No trigger node found"):
        super().__init__(message)


class GraphValidationError(WorkflowError):
    pass


class ExecutionLimitError(WorkflowError):
    pass


class ExpressionError(WorkflowError):
    pass


class NodeExecutionError(WorkflowError):
    """A handler failed. str() is the handler's own message.

    Only the node whose handler raised is recorded with status ``error``.
    The nodes that led to it keep the ``success`` they already reached, also
    when a try/catch further up handles the failure.
    """

    def __init__(self, node_id: str, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.node_id = node_id
        self.message = message
        self.cause = cause
