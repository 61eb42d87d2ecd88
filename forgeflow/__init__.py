# forgeflow/__init__.py
from .errors import (
    ExecutionLimitError,
    ExpressionError,
    GraphValidationError,
    NodeExecutionError,
    NoTriggerError,
    WorkflowError,
)
from .executor import WorkflowExecutor
from .handlers import HANDLERS, get_handler, register_handler
from .models import FlowEdge, FlowNode, FlowSpec, NodeResult, RuntimeSettings
from .runtime import HandlerContext
from .variables import VariableStore

__version__ = "0.1.0"
