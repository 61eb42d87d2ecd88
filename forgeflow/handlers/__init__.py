# forgeflow/handlers/__init__.py
from typing import Any, Awaitable, Callable, Dict, List, Optional

from ..runtime import HandlerContext

Handler = Callable[[HandlerContext], Awaitable[Any]]

HANDLERS: Dict[str, Handler] = {}


def register_handler(name: str):
    def decorator(fn: Handler) -> Handler:
        HANDLERS[name] = fn
        return fn
    return decorator


def get_handler(node_type: str) -> Optional[Handler]:
    return HANDLERS.get(node_type)


def list_handlers() -> List[str]:
    return sorted(HANDLERS)


# built-in node types register themselves on import
from . import actions, conditions, custom, loops, triggers  # noqa: E402,F401
