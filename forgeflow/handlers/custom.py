# forgeflow/handlers/custom.py
"""User-defined node types built from a small declarative definition."""
import json
import re
from typing import Any, Dict, Literal, Mapping

from pydantic import BaseModel, ConfigDict, Field

from ..interpolation import stringify
from ..runtime import HandlerContext
from . import Handler, register_handler

KEY_RE = re.compile(r"\{\{(\w+)\}\}")


class CustomNodeDefinition(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: str
    name: str
    action_type: Literal["http"] = Field(default="http", alias="actionType")
    action_config: Dict[str, Any] = Field(default_factory=dict, alias="actionConfig")


def fill(template: str, values: Mapping[str, Any]) -> str:
    """Flat `{{key}}` substitution; unknown keys become empty strings."""
    def _replace(match: "re.Match[str]") -> str:
        value = values.get(match.group(1))
        return "" if value is None else stringify(value)

    return KEY_RE.sub(_replace, template)


def build_handler(definition: CustomNodeDefinition) -> Handler:
    async def handler(ctx: HandlerContext):
        values = dict(ctx.data, _previousOutput=ctx.variables.get("output"))
        config = definition.action_config
        ctx.log("info", f"Custom node: {definition.name}")

        method = (config.get("method") or "GET").upper()
        url = fill(config.get("url") or "", values)
        if not url:
            raise ValueError("No URL specified")
        try:
            headers = json.loads(fill(config.get("headers") or "{}", values))
        except ValueError:
            ctx.log("warn", "Invalid headers JSON, using empty headers")
            headers = {}
        body = fill(config.get("body") or "", values) or None

        response = await ctx.api.http.request(method, url, headers, body)
        ctx.log("success", f"Status: {response['status']}")
        return response["body"]

    handler.__name__ = f"custom_{definition.type}"
    return handler


def register_custom_node(definition: CustomNodeDefinition) -> Handler:
    return register_handler(definition.type)(build_handler(definition))
