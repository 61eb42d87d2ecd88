# forgeflow/handlers/loops.py
# Loop handlers only describe the loop; the executor drives the iterations.
import json
from typing import Any

from ..runtime import HandlerContext
from . import register_handler


def _items(ctx: HandlerContext) -> Any:
    items = ctx.data.get("items")
    if items is None or items == "":
        items = ctx.variables.get("output")
    if isinstance(items, str):
        try:
            items = json.loads(items)
        except ValueError:
            ctx.log("warn", "Items is not valid JSON")
            return []
    if not isinstance(items, list):
        ctx.log("warn", "Items is not an array")
        return []
    return items


@register_handler("loop_foreach")
async def loop_foreach(ctx: HandlerContext):
    items = _items(ctx)
    ctx.log("info", f"Looping over {len(items)} item(s)")
    return {
        "items": items,
        "itemVar": ctx.data.get("itemVar") or "item",
        "indexVar": ctx.data.get("indexVar") or "index",
    }


@register_handler("loop_repeat")
async def loop_repeat(ctx: HandlerContext):
    count = ctx.data.get("count", 0)
    ctx.log("info", f"Repeating {count} time(s)")
    return {"count": count, "indexVar": ctx.data.get("indexVar") or "index"}


@register_handler("loop_while")
async def loop_while(ctx: HandlerContext):
    ctx.log("info", f"While: {ctx.data.get('condition', '')}")
    return {"maxIterations": ctx.data.get("maxIterations", 100)}


@register_handler("loop_parallel_foreach")
async def loop_parallel_foreach(ctx: HandlerContext):
    items = _items(ctx)
    return {
        "items": items,
        "itemVar": ctx.data.get("itemVar") or "item",
        "indexVar": ctx.data.get("indexVar") or "index",
        "concurrency": ctx.data.get("concurrency", 5),
    }
