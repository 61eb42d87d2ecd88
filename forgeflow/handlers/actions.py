# forgeflow/handlers/actions.py
import json

from ..expressions import evaluate
from ..interpolation import stringify
from ..runtime import HandlerContext
from . import register_handler


def _to_int(value, default: int) -> int:
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return default


@register_handler("action_log")
async def action_log(ctx: HandlerContext):
    message = ctx.data.get("message", "")
    level = ctx.data.get("level") or "info"
    ctx.log(level if level in ("warn", "error") else "info", stringify(message))
    return {"logged": True, "message": message, "level": level}


@register_handler("action_delay")
async def action_delay(ctx: HandlerContext):
    duration = _to_int(ctx.data.get("duration", ctx.data.get("delay")), 1000)
    ctx.log("info", f"Waiting {duration}ms...")
    await ctx.api.sleep(duration)
    return {"delayed": duration}


@register_handler("action_set_variable")
async def action_set_variable(ctx: HandlerContext):
    name = ctx.data.get("name")
    if not name:
        raise ValueError("Variable name is required")
    value = ctx.data.get("value")
    ctx.variables[name] = value
    ctx.log("info", f"Setting variable: {name} = {stringify(value)[:50]}")
    return {"name": name, "value": value}


@register_handler("action_http")
async def action_http(ctx: HandlerContext):
    url = ctx.data.get("url")
    if not url:
        raise ValueError("URL is required")
    method = (ctx.data.get("method") or "GET").upper()
    headers = ctx.data.get("headers") or {}
    if isinstance(headers, str):
        headers = json.loads(headers) if headers.strip() else {}
    ctx.log("info", f"{method} {url}")
    response = await ctx.api.http.request(method, url, headers, ctx.data.get("body"))
    ctx.log("success", f"Status: {response['status']}")
    if response["status"] >= 400 and ctx.data.get("failOnError", True):
        raise RuntimeError(f"HTTP {response['status']} from {url}")
    return response


@register_handler("action_notification")
async def action_notification(ctx: HandlerContext):
    title = ctx.data.get("title") or "ForgeFlow"
    message = stringify(ctx.data.get("message", ""))
    ctx.log("info", f'Notification: "{title}"')
    await ctx.api.notify(title, message)
    return {"notified": True}


@register_handler("action_json_parse")
async def action_json_parse(ctx: HandlerContext):
    text = ctx.data.get("json", ctx.data.get("text"))
    if not isinstance(text, str):
        # already structured, nothing to parse
        return text
    return json.loads(text)


@register_handler("action_json_stringify")
async def action_json_stringify(ctx: HandlerContext):
    indent = 2 if ctx.data.get("pretty", True) else None
    return json.dumps(ctx.data.get("data"), indent=indent, default=str)


@register_handler("action_template")
async def action_template(ctx: HandlerContext):
    # placeholders were already resolved when the config was interpolated
    return stringify(ctx.data.get("template", ""))


@register_handler("action_math")
async def action_math(ctx: HandlerContext):
    expression = stringify(ctx.data.get("expression", ""))
    result = evaluate(expression, ctx.variables)
    ctx.log("success", f"Result: {stringify(result)}")
    return result
