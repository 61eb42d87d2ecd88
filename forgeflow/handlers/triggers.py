# forgeflow/handlers/triggers.py
from ..models import now_ms
from ..runtime import HandlerContext
from . import register_handler


@register_handler("trigger_manual")
async def trigger_manual(ctx: HandlerContext):
    ctx.log("info", "Manual trigger activated")
    return {"triggered": True, "timestamp": now_ms()}


@register_handler("trigger_schedule")
async def trigger_schedule(ctx: HandlerContext):
    cron = str(ctx.data.get("cron") or "").strip()
    if not cron:
        raise ValueError("Cron expression is required")
    ctx.log("info", f"Schedule: {cron}")
    # 5 fields, or 6 with seconds
    if len(cron.split()) not in (5, 6):
        ctx.log("warn", f'Cron might be invalid: "{cron}" (expected 5 or 6 parts)')
    return {
        "triggered": True,
        "cron": cron,
        "enabled": ctx.data.get("enabled") is not False,
        "timestamp": now_ms(),
    }


@register_handler("trigger_webhook")
async def trigger_webhook(ctx: HandlerContext):
    method = ctx.data.get("method") or "POST"
    path = ctx.data.get("path") or "/webhook"
    if not path.startswith("/"):
        path = "/" + path
    ctx.log("info", f"Webhook listener: {method} {path}")
    return {
        "triggered": True,
        "method": method,
        "path": path,
        "payload": ctx.data.get("payload"),
        "timestamp": now_ms(),
    }
