# forgeflow/handlers/conditions.py
import json
import re
from datetime import date, datetime
from typing import Any, List

from ..errors import ExpressionError
from ..expressions import evaluate_condition, loose_equals, truthy
from ..interpolation import get_nested_value, MISSING
from ..runtime import HandlerContext
from . import register_handler


def _as_list(value: Any) -> Any:
    if isinstance(value, str):
        try:
            return json.loads(value)
        except ValueError:
            return None
    return value


def _value_or_output(ctx: HandlerContext) -> Any:
    value = ctx.data.get("value")
    if value is None or value == "" or value == "{{output}}":
        return ctx.variables.get("output")
    return value


@register_handler("condition_if")
async def condition_if(ctx: HandlerContext):
    condition = ctx.data.get("condition", "")
    ctx.log("info", f"Evaluating condition: {condition}")
    if not isinstance(condition, str):
        # the whole condition was a single placeholder
        result = truthy(condition)
    else:
        try:
            result = evaluate_condition(condition, ctx.variables)
        except ExpressionError as exc:
            ctx.log("error", f"Condition evaluation failed: {exc}")
            return False
    ctx.log("success", f"Condition: {'TRUE' if result else 'FALSE'}")
    return result


@register_handler("condition_switch")
async def condition_switch(ctx: HandlerContext):
    value = ctx.data.get("value")
    result = value if value not in (None, "") else "default"
    ctx.log("info", f"Switch value: {result}")
    return result


@register_handler("condition_try_catch")
async def condition_try_catch(ctx: HandlerContext):
    ctx.log("info", "Try/Catch block - executing try branch")
    return {"branch": "try", "continueOnError": ctx.data.get("continueOnError") is not False}


def _field_value(item: Any, field: str) -> Any:
    if not field:
        return item
    value = get_nested_value(item, field) if isinstance(item, dict) else MISSING
    return None if value is MISSING else value


def _to_float(value: Any):
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def compare(item_value: Any, operator: str, compare_value: Any) -> bool:
    text = "" if item_value is None else str(item_value)
    target = "" if compare_value is None else str(compare_value)
    number, other = _to_float(item_value), _to_float(compare_value)

    if operator == "equals":
        return loose_equals(item_value, compare_value) or text == target
    if operator == "not_equals":
        return not loose_equals(item_value, compare_value) and text != target
    if operator == "contains":
        return target.lower() in text.lower()
    if operator == "starts_with":
        return text.lower().startswith(target.lower())
    if operator == "ends_with":
        return text.lower().endswith(target.lower())
    if operator in ("greater", "less", "greater_eq", "less_eq"):
        if number is None or other is None:
            return False
        return {
            "greater": number > other,
            "less": number < other,
            "greater_eq": number >= other,
            "less_eq": number <= other,
        }[operator]
    if operator == "is_empty":
        return item_value is None or text == "" or item_value == []
    if operator == "is_not_empty":
        return not (item_value is None or text == "" or item_value == [])
    if operator == "regex":
        try:
            return re.search(target, text) is not None
        except re.error:
            return False
    return False


@register_handler("condition_filter")
async def condition_filter(ctx: HandlerContext):
    items = _as_list(ctx.data.get("array") or ctx.variables.get("output"))
    if not isinstance(items, list):
        ctx.log("warn", "Input is not an array")
        return {"matched": [], "notMatched": []}

    matched: List[Any] = []
    not_matched: List[Any] = []
    for item in items:
        value = _field_value(item, ctx.data.get("field") or "")
        if compare(value, ctx.data.get("operator", "equals"), ctx.data.get("value")):
            matched.append(item)
        else:
            not_matched.append(item)
    ctx.log("success", f"Matched: {len(matched)}, Not matched: {len(not_matched)}")
    return {"matched": matched, "notMatched": not_matched}


def type_name(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    return "object"


@register_handler("condition_type_check")
async def condition_type_check(ctx: HandlerContext):
    actual = type_name(_value_or_output(ctx))
    expected = ctx.data.get("type") or "string"
    ctx.log("success", f"Type: {actual} {'==' if actual == expected else '!='} {expected}")
    return actual == expected


def is_empty(value: Any) -> bool:
    return value is None or value == "" or (isinstance(value, (list, dict)) and not value)


@register_handler("condition_is_empty")
async def condition_is_empty(ctx: HandlerContext):
    empty = is_empty(_value_or_output(ctx))
    ctx.log("success", f"Value is {'empty' if empty else 'not empty'}")
    return empty


def _parse_date(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, (int, float)):
        # epoch milliseconds
        return datetime.fromtimestamp(value / 1000)
    if isinstance(value, str) and value.strip().lower() == "now":
        return datetime.now()
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


@register_handler("condition_date_compare")
async def condition_date_compare(ctx: HandlerContext):
    first = _parse_date(ctx.data.get("date1"))
    second = _parse_date(ctx.data.get("date2") or "now")
    if (first.tzinfo is None) != (second.tzinfo is None):
        first, second = first.replace(tzinfo=None), second.replace(tzinfo=None)
    operator = ctx.data.get("operator") or "before"
    if operator == "before":
        result = first < second
    elif operator == "after":
        result = first > second
    elif operator == "equals":
        result = first.date() == second.date()
    else:
        raise ValueError(f"Unknown date operator: {operator}")
    ctx.log("success", f"{first.isoformat()} {operator} {second.isoformat()}: {result}")
    return result


@register_handler("condition_array_contains")
async def condition_array_contains(ctx: HandlerContext):
    items = _as_list(ctx.data.get("array"))
    if not isinstance(items, list):
        ctx.log("warn", "Input is not an array")
        return False
    needle = ctx.data.get("value")
    found = any(loose_equals(item, needle) for item in items)
    ctx.log("success", f"Array {'contains' if found else 'does not contain'} {needle}")
    return found


@register_handler("condition_manual_approval")
async def condition_manual_approval(ctx: HandlerContext):
    return {
        "title": ctx.data.get("title") or "Approval Required",
        "message": ctx.data.get("message") or "Please approve to continue execution.",
    }
