import json

import httpx
import pytest

from forgeflow.handlers import HANDLERS, get_handler, list_handlers, register_handler
from forgeflow.handlers.conditions import compare, is_empty, type_name
from forgeflow.handlers.custom import CustomNodeDefinition, fill, register_custom_node
from forgeflow.runtime import HandlerContext, HttpApi, RuntimeApi
from forgeflow.variables import VariableStore


def make_ctx(data=None, variables=None, api=None, logs=None):
    logs = logs if logs is not None else []
    return HandlerContext(
        data=data or {},
        variables=VariableStore(variables or {}),
        on_log=lambda level, message, node_id=None: logs.append((level, message)),
        node_id="n1",
        api=api or RuntimeApi(),
    )


async def run(node_type, data=None, variables=None, **kwargs):
    return await get_handler(node_type)(make_ctx(data, variables, **kwargs))


def test_builtin_handlers_are_registered():
    names = list_handlers()
    for expected in (
        "trigger_manual", "trigger_schedule", "trigger_webhook",
        "condition_if", "condition_switch", "condition_try_catch", "condition_filter",
        "condition_manual_approval", "loop_foreach", "loop_repeat", "loop_while",
        "loop_parallel_foreach", "action_log", "action_http", "action_set_variable",
    ):
        assert expected in names
    assert names == sorted(names)


def test_register_handler_adds_to_registry():
    @register_handler("test_only_echo")
    async def echo(ctx):
        return ctx.data

    try:
        assert get_handler("test_only_echo") is echo
    finally:
        HANDLERS.pop("test_only_echo")


# ---- triggers ----


@pytest.mark.asyncio
async def test_manual_trigger():
    output = await run("trigger_manual")
    assert output["triggered"] is True
    assert isinstance(output["timestamp"], int)


@pytest.mark.asyncio
async def test_schedule_requires_cron():
    with pytest.raises(ValueError, match="Cron expression is required"):
        await run("trigger_schedule", {"cron": "  "})


@pytest.mark.asyncio
async def test_schedule_warns_on_odd_cron():
    logs = []
    output = await run("trigger_schedule", {"cron": "* * *"}, logs=logs)
    assert output["cron"] == "* * *"
    assert output["enabled"] is True
    assert any(level == "warn" for level, _ in logs)


@pytest.mark.asyncio
async def test_webhook_normalises_path():
    output = await run("trigger_webhook", {"path": "hooks/in", "payload": {"a": 1}})
    assert output["path"] == "/hooks/in"
    assert output["method"] == "POST"
    assert output["payload"] == {"a": 1}


# ---- conditions ----


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "condition, expected",
    [
        ("5 > 3", True),
        ('"ada" == "bob"', False),
        ("count >= 2", True),
        ("1 +", False),
        (0, False),
        ([1], True),
    ],
)
async def test_condition_if(condition, expected):
    assert await run("condition_if", {"condition": condition}, {"count": 2}) is expected


@pytest.mark.asyncio
async def test_condition_if_logs_evaluation_errors():
    logs = []
    assert await run("condition_if", {"condition": "(("}, logs=logs) is False
    assert any(level == "error" for level, _ in logs)


@pytest.mark.asyncio
async def test_switch_defaults_when_empty():
    assert await run("condition_switch", {"value": "red"}) == "red"
    assert await run("condition_switch", {"value": ""}) == "default"
    assert await run("condition_switch") == "default"


@pytest.mark.asyncio
async def test_try_catch_continue_flag():
    assert await run("condition_try_catch") == {"branch": "try", "continueOnError": True}
    assert (await run("condition_try_catch", {"continueOnError": False}))["continueOnError"] is False


@pytest.mark.asyncio
async def test_filter_by_field():
    people = [{"name": "ada", "age": 36}, {"name": "bob", "age": 12}, {"name": "cy"}]
    output = await run("condition_filter", {"array": people, "field": "age", "operator": "greater_eq", "value": 18})
    assert output == {"matched": [people[0]], "notMatched": people[1:]}


@pytest.mark.asyncio
async def test_filter_falls_back_to_previous_output():
    output = await run("condition_filter", {"operator": "contains", "value": "A"}, {"output": '["apple", "kiwi"]'})
    assert output == {"matched": ["apple"], "notMatched": ["kiwi"]}


@pytest.mark.asyncio
async def test_filter_on_non_array():
    assert await run("condition_filter", {"array": "nope"}) == {"matched": [], "notMatched": []}


@pytest.mark.parametrize(
    "value, operator, target, expected",
    [
        ("5", "equals", 5, True),
        ("a", "not_equals", "b", True),
        ("Hello", "starts_with", "he", True),
        ("Hello", "ends_with", "LO", True),
        ("x", "greater", 1, False),
        (3, "less_eq", "3", True),
        ("", "is_empty", None, True),
        ([1], "is_not_empty", None, True),
        ("abc123", "regex", r"\d+", True),
        ("abc", "regex", "(", False),
        ("abc", "unknown", "abc", False),
    ],
)
def test_compare_operators(value, operator, target, expected):
    assert compare(value, operator, target) is expected


def test_type_names():
    assert [type_name(v) for v in (None, True, 1.5, "s", [], {})] == [
        "null", "boolean", "number", "string", "array", "object",
    ]


@pytest.mark.asyncio
async def test_type_check_uses_output_when_no_value():
    assert await run("condition_type_check", {"type": "array"}, {"output": [1]}) is True
    assert await run("condition_type_check", {"type": "number", "value": "3"}) is False


@pytest.mark.asyncio
async def test_is_empty():
    assert is_empty({}) and is_empty([]) and is_empty("") and is_empty(None)
    assert not is_empty(0)
    assert await run("condition_is_empty", {}, {"output": []}) is True


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "first, operator, second, expected",
    [
        ("2024-01-01", "before", "2024-06-01", True),
        ("2024-01-01T10:00:00Z", "after", "2023-12-31", True),
        ("2024-01-01T10:00:00", "equals", "2024-01-01T23:00:00", True),
    ],
)
async def test_date_compare(first, operator, second, expected):
    data = {"date1": first, "date2": second, "operator": operator}
    assert await run("condition_date_compare", data) is expected


@pytest.mark.asyncio
async def test_date_compare_rejects_unknown_operator():
    with pytest.raises(ValueError):
        await run("condition_date_compare", {"date1": "2024-01-01", "date2": "2024-01-02", "operator": "near"})


@pytest.mark.asyncio
async def test_array_contains():
    assert await run("condition_array_contains", {"array": "[1, 2, 3]", "value": "2"}) is True
    assert await run("condition_array_contains", {"array": [1], "value": 5}) is False
    assert await run("condition_array_contains", {"array": 7, "value": 7}) is False


@pytest.mark.asyncio
async def test_manual_approval_defaults():
    output = await run("condition_manual_approval")
    assert output["title"] == "Approval Required"


# ---- loops ----


@pytest.mark.asyncio
async def test_foreach_parses_json_and_falls_back_to_output():
    assert (await run("loop_foreach", {"items": "[1, 2]"}))["items"] == [1, 2]
    assert (await run("loop_foreach", {}, {"output": ["a"]}))["items"] == ["a"]
    assert (await run("loop_foreach", {"items": "{bad"}))["items"] == []


@pytest.mark.asyncio
async def test_loop_descriptors():
    assert await run("loop_repeat", {"count": 3}) == {"count": 3, "indexVar": "index"}
    assert await run("loop_while", {"condition": "x < 1"}) == {"maxIterations": 100}
    output = await run("loop_parallel_foreach", {"items": [1, 2], "itemVar": "row"})
    assert output == {"items": [1, 2], "itemVar": "row", "indexVar": "index", "concurrency": 5}


# ---- actions ----


@pytest.mark.asyncio
async def test_log_action():
    logs = []
    output = await run("action_log", {"message": {"k": 1}, "level": "warn"}, logs=logs)
    assert output == {"logged": True, "message": {"k": 1}, "level": "warn"}
    assert logs == [("warn", '{\n  "k": 1\n}')]


@pytest.mark.asyncio
async def test_set_variable_writes_into_scope():
    ctx = make_ctx({"name": "greeting", "value": "hi"})
    output = await get_handler("action_set_variable")(ctx)
    assert output == {"name": "greeting", "value": "hi"}
    assert ctx.variables["greeting"] == "hi"


@pytest.mark.asyncio
async def test_set_variable_requires_name():
    with pytest.raises(ValueError):
        await run("action_set_variable", {"value": 1})


@pytest.mark.asyncio
async def test_delay_uses_runtime_sleep():
    slept = []

    class FakeApi(RuntimeApi):
        async def sleep(self, ms):
            slept.append(ms)

    assert await run("action_delay", {"duration": "250"}, api=FakeApi()) == {"delayed": 250}
    assert slept == [250]


@pytest.mark.asyncio
async def test_notification_goes_through_notifier():
    sent = []

    async def notifier(title, message):
        sent.append((title, message))

    output = await run("action_notification", {"title": "Done", "message": 3}, api=RuntimeApi(notifier=notifier))
    assert output == {"notified": True}
    assert sent == [("Done", "3")]


@pytest.mark.asyncio
async def test_json_actions():
    assert await run("action_json_parse", {"json": '{"a": [1]}'}) == {"a": [1]}
    assert await run("action_json_parse", {"json": {"a": 1}}) == {"a": 1}
    assert await run("action_json_stringify", {"data": {"a": 1}, "pretty": False}) == '{"a": 1}'
    with pytest.raises(ValueError):
        await run("action_json_parse", {"json": "{oops"})


@pytest.mark.asyncio
async def test_template_and_math():
    assert await run("action_template", {"template": "Hi ada"}) == "Hi ada"
    assert await run("action_math", {"expression": "price * qty"}, {"price": 2.5, "qty": 4}) == 10


def mock_api(responder):
    return RuntimeApi(http=HttpApi(transport=httpx.MockTransport(responder)))


@pytest.mark.asyncio
async def test_http_action_returns_status_and_body():
    seen = []

    def responder(request):
        seen.append((request.method, str(request.url), request.headers.get("x-token"), request.content))
        return httpx.Response(201, json={"id": 9})

    output = await run(
        "action_http",
        {"url": "https://api.test/items", "method": "post", "headers": '{"x-token": "t"}', "body": {"n": 1}},
        api=mock_api(responder),
    )
    assert output["status"] == 201
    assert output["body"] == {"id": 9}
    assert seen == [("POST", "https://api.test/items", "t", json.dumps({"n": 1}).encode())]


@pytest.mark.asyncio
async def test_http_action_fails_on_error_status():
    api = mock_api(lambda request: httpx.Response(500, text="down"))
    with pytest.raises(RuntimeError, match="HTTP 500"):
        await run("action_http", {"url": "https://api.test/"}, api=api)
    output = await run("action_http", {"url": "https://api.test/", "failOnError": False}, api=api)
    assert output["body"] == "down"


@pytest.mark.asyncio
async def test_http_action_requires_url():
    with pytest.raises(ValueError, match="URL is required"):
        await run("action_http", {})


# ---- custom nodes ----


def test_fill_blanks_unknown_keys():
    assert fill("{{a}}/{{b}}", {"a": 1}) == "1/"


@pytest.mark.asyncio
async def test_custom_http_node():
    definition = CustomNodeDefinition.model_validate({
        "type": "custom_weather",
        "name": "Weather",
        "actionType": "http",
        "actionConfig": {"url": "https://weather.test/{{city}}", "headers": "not json"},
    })
    handler = register_custom_node(definition)
    try:
        api = mock_api(lambda request: httpx.Response(200, json={"city": request.url.path}))
        assert get_handler("custom_weather") is handler
        output = await run("custom_weather", {"city": "oslo"}, api=api)
        assert output == {"city": "/oslo"}
    finally:
        HANDLERS.pop("custom_weather")


@pytest.mark.asyncio
async def test_http_api_get_and_post_helpers():
    seen = []

    def responder(request):
        seen.append((request.method, request.content))
        return httpx.Response(200, text="plain")

    http = HttpApi(transport=httpx.MockTransport(responder))
    assert (await http.get("https://api.test/a"))["body"] == "plain"
    assert (await http.post("https://api.test/a", body="raw"))["status"] == 200
    assert seen == [("GET", b""), ("POST", b"raw")]
