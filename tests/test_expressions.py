import pytest

from forgeflow.errors import ExpressionError
from forgeflow.expressions import evaluate, evaluate_condition, loose_equals, strict_equals


@pytest.mark.parametrize(
    "expression, expected",
    [
        ("1 + 2 * 3", 7),
        ("(1 + 2) * 3", 9),
        ("10 / 4", 2.5),
        ("7 % 3", 1),
        ("-2 + 5", 3),
        ("'a' + 1", "a1"),
        ('"x" + "y"', "xy"),
        ("[1, 2] + [3]", [1, 2, 3]),
    ],
)
def test_arithmetic(expression, expected):
    assert evaluate(expression) == expected


@pytest.mark.parametrize(
    "expression, expected",
    [
        ("5 > 3", True),
        ("5 >= 5 && 2 < 1", False),
        ("true || false", True),
        ("!true", False),
        ("not false and True", True),
        ('"5" == 5', True),
        ('"5" === 5', False),
        ("null == undefined", True),
        ("1 !== 1", False),
        ("'b' in ['a', 'b']", True),
        ("'ell' in 'hello'", True),
        ('"abc" < "abd"', True),
    ],
)
def test_conditions(expression, expected):
    assert evaluate_condition(expression) is expected


def test_logical_operators_short_circuit():
    # the right side would fail if it were evaluated
    assert evaluate("false && missing_var") is False
    assert evaluate("1 || missing_var") == 1


def test_variables_and_paths():
    variables = {"count": 3, "user": {"name": "ada"}, "items": [10, 20]}
    assert evaluate_condition("count < 5", variables) is True
    assert evaluate_condition('user.name == "ada"', variables) is True
    assert evaluate("items[1] - items[0]", variables) == 10


def test_object_literals():
    assert evaluate('{"a": 1, b: [2]}') == {"a": 1, "b": [2]}


def test_truthiness():
    assert evaluate_condition("0") is False
    assert evaluate_condition("''") is False
    assert evaluate_condition("[]") is True
    assert evaluate_condition("null") is False


@pytest.mark.parametrize(
    "expression",
    [
        "",
        "1 +",
        "unknown_name > 1",
        "1 / 0",
        "'a' < 1",
        "__import__('os')",
        "a.b(1)",
        "1 2",
        "{{x}} > 1",
    ],
)
def test_rejects_bad_expressions(expression):
    with pytest.raises(ExpressionError):
        evaluate(expression, {"a": {"b": 1}})


def test_equality_helpers():
    assert loose_equals(1, "1.0")
    assert not loose_equals(None, 0)
    assert strict_equals(1, 1.0)
    assert not strict_equals(True, 1)
