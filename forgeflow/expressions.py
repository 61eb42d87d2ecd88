# forgeflow/expressions.py
"""
A small expression language for conditions.

Only literals, variable paths and arithmetic / comparison / logical operators
are understood; there are no calls and no attribute access, so a condition
can never run arbitrary code. Both JS-style (``&&``, ``===``, ``true``) and
Python-style (``and``, ``==``, ``True``) spellings are accepted.
"""
import json
import math
import re
from typing import Any, Callable, List, Mapping, Optional, Tuple

from .errors import ExpressionError
from .interpolation import MISSING, get_nested_value, stringify

Thunk = Callable[[], Any]

TOKEN_RE = re.compile(
    r"""
    (?P<ws>\s+)
  | (?P<number>\d+(?:\.\d+)?(?:[eE][+-]?\d+)?)
  | (?P<string>"(?:[^"\\]|\\.)*"|'(?:[^'\\]|\\.)*')
  | (?P<op>===|!==|==|!=|<=|>=|&&|\|\||[<>!+\-*/%()\[\]{},:])
  | (?P<name>[A-Za-z_$][\w$]*(?:\.[\w$]+|\[\d+\])*)
    """,
    re.VERBOSE,
)

CONSTANTS = {
    "true": True,
    "false": False,
    "null": None,
    "undefined": None,
    "True": True,
    "False": False,
    "None": None,
}

SINGLE_QUOTE_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "\\": "\\", "'": "'", '"': '"'}


def tokenize(text: str) -> List[Tuple[str, str]]:
    tokens = []
    pos = 0
    while pos < len(text):
        match = TOKEN_RE.match(text, pos)
        if not match:
            raise ExpressionError(f"Unexpected character {text[pos]!r} at position {pos}")
        kind = match.lastgroup
        if kind != "ws":
            tokens.append((kind, match.group(kind)))
        pos = match.end()
    return tokens


def _unquote(raw: str) -> str:
    if raw.startswith('"'):
        try:
            return json.loads(raw)
        except ValueError as exc:
            raise ExpressionError(f"Invalid string literal {raw}") from exc
    body = raw[1:-1]
    return re.sub(r"\\(.)", lambda m: SINGLE_QUOTE_ESCAPES.get(m.group(1), m.group(1)), body)


def truthy(value: Any) -> bool:
    if value is None or value is False:
        return False
    if isinstance(value, (int, float)):
        return value != 0 and not (isinstance(value, float) and math.isnan(value))
    if isinstance(value, str):
        return value != ""
    # lists and objects are truthy even when empty
    return True


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float))


def _to_number(value: Any) -> float:
    if _is_number(value):
        return value
    if isinstance(value, str):
        try:
            return float(value) if value.strip() else 0
        except ValueError:
            pass
    raise ExpressionError(f"Expected a number, got {value!r}")


def _kind(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "bool"
    if _is_number(value):
        return "number"
    return type(value).__name__


def loose_equals(a: Any, b: Any) -> bool:
    if a is None or b is None:
        return a is None and b is None
    if _is_number(a) and isinstance(b, str) or isinstance(a, str) and _is_number(b):
        try:
            return _to_number(a) == _to_number(b)
        except ExpressionError:
            return False
    return a == b


def strict_equals(a: Any, b: Any) -> bool:
    return _kind(a) == _kind(b) and a == b


def _compare(op: str, a: Any, b: Any) -> bool:
    if not (isinstance(a, str) and isinstance(b, str)):
        a, b = _to_number(a), _to_number(b)
    if op == "<":
        return a < b
    if op == "<=":
        return a <= b
    if op == ">":
        return a > b
    return a >= b


def _add(a: Any, b: Any) -> Any:
    if isinstance(a, str) or isinstance(b, str):
        return stringify(a) + stringify(b)
    if isinstance(a, list) and isinstance(b, list):
        return a + b
    return _to_number(a) + _to_number(b)


def _arith(op: str, a: Any, b: Any) -> Any:
    a, b = _to_number(a), _to_number(b)
    if op == "-":
        return a - b
    if op == "*":
        return a * b
    if b == 0:
        raise ExpressionError("Division by zero")
    if op == "/":
        return a / b
    return math.fmod(a, b)


def _contains(item: Any, container: Any) -> bool:
    if isinstance(container, str):
        if not isinstance(item, str):
            raise ExpressionError("'in' on a string needs a string operand")
        return item in container
    if isinstance(container, (list, dict)):
        try:
            return item in container
        except TypeError as exc:
            raise ExpressionError(str(exc)) from exc
    raise ExpressionError(f"Cannot use 'in' with {_kind(container)}")


def _short_circuit(left: Thunk, right: Thunk, stop_when: bool) -> Thunk:
    # JS semantics: `a || b` / `a && b` yield an operand, not a bool
    def run() -> Any:
        value = left()
        return value if truthy(value) == stop_when else right()

    return run


class _Parser:
    def __init__(self, tokens: List[Tuple[str, str]], variables: Mapping[str, Any]):
        self.tokens = tokens
        self.pos = 0
        self.variables = variables

    def peek(self) -> Optional[Tuple[str, str]]:
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def accept(self, *values: str) -> Optional[str]:
        token = self.peek()
        if token and token[0] in ("op", "name") and token[1] in values:
            self.pos += 1
            return token[1]
        return None

    def expect(self, value: str) -> None:
        if not self.accept(value):
            found = self.peek()
            raise ExpressionError(f"Expected {value!r}, found {found[1] if found else 'end of input'!r}")

    def parse(self) -> Thunk:
        if not self.tokens:
            raise ExpressionError("Empty expression")
        node = self.parse_or()
        if self.peek() is not None:
            raise ExpressionError(f"Unexpected token {self.peek()[1]!r}")
        return node

    def parse_or(self) -> Thunk:
        left = self.parse_and()
        while self.accept("||", "or"):
            left = _short_circuit(left, self.parse_and(), stop_when=True)
        return left

    def parse_and(self) -> Thunk:
        left = self.parse_not()
        while self.accept("&&", "and"):
            left = _short_circuit(left, self.parse_not(), stop_when=False)
        return left

    def parse_not(self) -> Thunk:
        if self.accept("not"):
            operand = self.parse_not()
            return lambda: not truthy(operand())
        return self.parse_comparison()

    def parse_comparison(self) -> Thunk:
        left = self.parse_additive()
        while True:
            op = self.accept("===", "!==", "==", "!=", "<=", ">=", "<", ">", "in")
            if op is None:
                return left
            right = self.parse_additive()
            left = self._binary(op, left, right)

    def parse_additive(self) -> Thunk:
        left = self.parse_multiplicative()
        while True:
            op = self.accept("+", "-")
            if op is None:
                return left
            left = self._binary(op, left, self.parse_multiplicative())

    def parse_multiplicative(self) -> Thunk:
        left = self.parse_unary()
        while True:
            op = self.accept("*", "/", "%")
            if op is None:
                return left
            left = self._binary(op, left, self.parse_unary())

    def parse_unary(self) -> Thunk:
        if self.accept("-"):
            operand = self.parse_unary()
            return lambda: -_to_number(operand())
        if self.accept("+"):
            operand = self.parse_unary()
            return lambda: _to_number(operand())
        if self.accept("!"):
            operand = self.parse_unary()
            return lambda: not truthy(operand())
        return self.parse_primary()

    def parse_primary(self) -> Thunk:
        token = self.peek()
        if token is None:
            raise ExpressionError("Unexpected end of expression")
        kind, text = token
        if self.accept("("):
            inner = self.parse_or()
            self.expect(")")
            return inner
        if self.accept("["):
            return self._list_literal()
        if self.accept("{"):
            return self._object_literal()
        self.pos += 1
        if kind == "number":
            value = float(text) if any(c in text for c in ".eE") else int(text)
            return lambda: value
        if kind == "string":
            string = _unquote(text)
            return lambda: string
        if kind == "name":
            if text in CONSTANTS:
                constant = CONSTANTS[text]
                return lambda: constant
            return self._variable(text)
        raise ExpressionError(f"Unexpected token {text!r}")

    def _variable(self, path: str) -> Thunk:
        variables = self.variables

        def lookup() -> Any:
            value = get_nested_value(variables, path)
            if value is MISSING:
                raise ExpressionError(f"Unknown variable {path!r}")
            return value

        return lookup

    def _list_literal(self) -> Thunk:
        items: List[Thunk] = []
        if not self.accept("]"):
            while True:
                items.append(self.parse_or())
                if self.accept("]"):
                    break
                self.expect(",")
        return lambda: [item() for item in items]

    def _object_literal(self) -> Thunk:
        pairs: List[Tuple[str, Thunk]] = []
        if not self.accept("}"):
            while True:
                token = self.peek()
                if token is None or token[0] not in ("string", "name"):
                    raise ExpressionError("Expected an object key")
                self.pos += 1
                key = _unquote(token[1]) if token[0] == "string" else token[1]
                self.expect(":")
                pairs.append((key, self.parse_or()))
                if self.accept("}"):
                    break
                self.expect(",")
        return lambda: {key: value() for key, value in pairs}

    @staticmethod
    def _binary(op: str, left: Thunk, right: Thunk) -> Thunk:
        if op == "==":
            return lambda: loose_equals(left(), right())
        if op == "!=":
            return lambda: not loose_equals(left(), right())
        if op == "===":
            return lambda: strict_equals(left(), right())
        if op == "!==":
            return lambda: not strict_equals(left(), right())
        if op in ("<", "<=", ">", ">="):
            return lambda: _compare(op, left(), right())
        if op == "in":
            return lambda: _contains(left(), right())
        if op == "+":
            return lambda: _add(left(), right())
        return lambda: _arith(op, left(), right())


def evaluate(expression: str, variables: Optional[Mapping[str, Any]] = None) -> Any:
    """Evaluate `expression`; bare names are looked up in `variables`."""
    if not isinstance(expression, str):
        raise ExpressionError(f"Expression must be a string, got {_kind(expression)}")
    return _Parser(tokenize(expression), variables or {}).parse()()


def evaluate_condition(expression: str, variables: Optional[Mapping[str, Any]] = None) -> bool:
    return truthy(evaluate(expression, variables))
