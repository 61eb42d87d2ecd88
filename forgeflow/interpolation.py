# forgeflow/interpolation.py
"""
Resolution of ``{{path}}`` placeholders against workflow variables.

A string that is exactly one placeholder is replaced by the variable itself,
keeping its type. Placeholders embedded in text are replaced by the value's
string form. Anything that cannot be resolved is left as written.
"""
import json
import re
from typing import Any, Mapping, Sequence

PLACEHOLDER_RE = re.compile(r"\{\{([^}]+)\}\}")
INDEXED_SEGMENT_RE = re.compile(r"^(\w+)((?:\[\d+\])+)$")
INDEX_RE = re.compile(r"\[(\d+)\]")


class _Missing:
    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING = _Missing()


def _is_list(value: Any) -> bool:
    return isinstance(value, Sequence) and not isinstance(value, (str, bytes))


def _step(value: Any, key: str) -> Any:
    if isinstance(value, Mapping):
        return value[key] if key in value else MISSING
    if _is_list(value) and key.isdigit():
        index = int(key)
        return value[index] if index < len(value) else MISSING
    return MISSING


def get_nested_value(variables: Mapping[str, Any], path: str) -> Any:
    """Walk `output.user.name` or `items[0].id` style paths. Returns MISSING
    instead of raising when any step cannot be taken."""
    value: Any = variables
    for part in path.strip().split("."):
        if value is None or value is MISSING:
            return MISSING
        indexed = INDEXED_SEGMENT_RE.match(part)
        if indexed:
            value = _step(value, indexed.group(1))
            for raw_index in INDEX_RE.findall(indexed.group(2)):
                index = int(raw_index)
                if not _is_list(value) or index >= len(value):
                    return MISSING
                value = value[index]
        else:
            value = _step(value, part)
    return value


def stringify(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (Mapping, list, tuple)):
        return json.dumps(value, indent=2, default=str)
    return str(value)


def interpolate_string(text: str, variables: Mapping[str, Any]) -> str:
    def _replace(match: "re.Match[str]") -> str:
        value = get_nested_value(variables, match.group(1))
        if value is MISSING:
            return match.group(0)
        return stringify(value)

    return PLACEHOLDER_RE.sub(_replace, text)


def interpolate_value(value: Any, variables: Mapping[str, Any]) -> Any:
    if isinstance(value, str):
        single = PLACEHOLDER_RE.fullmatch(value)
        if single:
            resolved = get_nested_value(variables, single.group(1))
            return value if resolved is MISSING else resolved
        return interpolate_string(value, variables)
    if isinstance(value, Mapping):
        return interpolate_config(value, variables)
    # lists and scalars are passed through as-is
    return value


def interpolate_config(config: Mapping[str, Any], variables: Mapping[str, Any]) -> dict:
    return {key: interpolate_value(value, variables) for key, value in config.items()}
