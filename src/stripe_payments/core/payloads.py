"""
Helpers for turning parameter mappings into form-encoded request bodies.

The platform reads nested values with bracket notation::

    {"card": {"number": "4242"}, "expand": ["sources"]}
    -> card[number]=4242&expand[0]=sources
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, List, Mapping, Tuple
from urllib.parse import urlencode

from .errors import InvalidInputError

__all__ = [
    "encode_form",
    "flatten_parameters",
    "parse_bracketed_pairs",
    "validate_parameters",
]

_SCALARS = (str, int, float, Decimal)


def _scalar(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _flatten(prefix: str, value: Any, pairs: List[Tuple[str, str]]) -> None:
    if value is None:
        return
    if isinstance(value, Mapping):
        for key, nested in value.items():
            if not isinstance(key, str) or not key:
                raise InvalidInputError(
                    f"Parameter keys must be non-empty strings (under '{prefix}')",
                    param=prefix,
                )
            _flatten(f"{prefix}[{key}]", nested, pairs)
        return
    if isinstance(value, (list, tuple)):
        for index, nested in enumerate(value):
            _flatten(f"{prefix}[{index}]", nested, pairs)
        return
    if isinstance(value, bool) or isinstance(value, _SCALARS):
        pairs.append((prefix, _scalar(value)))
        return
    raise InvalidInputError(
        f"Parameter '{prefix}' has unsupported type {type(value).__name__}",
        param=prefix,
    )


def flatten_parameters(parameters: Mapping[str, Any]) -> List[Tuple[str, str]]:
    """Flatten ``parameters`` into ordered ``(key, value)`` pairs."""
    if not isinstance(parameters, Mapping):
        raise InvalidInputError(
            f"Parameters must be a mapping, got {type(parameters).__name__}"
        )
    pairs: List[Tuple[str, str]] = []
    for key, value in parameters.items():
        if not isinstance(key, str) or not key:
            raise InvalidInputError("Parameter keys must be non-empty strings")
        _flatten(key, value, pairs)
    return pairs


def validate_parameters(parameters: Any, *, allow_empty: bool = False) -> List[Tuple[str, str]]:
    """
    Validate and flatten ``parameters`` in one step.

    Raises :class:`InvalidInputError` when the mapping is malformed or, unless
    ``allow_empty`` is set, when nothing would be sent.
    """
    if parameters is None:
        raise InvalidInputError("Parameters must be provided")
    pairs = flatten_parameters(parameters)
    if not pairs and not allow_empty:
        raise InvalidInputError("Parameters must contain at least one value")
    return pairs


def encode_form(parameters: Mapping[str, Any]) -> str:
    return urlencode(flatten_parameters(parameters))


def parse_bracketed_pairs(pairs: List[Tuple[str, str]]) -> dict:
    """
    Inverse of the bracket notation for ``KEY=VALUE`` command line input.

    ``[("card[number]", "4242"), ("card[cvc]", "123")]`` becomes
    ``{"card": {"number": "4242", "cvc": "123"}}``. Indices are kept as
    mapping keys; they encode back to the same form fields.
    """
    result: dict = {}
    for raw_key, value in pairs:
        head, _, rest = raw_key.partition("[")
        if not head:
            raise InvalidInputError(f"Invalid parameter key '{raw_key}'")
        path = [head]
        if rest:
            if not rest.endswith("]"):
                raise InvalidInputError(f"Invalid parameter key '{raw_key}'")
            path.extend(rest[:-1].split("]["))
        if any(not part for part in path):
            raise InvalidInputError(f"Invalid parameter key '{raw_key}'")

        node = result
        for part in path[:-1]:
            child = node.setdefault(part, {})
            if not isinstance(child, dict):
                raise InvalidInputError(f"Parameter '{raw_key}' conflicts with '{part}'")
            node = child
        if isinstance(node.get(path[-1]), dict):
            raise InvalidInputError(f"Parameter '{raw_key}' conflicts with a nested value")
        node[path[-1]] = value
    return result
