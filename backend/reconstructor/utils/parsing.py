"""Parsing helpers that follow what browsers accept from the provider."""
import json
import re
from typing import Any, Optional

_INT_PREFIX = re.compile(r"\s*([+-]?\d+)")


def _reject_constant(name: str) -> Any:
    raise ValueError(f"Non-finite number {name} is not valid JSON")


def loads_strict(text: str) -> Any:
    """``json.loads`` that refuses ``NaN``, ``Infinity`` and ``-Infinity``."""
    return json.loads(text, parse_constant=_reject_constant)


def parse_int_prefix(value: Any) -> Optional[int]:
    """
    Read the leading integer of a value's string form.

    ``"12px"`` gives 12, ``" 7"`` gives 7 and ``"1.5"`` gives 1. Values with
    no leading digits give None.
    """
    if value is None or isinstance(value, bool):
        return None
    match = _INT_PREFIX.match(str(value))
    return int(match.group(1)) if match else None
