# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Canonical JSON for signing.

Two structurally equal JSON values always serialize to the same bytes,
whatever their original key order or whitespace:

- object keys sorted by code point, at every depth
- array order preserved
- compact separators, no insignificant whitespace
- UTF-8 output, non-ASCII characters are not \\u-escaped
- integers as digits, floats as the shortest round-trip decimal in the
  layout serde_json prints (``0.00001``, ``1e-7``, ``1e16``)
- NaN and infinities are rejected

Nodes sign ``canonical_json(payload) + nonce``; any implementation that
follows these rules produces the same signing target.
"""

from __future__ import annotations

import json
import math
from decimal import Decimal
from typing import Any

# Fixed-notation window for floats: decimal point position in (-5, 16]
_MIN_DECIMAL_POINT = -5
_MAX_DECIMAL_POINT = 16


def _float(value: float) -> str:
    """Shortest round-trip float in the ryu layout serde_json uses.

    Python's repr and ryu agree on the digits but not on the layout:
    ``1e-07`` is ``1e-7``, ``1e+16`` is ``1e16`` and ``1e-05`` is
    ``0.00001``.
    """
    if not math.isfinite(value):
        raise ValueError(f"Out of range float values are not JSON compliant: {value!r}")
    if value == 0:
        return "-0.0" if math.copysign(1.0, value) < 0 else "0.0"

    sign, digits_tuple, exponent = Decimal(repr(value)).as_tuple()
    digits = "".join(str(d) for d in digits_tuple).rstrip("0")
    exponent += len(digits_tuple) - len(digits)
    point = len(digits) + exponent
    prefix = "-" if sign else ""

    if 0 <= exponent and point <= _MAX_DECIMAL_POINT:
        return f"{prefix}{digits}{'0' * exponent}.0"
    if 0 < point <= _MAX_DECIMAL_POINT:
        return f"{prefix}{digits[:point]}.{digits[point:]}"
    if _MIN_DECIMAL_POINT < point <= 0:
        return f"{prefix}0.{'0' * -point}{digits}"
    mantissa = digits if len(digits) == 1 else f"{digits[0]}.{digits[1:]}"
    return f"{prefix}{mantissa}e{point - 1}"


def _encode(value: Any) -> str:
    if isinstance(value, dict):
        items = []
        for key in sorted(value):
            if not isinstance(key, str):
                raise TypeError(f"JSON object keys must be strings, got {type(key).__name__}")
            items.append(f"{_encode(key)}:{_encode(value[key])}")
        return "{" + ",".join(items) + "}"
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(_encode(item) for item in value) + "]"
    if isinstance(value, str):
        return json.dumps(value, ensure_ascii=False)
    if value is None or isinstance(value, bool):
        return json.dumps(value)
    if isinstance(value, int):
        return str(int(value))
    if isinstance(value, float):
        return _float(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def canonical_json(value: Any) -> str:
    """Serialize a JSON value canonically.

    Raises:
        TypeError: for non-JSON values or non-string object keys
        ValueError: for NaN or infinite floats
    """
    return _encode(value)


def canonical_json_bytes(value: Any) -> bytes:
    """Canonical JSON encoded as UTF-8."""
    return canonical_json(value).encode("utf-8")


def registration_message(payload: Any, nonce: str) -> bytes:
    """Signing target for a registration: canonical payload followed by the nonce."""
    return canonical_json_bytes(payload) + nonce.encode("utf-8")


def heartbeat_message(host: str, nonce: str) -> bytes:
    """Signing target for a heartbeat: host followed by the nonce."""
    return host.encode("utf-8") + nonce.encode("utf-8")
