"""Parsing of ``identifier=value`` settings in configuration lines."""

from __future__ import annotations

import re

_INT = re.compile(r"\s*([+-]?\d+)")
_FLOAT = re.compile(r"\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")
_UINT_RANGE = 1 << 32


def _atoi(text: str) -> int:
    match = _INT.match(text)
    return int(match.group(1)) if match else 0


def _atou(text: str) -> int:
    return _atoi(text) % _UINT_RANGE


def _atof(text: str) -> float:
    match = _FLOAT.match(text)
    return float(match.group(1)) if match else 0.0


def starts_with_identifier(line: str, identifier: str) -> bool:
    """Report whether ``line`` begins with ``identifier``."""
    return line.startswith(identifier)


def parse_uint(line: str, identifier: str) -> int:
    """Unsigned integer after ``identifier`` and one separator; 0 if absent."""
    if not starts_with_identifier(line, identifier):
        return 0
    return _atou(line[len(identifier) + 1:])


def parse_datum(line: str, identifier: str) -> float:
    """Number after ``identifier`` and one separator; 0.0 if absent."""
    if not starts_with_identifier(line, identifier):
        return 0.0
    return _atof(line[len(identifier) + 1:])


def parse_string(line: str, identifier: str) -> str:
    """Text after ``identifier`` and one separator."""
    if not starts_with_identifier(line, identifier):
        raise ValueError(f"Line does not start with {identifier!r}")
    return line[len(identifier) + 1:]


def _param_value(line: str, identifier: str) -> str | None:
    key = identifier + "="
    start = line.find(key)
    if start < 0:
        return None
    end = line.find(" ", start)
    if end >= 0:
        line = line[:end]
    return line[start + len(key):]


def parse_string_param(line: str, identifier: str) -> str | None:
    """Value of ``identifier=value`` anywhere in the line, up to the next space."""
    return _param_value(line, identifier)


def parse_kernel_size(line: str, identifier: str) -> tuple[int, int] | None:
    """Pair from ``identifier=<kx>x<ky>`` anywhere in the line."""
    key = identifier + "="
    start = line.find(key)
    if start < 0:
        return None
    value_start = start + len(key)
    x_pos = line.find("x", value_start)
    if x_pos < 0:
        return None
    end = line.find(" ", x_pos)
    if end >= 0:
        line = line[:end]
    size = line[value_start:]
    split = x_pos - value_start
    return _atou(size[:split]), _atou(size[split + 1:])


def parse_count(line: str, identifier: str) -> int | None:
    """Unsigned integer from ``identifier=<n>`` anywhere in the line."""
    value = _param_value(line, identifier)
    return None if value is None else _atou(value)


def parse_datum_param(line: str, identifier: str) -> float | None:
    """Number from ``identifier=<value>`` anywhere in the line."""
    value = _param_value(line, identifier)
    return None if value is None else _atof(value)