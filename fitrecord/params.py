"""
Parameter snapshots.

A snapshot is an immutable copy of a parameter's identity and numeric state
taken at a specific time. Snapshots hold no reference to the live parameter
they were copied from, so a stored fit result is unaffected by later changes
to the original parameters.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional, Tuple, Union

import numpy as np


@dataclass(frozen=True)
class ParameterSnapshot:
    """
    Frozen copy of a named scalar parameter.

    Constant parameters carry only a value; floating parameters also carry
    an uncertainty in `error`.
    """

    name: str
    value: float
    error: Optional[float] = None
    title: str = ""

    def __post_init__(self) -> None:
        if not str(self.name):
            raise ValueError("Parameter name cannot be empty")

    @property
    def label(self) -> str:
        """Display label (the title when set, otherwise the name)."""
        return self.title or self.name

    @property
    def has_error(self) -> bool:
        return self.error is not None


ParameterLike = Union[ParameterSnapshot, Any]
ParameterCollection = Union[Iterable[ParameterLike], Mapping[str, Any]]


def _as_float(x: Any) -> float:
    if isinstance(x, (int, float, np.integer, np.floating)):
        return float(x)
    raise ValueError(f"Expected numeric scalar, got {type(x)}")


def _from_object(obj: Any) -> ParameterSnapshot:
    if isinstance(obj, ParameterSnapshot):
        # Frozen instances can be shared without copying.
        return obj
    if not hasattr(obj, "name") or not hasattr(obj, "value"):
        raise ValueError(
            f"Cannot snapshot {type(obj).__name__!r}: objects need 'name' and 'value' attributes"
        )
    error = getattr(obj, "error", None)
    return ParameterSnapshot(
        name=str(obj.name),
        value=_as_float(obj.value),
        error=None if error is None else _as_float(error),
        title=str(getattr(obj, "title", "") or ""),
    )


def _from_item(name: str, entry: Any) -> ParameterSnapshot:
    if isinstance(entry, (tuple, list)):
        if len(entry) != 2:
            raise ValueError(
                f"Parameter {name!r} must be given as value or (value, error), got {entry!r}"
            )
        value, error = entry
        return ParameterSnapshot(
            name=str(name),
            value=_as_float(value),
            error=None if error is None else _as_float(error),
        )
    return ParameterSnapshot(name=str(name), value=_as_float(entry))


def snapshot(params: ParameterCollection) -> Tuple[ParameterSnapshot, ...]:
    """
    Take an ordered, independent copy of a parameter collection.

    Args:
        params: Either an iterable of parameter-like objects (snapshots or
            anything exposing `name` and `value`, optionally `error` and
            `title`), or a mapping of name to value or (value, error).

    Returns:
        Tuple of snapshots in input order.

    Raises:
        ValueError: If an entry cannot be interpreted or names repeat.
    """
    if isinstance(params, Mapping):
        out = tuple(_from_item(str(k), v) for k, v in params.items())
    else:
        out = tuple(_from_object(p) for p in params)

    seen = set()
    for p in out:
        if p.name in seen:
            raise ValueError(f"Duplicate parameter name: {p.name!r}")
        seen.add(p.name)
    return out


def names_of(params: Optional[Tuple[ParameterSnapshot, ...]]) -> Tuple[str, ...]:
    if params is None:
        return tuple()
    return tuple(p.name for p in params)
