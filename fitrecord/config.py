"""
Configuration objects for correlation extraction.

In this module, configuration dataclasses are provided as a stable, typed
surface for the user-selectable extraction behaviour.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal


ListMismatchPolicy = Literal["ignore", "warn"]


@dataclass(frozen=True)
class ExtractionConfig:
    """
    Configuration for filling a correlation matrix from a covariance source.
    """

    # A correlation matrix is meaningless for a single floating parameter.
    min_floating: int = 2
    # Policy when the initial and final floating lists disagree in length or order.
    list_mismatch: ListMismatchPolicy = "warn"
    emit_warnings: bool = True

    def validate(self) -> None:
        """
        Configuration validation is performed.
        """
        if int(self.min_floating) < 2:
            raise ValueError("min_floating must be at least 2")
        if str(self.list_mismatch) not in {"ignore", "warn"}:
            raise ValueError("list_mismatch is not recognised")
