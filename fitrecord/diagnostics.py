"""
Diagnostics surface for fit-result queries and correlation extraction.

Soft failures (unknown parameter names, degenerate extraction input) are
reported through `FitResultWarning` and never raised. Extraction additionally
returns an `ExtractionReport` so that callers can react to a skipped
extraction without inspecting warnings.
"""

from __future__ import annotations

import warnings
from dataclasses import dataclass

STATUS_OK = "ok"
STATUS_TOO_FEW_PARAMETERS = "too_few_parameters"
STATUS_NO_PARAMETERS = "no_parameters"
STATUS_COUNT_MISMATCH = "count_mismatch"
STATUS_BAD_PERMUTATION = "bad_permutation"


class FitResultWarning(UserWarning):
    """
    Warning category for recoverable fit-result conditions.
    """


@dataclass(frozen=True)
class ExtractionReport:
    """
    Outcome of a single correlation extraction attempt.
    """

    status: str
    message: str
    n_parameters: int = 0

    @property
    def ok(self) -> bool:
        return self.status == STATUS_OK


def warn(message: str, *, stacklevel: int = 2) -> None:
    # stacklevel counts from the caller of warn(), as for warnings.warn.
    warnings.warn(message, FitResultWarning, stacklevel=stacklevel + 1)
